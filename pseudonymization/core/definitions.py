# pseudonymization/core/definitions.py

"""HOCR schema constants and extraction response shapes."""


class HocrClass:
    """CSS class names of the synthetic HOCR hierarchy."""

    PAGE = "ocr_page"
    PARAGRAPH = "ocr_par"
    LINE = "ocr_line"
    WORD = "ocrx_word"


# Marker token carried by annotated word titles and JSON word attributes
ENTITY_MARKER = "x_entity"

# Node discriminators accepted for word-kind nodes in the JSON tree form
WORD_NODE_TYPES = ("word", HocrClass.WORD)


class SourceKind:
    """Shapes an entity-extraction response can take."""

    HOCR = "hocr"
    JSON_TREE = "json"
    MAPPING = "mapping"
    NONE = "none"
