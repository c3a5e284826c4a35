# pseudonymization/engine/annotations.py

"""Entity-annotation decoders for extraction service responses.

Two wire shapes carry the same information. The HOCR shape attaches
``x_entity <label> <index>`` to word ``title`` attributes; the JSON shape is
a nested tree whose word nodes carry ``attributes.x_entity``. A third shape,
a precomputed ``label -> text`` dict, is passed through unchanged.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from pseudonymization.core.definitions import (
    ENTITY_MARKER,
    WORD_NODE_TYPES,
    HocrClass,
    SourceKind,
)
from pseudonymization.core.domain import EntityMappings, HocrDocument
from pseudonymization.engine.hocr_encoder import trim_punctuation

logger = logging.getLogger(__name__)

MAX_TREE_DEPTH = 256

HocrInput = Union[str, bytes, HocrDocument]


def markup_of(doc: HocrInput) -> str:
    if isinstance(doc, HocrDocument):
        return doc.markup
    if isinstance(doc, bytes):
        return doc.decode("utf-8", errors="replace")
    return doc or ""


def _entity_tokens(title: Optional[str]) -> Optional[List[str]]:
    """Returns the tokens following ``x_entity`` in a title, or None."""
    if not title or ENTITY_MARKER not in title:
        return None

    for part in title.split(";"):
        tokens = part.split()
        if tokens and tokens[0] == ENTITY_MARKER:
            return tokens[1:] or None

    return None


def extract_entity_label(title: Optional[str]) -> Optional[str]:
    """Extracts the entity label from an HOCR title attribute.

    The last token after ``x_entity`` is the instance index and is dropped
    unless it is the only token.

    Example:
        >>> extract_entity_label("x_sensibility 1; bbox 414 176 526 200; x_entity first_name 0")
        'first_name'
    """
    tokens = _entity_tokens(title)
    if not tokens:
        return None
    return tokens[0] if len(tokens) == 1 else " ".join(tokens[:-1])


def extract_entity_id(title: Optional[str]) -> Optional[str]:
    """Extracts the full entity id (label and index joined by ``_``).

    Example:
        >>> extract_entity_id("x_sensibility 1; bbox 414 176 526 200; x_entity first_name 0")
        'first_name_0'
    """
    tokens = _entity_tokens(title)
    if not tokens:
        return None
    return "_".join(tokens)


def has_annotations(doc: HocrInput) -> bool:
    """Cheap pre-check for the entity marker anywhere in the raw content."""
    return ENTITY_MARKER in markup_of(doc)


def iter_hocr_words(doc: HocrInput) -> Iterator[Tuple[str, str]]:
    """Yields ``(title, text)`` for every word region in document order."""
    soup = BeautifulSoup(markup_of(doc), "html.parser")
    for element in soup.find_all(class_=HocrClass.WORD):
        yield element.get("title") or "", element.get_text().strip()


def _group_words(doc: HocrInput, extractor) -> Dict[str, str]:
    grouped: Dict[str, List[str]] = OrderedDict()
    for title, text in iter_hocr_words(doc):
        key = extractor(title)
        if key and text:
            grouped.setdefault(key, []).append(text)
    return {key: " ".join(texts) for key, texts in grouped.items()}


def decode_title_form(doc: HocrInput) -> Dict[str, str]:
    """Maps entity label -> space-joined text of all words with that label."""
    return _group_words(doc, extract_entity_label)


def decode_title_form_full(doc: HocrInput) -> Dict[str, str]:
    """Maps full entity id -> space-joined text of the words of that instance."""
    return _group_words(doc, extract_entity_id)


def _entity_key(value: str) -> str:
    return "_".join(value.split())


def _label_of(entity_key: str) -> str:
    head, sep, tail = entity_key.rpartition("_")
    return head if sep and head and tail.isdigit() else entity_key


def _parse_tree(tree: Any) -> Optional[Any]:
    if isinstance(tree, (bytes, str)):
        try:
            return json.loads(tree)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(
                "Could not parse annotated JSON payload",
                extra={"error": str(e), "payload_length": len(tree)},
            )
            return None
    return tree


def _qualifying_entity(node: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    if node.get("type") not in WORD_NODE_TYPES:
        return None

    attributes = node.get("attributes")
    if not isinstance(attributes, dict) or not attributes:
        return None

    x_entity = attributes.get(ENTITY_MARKER)
    if not isinstance(x_entity, str) or not x_entity.strip():
        return None

    if node.get("id") is None:
        return None

    text = node.get("text")
    if not isinstance(text, str) or not text.strip():
        return None

    return text.strip(), _entity_key(x_entity)


def iter_json_entities(tree: Any) -> Iterator[Tuple[str, str]]:
    """Yields ``(text, entity_key)`` for every qualifying word node.

    Nodes are found under ``children`` and under any other object-valued
    property. Each node is visited once; nesting deeper than
    ``MAX_TREE_DEPTH`` is skipped with a warning.
    """
    root = _parse_tree(tree)
    if root is None:
        return

    seen = set()
    # Reversed pushes keep pre-order document order.
    stack: List[Tuple[Any, int]] = [(root, 0)]
    truncated = False

    while stack:
        node, depth = stack.pop()

        if id(node) in seen:
            continue
        seen.add(id(node))

        if depth > MAX_TREE_DEPTH:
            truncated = True
            continue

        if isinstance(node, list):
            children = node
        elif isinstance(node, dict):
            entity = _qualifying_entity(node)
            if entity:
                yield entity
            children = list(node.values())
        else:
            continue

        for child in reversed(children):
            if isinstance(child, (dict, list)):
                stack.append((child, depth + 1))

    if truncated:
        logger.warning(
            "Annotated JSON tree exceeds maximum depth; deeper nodes ignored",
            extra={"max_depth": MAX_TREE_DEPTH},
        )


def decode_json_form(tree: Any) -> Dict[str, str]:
    """Maps original word text -> entity key for a JSON annotation tree.

    Accepts a parsed tree or its JSON string. If the same text appears under
    two entity keys, the later node wins. Malformed JSON yields ``{}``.
    """
    return {text: key for text, key in iter_json_entities(tree)}


def decode_json_form_by_entity(tree: Any) -> Dict[str, str]:
    """Maps entity key -> space-joined text of its word nodes, in order."""
    grouped: Dict[str, List[str]] = OrderedDict()
    for text, key in iter_json_entities(tree):
        grouped.setdefault(key, []).append(text)
    return {key: " ".join(texts) for key, texts in grouped.items()}


def invert_mapping(mapping: Dict[str, str]) -> Dict[str, str]:
    """Swaps keys and values; on duplicate values the later key wins."""
    return {value: key for key, value in mapping.items() if value}


class AnnotationSource(ABC):
    """A response shape that can be decoded into entity mappings."""

    kind: str = SourceKind.NONE

    @abstractmethod
    def decode(self, payload: Any) -> EntityMappings:
        """Decodes an extraction response into entity mappings."""


class TitleAnnotationSource(AnnotationSource):
    """Annotated HOCR with ``x_entity`` segments in word titles."""

    kind = SourceKind.HOCR

    def decode(self, payload: Any) -> EntityMappings:
        if isinstance(payload, dict):
            payload = payload.get("hocr", "")

        if not has_annotations(payload):
            return EntityMappings(source=self.kind)

        entities = decode_title_form_full(payload)
        # Words carry their punctuation; an entity span does not.
        trimmed = {key: trim_punctuation(text) for key, text in entities.items()}
        return EntityMappings(
            labels=decode_title_form(payload),
            entities=entities,
            spans=invert_mapping(trimmed),
            source=self.kind,
        )


class JsonTreeAnnotationSource(AnnotationSource):
    """Nested JSON tree with ``attributes.x_entity`` on word nodes."""

    kind = SourceKind.JSON_TREE

    def decode(self, payload: Any) -> EntityMappings:
        pairs = list(iter_json_entities(payload))

        entities: Dict[str, List[str]] = OrderedDict()
        labels: Dict[str, List[str]] = OrderedDict()
        for text, key in pairs:
            entities.setdefault(key, []).append(text)
            labels.setdefault(_label_of(key), []).append(text)

        return EntityMappings(
            labels={k: " ".join(v) for k, v in labels.items()},
            entities={k: " ".join(v) for k, v in entities.items()},
            spans={text: key for text, key in pairs},
            source=self.kind,
        )


class DirectMappingSource(AnnotationSource):
    """A precomputed ``label -> text`` mapping."""

    kind = SourceKind.MAPPING

    def decode(self, payload: Any) -> EntityMappings:
        mapping = _unwrap_mapping(_parse_tree(payload)) or {}
        clean = {
            str(label): text.strip()
            for label, text in mapping.items()
            if isinstance(text, str) and text.strip()
        }
        return EntityMappings(
            labels={_label_of(_entity_key(k)): v for k, v in clean.items()},
            entities=dict(clean),
            spans=invert_mapping(clean),
            source=self.kind,
        )


def _is_flat_mapping(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and bool(value)
        and all(isinstance(v, str) for v in value.values())
    )


def _unwrap_mapping(payload: Any) -> Optional[Dict[str, str]]:
    if not isinstance(payload, dict):
        return None
    for key in ("entityMappings", "mappings"):
        if _is_flat_mapping(payload.get(key)):
            return payload[key]
    if _is_flat_mapping(payload) and "type" not in payload:
        return payload
    return None


def select_annotation_source(payload: Any) -> Optional[AnnotationSource]:
    """Picks the decoder matching the shape of an extraction response.

    Returns:
        The matching AnnotationSource, or None for an empty/unknown payload
    """
    if isinstance(payload, HocrDocument):
        return TitleAnnotationSource()

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    if isinstance(payload, str):
        stripped = payload.lstrip()
        if not stripped:
            return None
        if stripped.startswith("<"):
            return TitleAnnotationSource()
        parsed = _parse_tree(stripped)
        if parsed is None:
            return TitleAnnotationSource() if HocrClass.WORD in stripped else None
        return select_annotation_source(parsed)

    if isinstance(payload, dict):
        if isinstance(payload.get("hocr"), str):
            return TitleAnnotationSource()
        if _unwrap_mapping(payload) is not None:
            return DirectMappingSource()
        return JsonTreeAnnotationSource()

    if isinstance(payload, list):
        return JsonTreeAnnotationSource()

    return None


def decode_response(payload: Any) -> EntityMappings:
    """Dispatches an extraction response to the matching decoder."""
    source = select_annotation_source(payload)
    if source is None:
        logger.warning(
            "Unrecognized extraction response shape",
            extra={"payload_type": type(payload).__name__},
        )
        return EntityMappings()

    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")

    mappings = source.decode(payload)
    logger.info(
        "Decoded entity annotations",
        extra={"source": mappings.source, "entity_count": len(mappings.entities)},
    )
    return mappings
