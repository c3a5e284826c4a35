# pseudonymization/core/domain.py

"""Domain models for documents, entity mappings, and workflow results."""

from dataclasses import dataclass, field
from typing import List, Dict, Optional

from pseudonymization.core.definitions import SourceKind


@dataclass
class HocrDocument:
    """A synthetic single-page HOCR document.

    Attributes:
        markup: Serialized XHTML content
        word_count: Number of ``ocrx_word`` regions emitted
        line_count: Number of ``ocr_line`` regions emitted
        paragraph_count: Number of source paragraphs with at least one word
        with_paragraphs: Whether ``ocr_par`` wrapper elements were emitted
    """

    markup: str
    word_count: int = 0
    line_count: int = 0
    paragraph_count: int = 0
    with_paragraphs: bool = True

    def __str__(self) -> str:
        return self.markup


@dataclass
class EntityMappings:
    """Entity annotations decoded from an extraction response.

    Attributes:
        labels: Entity label -> space-joined text of all words with that label
        entities: Full entity id (label plus instance index) -> text
        spans: Original span text -> full entity id, used for substitution
        source: Which response shape produced the mapping
    """

    labels: Dict[str, str] = field(default_factory=dict)
    entities: Dict[str, str] = field(default_factory=dict)
    spans: Dict[str, str] = field(default_factory=dict)
    source: str = SourceKind.NONE

    def __bool__(self) -> bool:
        return bool(self.spans)


@dataclass
class SubstitutionResult:
    """Outcome of forward substitution.

    Attributes:
        text: Text with mapped spans replaced by placeholders
        placeholders: Placeholder -> surface form it replaced
        unmatched: Mapped spans that occur nowhere in the text
    """

    text: str
    placeholders: Dict[str, str] = field(default_factory=dict)
    unmatched: List[str] = field(default_factory=list)


@dataclass
class RestorationResult:
    """Outcome of reverse substitution on transformed text.

    Attributes:
        text: Text with placeholders replaced by their original spans
        restored: Placeholders that were found and replaced
        missing: Expected placeholders absent from the transformed text
    """

    text: str
    restored: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing


@dataclass
class WorkflowContext:
    """Per-request state threaded through pseudonymize -> improve -> restore.

    Never stored beyond the request that created it.
    """

    original_text: str
    prompt: Optional[str] = None
    document: Optional[HocrDocument] = None
    mappings: EntityMappings = field(default_factory=EntityMappings)
    placeholders: Dict[str, str] = field(default_factory=dict)
    pseudonymized_text: str = ""
    annotated_text: Optional[str] = None
    improved_text: str = ""
    final_text: str = ""
    used_fallback: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass
class PseudonymizationResult:
    """Result of the ``/hocr`` step."""

    original_text: str
    pseudonymized_text: str
    entity_mappings: Dict[str, str] = field(default_factory=dict)
    annotated_text: Optional[str] = None
    source: str = SourceKind.NONE
    used_fallback: bool = False
    warnings: List[str] = field(default_factory=list)


@dataclass
class ImprovementResult:
    """Result of the ``/improve`` step."""

    original_text: str
    improved_text: str
    prompt: str


@dataclass
class WorkflowResult:
    """Result of the full pseudonymize -> improve -> restore cycle."""

    original_text: str
    pseudonymized_text: str
    improved_text: str
    final_text: str
    entity_mappings: Dict[str, str] = field(default_factory=dict)
    used_fallback: bool = False
    warnings: List[str] = field(default_factory=list)
