# pseudonymization/engine/substitution.py

"""Reversible placeholder substitution driven by an entity mapping.

The placeholder table is derived from the mapping alone, so the same
mapping rebuilds the same table on the way back. Spans match whole words
only and are claimed longest first (ties broken alphabetically); a claimed
region is never matched again, so a shorter span can never split a longer
one.
"""

import re
import logging
from collections import Counter
from typing import Dict, Iterable, List, NamedTuple, Optional, Pattern, Tuple

from presidio_anonymizer import AnonymizerEngine
from presidio_anonymizer.entities import OperatorConfig, RecognizerResult

from pseudonymization.core.loader import VocabularyLoader
from pseudonymization.core.domain import RestorationResult, SubstitutionResult

logger = logging.getLogger(__name__)

_INSTANCE_SUFFIX = re.compile(r"[_\s]+\d+$")
_NON_TAG = re.compile(r"[^0-9A-ZÄÖÜ]+")

_anonymizer: Optional[AnonymizerEngine] = None


class Occurrence(NamedTuple):
    span: str
    start: int
    end: int


def _get_anonymizer() -> AnonymizerEngine:
    global _anonymizer
    if _anonymizer is None:
        _anonymizer = AnonymizerEngine()
    return _anonymizer


def _keyword_matches(keyword: str, label: str, tokens: List[str]) -> bool:
    if len(keyword) <= 3:
        return keyword in tokens
    return keyword in label


def placeholder_for(entity: str) -> str:
    """Chooses the canonical placeholder for an entity label or full id.

    Categories are tried in vocabulary order; labels matching none become
    an uppercase bracketed tag of the label without its instance index.

    Example:
        >>> placeholder_for("first_name_0")
        '[PERSON]'
        >>> placeholder_for("city_2")
        '[CITY]'
    """
    label = _INSTANCE_SUFFIX.sub("", entity.strip()).lower() or entity.lower()
    tokens = [t for t in re.split(r"[_\s\-]+", label) if t]

    for category in VocabularyLoader.get_instance().get_categories():
        if any(_keyword_matches(k, label, tokens) for k in category["keywords"]):
            return category["placeholder"]

    tag = _NON_TAG.sub("_", label.upper()).strip("_")
    return f"[{tag or 'ENTITY'}]"


def _numbered(base: str, n: int) -> str:
    return base if n == 1 else f"{base[:-1]}_{n}]"


def _bases(spans: Dict[str, str]) -> Dict[str, str]:
    ordered = sorted((s for s in spans if s and s.strip()), key=lambda s: (-len(s), s))
    return {span: placeholder_for(spans[span]) for span in ordered}


def build_placeholder_table(spans: Dict[str, str]) -> Dict[str, str]:
    """Assigns a unique placeholder to every span in a ``span -> entity`` map.

    The first span of a category gets the bare category tag; later spans
    of the same category get ``[TAG_2]``, ``[TAG_3]`` and so on.

    Returns:
        Dictionary of span -> placeholder, ordered longest span first
    """
    counts: Counter = Counter()
    table: Dict[str, str] = {}
    for span, base in _bases(spans).items():
        counts[base] += 1
        table[span] = _numbered(base, counts[base])

    return table


def _overlaps(start: int, end: int, claimed: Iterable[Tuple[int, int]]) -> bool:
    return any(start < c_end and end > c_start for c_start, c_end in claimed)


def _span_pattern(span: str) -> Pattern:
    return re.compile(rf"(?<!\w){re.escape(span)}(?!\w)", flags=re.IGNORECASE)


def find_occurrences(text: str, table: Dict[str, str]) -> Tuple[List[Occurrence], List[str]]:
    """Locates every case-insensitive, word-anchored occurrence of each span.

    Spans are tried in table order; an occurrence overlapping an already
    claimed region is skipped.

    Returns:
        Tuple of (occurrences sorted by position, spans that occur nowhere
        in the text)
    """
    claimed: List[Tuple[int, int]] = []
    occurrences: List[Occurrence] = []
    absent: List[str] = []

    for span in table:
        found = False
        for match in _span_pattern(span).finditer(text):
            found = True
            if _overlaps(match.start(), match.end(), claimed):
                continue
            claimed.append((match.start(), match.end()))
            occurrences.append(Occurrence(span, match.start(), match.end()))
        if not found:
            absent.append(span)

    return sorted(occurrences, key=lambda o: o.start), absent


def _assign_placeholders(
    text: str, occurrences: List[Occurrence], table: Dict[str, str], spans: Dict[str, str]
) -> List[str]:
    """Chooses the placeholder written for each occurrence.

    A span's table placeholder goes to its exact-cased surface form, or to
    the first form met when the exact one is absent. Every other surface
    form of the span gets the next free number of its category.
    """
    owners: Dict[str, str] = {}
    for occurrence in occurrences:
        surface = text[occurrence.start:occurrence.end]
        if surface == occurrence.span:
            owners[occurrence.span] = surface
        else:
            owners.setdefault(occurrence.span, surface)

    counts: Counter = Counter(_bases(spans).values())
    assigned: Dict[Tuple[str, str], str] = {}
    chosen: List[str] = []
    for occurrence in occurrences:
        surface = text[occurrence.start:occurrence.end]
        key = (occurrence.span, surface)
        if key not in assigned:
            if owners[occurrence.span] == surface:
                assigned[key] = table[occurrence.span]
            else:
                base = placeholder_for(spans[occurrence.span])
                counts[base] += 1
                assigned[key] = _numbered(base, counts[base])
        chosen.append(assigned[key])

    return chosen


def pseudonymize_with_table(text: str, spans: Dict[str, str]) -> SubstitutionResult:
    """Replaces mapped spans with placeholders.

    Every placeholder restores exactly the surface form it replaced;
    differently cased forms of one span get distinct placeholders.

    Returns:
        SubstitutionResult with the pseudonymized text, placeholder ->
        surface form for every placeholder written, and mapped spans that
        occur nowhere in the text
    """
    if not text or not spans:
        return SubstitutionResult(text=text, unmatched=[s for s in spans if s and s.strip()])

    table = build_placeholder_table(spans)
    occurrences, absent = find_occurrences(text, table)
    if not occurrences:
        return SubstitutionResult(text=text, unmatched=absent)

    placeholders: Dict[str, str] = {}
    results: List[RecognizerResult] = []
    operators: Dict[str, OperatorConfig] = {}
    chosen = _assign_placeholders(text, occurrences, table, spans)

    for i, (occurrence, placeholder) in enumerate(zip(occurrences, chosen)):
        placeholders[placeholder] = text[occurrence.start:occurrence.end]

        # One entity type per occurrence keeps the anonymizer from merging
        # neighbouring hits that are separated only by whitespace.
        entity_type = f"{placeholder}#{i}"
        results.append(
            RecognizerResult(
                entity_type=entity_type,
                start=occurrence.start,
                end=occurrence.end,
                score=1.0,
            )
        )
        operators[entity_type] = OperatorConfig("replace", {"new_value": placeholder})

    anonymized = _get_anonymizer().anonymize(
        text=text, analyzer_results=results, operators=operators
    )

    logger.info(
        "Pseudonymized text from entity mapping",
        extra={
            "text_length": len(text),
            "span_count": len(table),
            "replacement_count": len(results),
            "unmatched_count": len(absent),
        },
    )
    return SubstitutionResult(text=anonymized.text, placeholders=placeholders, unmatched=absent)


def pseudonymize(original_text: str, entity_mapping: Dict[str, str]) -> str:
    """Replaces every mapped span (``span -> entity``) with its placeholder.

    Without a mapping the lossy fallback heuristics are used instead.
    """
    if not entity_mapping:
        # Lazy import to prevent circular dependency
        from pseudonymization.engine import fallback

        return fallback.simulate_pseudonymization(original_text)
    return pseudonymize_with_table(original_text, entity_mapping).text


def strip_artifacts(text: str) -> str:
    """Removes commentary tags a rewriting step may have injected."""
    cleaned = text
    for pattern in VocabularyLoader.get_instance().get_artifact_patterns():
        cleaned = pattern.sub("", cleaned)
    return cleaned.rstrip() if cleaned != text else text


def restore_with_report(
    transformed_text: str,
    entity_mapping: Dict[str, str],
    expected: Optional[Iterable[str]] = None,
    placeholders: Optional[Dict[str, str]] = None,
) -> RestorationResult:
    """Reverses pseudonymization and reports placeholders that went missing.

    Args:
        transformed_text: Text returned by the rewriting step
        entity_mapping: The ``span -> entity`` mapping used on the way in
        expected: Placeholders written during pseudonymization; defaults
            to no expectation
        placeholders: Placeholder -> surface form recorded during
            pseudonymization; takes precedence over the table rebuilt from
            the mapping

    Returns:
        RestorationResult with restored text and missing placeholders
    """
    if not transformed_text:
        return RestorationResult(text=transformed_text or "", missing=list(expected or []))

    inverse = {
        ph: span for span, ph in build_placeholder_table(entity_mapping or {}).items()
    }
    inverse.update(placeholders or {})

    text = transformed_text
    restored: List[str] = []
    for placeholder in sorted(inverse, key=lambda p: (-len(p), p)):
        pattern = re.compile(re.escape(placeholder), flags=re.IGNORECASE)
        span = inverse[placeholder]
        text, count = pattern.subn(lambda _m: span, text)
        if count:
            restored.append(placeholder)

    missing = [p for p in (expected or []) if p not in restored]
    if missing:
        logger.warning(
            "Placeholders missing after rewrite; restoration is partial",
            extra={"missing_count": len(missing), "restored_count": len(restored)},
        )

    return RestorationResult(text=strip_artifacts(text), restored=restored, missing=missing)


def restore(transformed_text: str, entity_mapping: Dict[str, str]) -> str:
    """Replaces every placeholder with its original span.

    Without a mapping the fixed fallback table is used instead.
    """
    if not entity_mapping:
        # Lazy import to prevent circular dependency
        from pseudonymization.engine import fallback

        return fallback.simulate_restore(transformed_text)
    return restore_with_report(transformed_text, entity_mapping).text
