# pseudonymization/engine/fallback.py

"""Local simulation used when no entity mapping is available.

This path is lossy: regex heuristics replace likely entities with generic
placeholders, and the way back substitutes fixed sample values from the
vocabulary rather than the original text. Nothing is stored to invert.
"""

import re
import logging
from typing import Dict, List

from presidio_analyzer import Pattern, PatternRecognizer, RecognizerResult
from presidio_anonymizer import AnonymizerEngine
from presidio_anonymizer.entities import OperatorConfig, RecognizerResult as AnonymizerResult

from pseudonymization.core.loader import VocabularyLoader
from pseudonymization.engine.substitution import strip_artifacts

logger = logging.getLogger(__name__)

# Case-sensitive on purpose: the person heuristic depends on capitalization.
_REGEX_FLAGS = re.MULTILINE

_recognizers: List[PatternRecognizer] = []
_operators: Dict[str, OperatorConfig] = {}
_anonymizer = None


def _load() -> None:
    """Builds the heuristic recognizers from the vocabulary once."""
    global _anonymizer

    if _recognizers:
        return

    for entry in VocabularyLoader.get_instance().get_fallback_patterns():
        entity = entry["entity"]
        _recognizers.append(
            PatternRecognizer(
                supported_entity=entity,
                name=f"Fallback_{entry['name']}",
                patterns=[Pattern(name=entry["name"], regex=entry["regex"], score=entry["score"])],
                global_regex_flags=_REGEX_FLAGS,
            )
        )
        _operators[entity] = OperatorConfig("replace", {"new_value": entry["placeholder"]})

    _anonymizer = AnonymizerEngine()
    logger.info(
        "Fallback recognizers initialized",
        extra={"recognizer_count": len(_recognizers)},
    )


def detect(text: str) -> List[RecognizerResult]:
    """Runs every heuristic recognizer over the text."""
    _load()
    results: List[RecognizerResult] = []
    for recognizer in _recognizers:
        results.extend(
            recognizer.analyze(text=text, entities=recognizer.supported_entities)
        )
    return results


def simulate_pseudonymization(text: str) -> str:
    """Replaces capitalized word pairs, long digit runs, and e-mail shapes.

    Every match is written as its own placeholder, adjacent matches included.
    """
    if not text:
        return text or ""

    detected = detect(text)
    if not detected:
        return text

    results: List[AnonymizerResult] = []
    operators: Dict[str, OperatorConfig] = {}
    for i, result in enumerate(sorted(detected, key=lambda r: (r.start, r.end))):
        entity_type = f"{result.entity_type}#{i}"
        results.append(
            AnonymizerResult(
                entity_type=entity_type, start=result.start, end=result.end, score=result.score
            )
        )
        operators[entity_type] = _operators[result.entity_type]

    anonymized = _anonymizer.anonymize(text=text, analyzer_results=results, operators=operators)
    logger.info(
        "Pseudonymized text with fallback heuristics",
        extra={"text_length": len(text), "replacement_count": len(results)},
    )
    return anonymized.text


def simulate_improvement(text: str) -> str:
    """Stands in for the language model by appending a marker note."""
    note = VocabularyLoader.get_instance().get_improvement_note()
    return f"{text}\n\n{note}" if note else text


def simulate_restore(text: str) -> str:
    """Replaces generic placeholders with fixed sample values."""
    if not text:
        return text or ""

    restored = text
    for placeholder, value in VocabularyLoader.get_instance().get_fallback_restore_table().items():
        restored = restored.replace(placeholder, value)
    return strip_artifacts(restored)
