"""Layer 2 — Presidio NER for unstructured PII (names, places).

Regex can't reliably spot a person's name or a street address in OCR
output, so this layer hands those to Presidio (spaCy under the hood).
It is off by default: loading a spaCy model is slow and the real-time
path should not pay for it unless asked.
"""

from __future__ import annotations
import logging
import threading
from typing import TYPE_CHECKING

from .types import Match, PIIType

if TYPE_CHECKING:
    from presidio_analyzer import AnalyzerEngine

logger = logging.getLogger(__name__)

# One analyzer per language, built on first use
_engines: dict[str, AnalyzerEngine] = {}
_engines_lock = threading.Lock()

# Presidio entity → our type
ENTITY_MAP: dict[str, PIIType] = {
    "PERSON": PIIType.NAME,
    "LOCATION": PIIType.ADDRESS,
}


def _get_engine(language: str = "en") -> AnalyzerEngine:
    with _engines_lock:
        engine = _engines.get(language)
        if engine is None:
            from presidio_analyzer import AnalyzerEngine
            from presidio_analyzer.nlp_engine import NlpEngineProvider

            logger.info("Loading spaCy model %s_core_web_sm for NER", language)
            nlp = NlpEngineProvider(nlp_configuration={
                "nlp_engine_name": "spacy",
                "models": [{"lang_code": language, "model_name": f"{language}_core_web_sm"}],
            }).create_engine()
            engine = _engines[language] = AnalyzerEngine(nlp_engine=nlp, supported_languages=[language])
        return engine


def scan_ner(
    text: str,
    *,
    enabled: frozenset[PIIType] | set[PIIType],
    language: str = "en",
    score_threshold: float = 0.35,
) -> list[Match]:
    """Run Presidio over text, keeping only entities we map to a PIIType.

    Overlaps with regex candidates are left to the detector's resolver.
    """
    wanted = [entity for entity, pii_type in ENTITY_MAP.items() if pii_type in enabled]
    if not wanted or not text:
        return []

    engine = _get_engine(language)
    results = engine.analyze(
        text=text,
        language=language,
        entities=wanted,
        score_threshold=score_threshold,
    )

    matches: list[Match] = []
    for r in results:
        pii_type = ENTITY_MAP.get(r.entity_type)
        if pii_type is None:
            continue
        matches.append(Match(
            type=pii_type,
            start=r.start,
            end=r.end,
            text=text[r.start:r.end],
            confidence=min(float(r.score), 1.0),
            source="ner",
        ))
    return sorted(matches, key=lambda m: m.start)
