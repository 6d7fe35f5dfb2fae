"""Detector — finds PII spans in OCR text.

Layered like this:

    Layer 1: regex recognizers (emails, phones, SSNs, cards, IPs, ...)
    Layer 2: Presidio NER for names and addresses (opt-in)

Candidates from every layer are scored, thresholded, and resolved into a
sorted, non-overlapping list.  Offsets are ``str`` indices (code points),
the same indices the masker slices with.

Usage:
    detector = PIIDetector()
    for m in detector.detect("Contact me at john.doe@company.com"):
        print(m.type, m.start, m.end, m.confidence)
"""

from __future__ import annotations
from dataclasses import replace
from typing import Iterator

from .patterns import build_recognizers, resolve_overlaps, scan_regex
from .types import DetectionConfig, Match, PIIType

# Words that make any candidate in the same text more credible
PRIVACY_KEYWORDS = ("personal", "private", "confidential", "sensitive", "ssn", "social security")
CONTEXT_BOOST = 0.1


class PIIDetector:
    """Stateless PII scanner; safe to share between threads."""

    def __init__(self, config: DetectionConfig | None = None) -> None:
        self.config = config or DetectionConfig()
        self._recognizers = build_recognizers(
            self.config.enabled_types, self.config.custom_patterns
        )

    def detect(self, text: str) -> list[Match]:
        """Return ordered, non-overlapping matches above the threshold."""
        if not text:
            return []
        candidates = list(self._candidates(text))
        return [self._with_context(m, text) for m in resolve_overlaps(candidates)]

    def contains_pii(self, text: str) -> bool:
        """Stops at the first credible candidate."""
        if not text:
            return False
        return next(self._candidates(text), None) is not None

    def get_pii_types(self, text: str) -> set[PIIType]:
        return {m.type for m in self.detect(text)}

    # ------------------------------------------------------------------

    def _candidates(self, text: str) -> Iterator[Match]:
        boost = CONTEXT_BOOST if _has_privacy_context(text) else 0.0
        threshold = self.config.minimum_confidence

        for m in self._raw_candidates(text):
            score = round(min(m.confidence + boost, 1.0), 4)
            if score >= threshold:
                yield _rescore(m, score)

    def _raw_candidates(self, text: str) -> Iterator[Match]:
        yield from scan_regex(text, self._recognizers)

        if self.config.use_ner:
            from .ner_layer import scan_ner
            yield from scan_ner(
                text,
                enabled=self.config.enabled_types,
                language=self.config.ner_language,
                score_threshold=self.config.ner_threshold,
            )

    def _with_context(self, m: Match, text: str) -> Match:
        window = self.config.context_window
        return replace(m, context=text[max(0, m.start - window):m.end + window])


def _has_privacy_context(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in PRIVACY_KEYWORDS)


def _rescore(m: Match, score: float) -> Match:
    return m if score == m.confidence else replace(m, confidence=score)
