"""PII filter — the storage-admission policy for OCR text.

Usage:
    auditor = PrivacyAuditor(store=SqliteAuditStore("audit.db"))
    pii_filter = PIIFilter(FilterConfig(allowed_pii_types=frozenset({PIIType.EMAIL})), auditor)

    result = pii_filter.filter_text("SSN: 123-45-6789", source="VisionOCR")
    result.should_store     # False
    result.filtered_text    # BLOCKED_MARKER

Masking applies to every detected match; the allow-list only decides
whether the masked text may be stored at all.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable

from .auditor import PrivacyAuditor, config_diff
from .detector import PIIDetector
from .masker import PIIMasker
from .types import FilterConfig, FilterResult, PIIAnalysis

logger = logging.getLogger(__name__)

BLOCKED_MARKER = "[CONTENT BLOCKED - CONTAINS PII]"
HIGH_CONFIDENCE = 0.8
COMPONENT = "PIIFilter"


@dataclass(frozen=True)
class _Snapshot:
    """Everything a filtering call reads, published as one reference."""
    config: FilterConfig
    detector: PIIDetector
    masker: PIIMasker


def _build(config: FilterConfig) -> _Snapshot:
    detector = PIIDetector(config.detection)
    return _Snapshot(config, detector, PIIMasker(config.masking, detector))


class PIIFilter:
    """Real-time PII filter for the OCR processing pipeline."""

    def __init__(
        self,
        config: FilterConfig | None = None,
        auditor: PrivacyAuditor | None = None,
    ) -> None:
        self._snapshot = _build(config or FilterConfig())
        self._update_lock = threading.Lock()
        self._owns_auditor = auditor is None
        self.auditor = auditor if auditor is not None else PrivacyAuditor()

    @property
    def config(self) -> FilterConfig:
        return self._snapshot.config

    def filter_text(self, text: str, source: str = "OCR", metadata: Any = None) -> FilterResult:
        """Mask PII in text and decide whether it may be stored."""
        snap = self._snapshot
        cfg = snap.config

        if not cfg.enable_real_time_filtering:
            return FilterResult(original_text=text, filtered_text=text, metadata=metadata)

        matches = snap.detector.detect(text)
        if not matches:
            return FilterResult(original_text=text, filtered_text=text, metadata=metadata)

        detected = frozenset(m.type for m in matches)
        blocked = detected - cfg.allowed_pii_types
        should_store = not (cfg.prevent_pii_storage and blocked)

        self.auditor.log_pii_detection(
            detected,
            "OCR text filtering",
            source,
            metadata={
                "blocked_types": ",".join(sorted(t.value for t in blocked)),
                "should_store": str(should_store).lower(),
            },
        )

        if should_store:
            masked = snap.masker.apply(text, matches)
            self.auditor.log_pii_masking(masked.masking_map.keys(), masked, source)
            filtered = masked.masked_text
        else:
            filtered = BLOCKED_MARKER

        if cfg.log_filtered_content:
            # Lengths and types only; never the text itself
            logger.info(
                "%s from %s: %d -> %d chars, detected=%s blocked=%s",
                "Stored masked text" if should_store else "Blocked text",
                source, len(text), len(filtered),
                ",".join(sorted(t.value for t in detected)) or "-",
                ",".join(sorted(t.value for t in blocked)) or "-",
            )

        return FilterResult(
            original_text=text,
            filtered_text=filtered,
            contained_pii=True,
            detected_types=detected,
            blocked_types=blocked,
            masking_applied=should_store,
            should_store=should_store,
            metadata=metadata,
        )

    def filter_batch(
        self, items: Iterable[tuple[str, Any]], source: str = "OCR"
    ) -> list[FilterResult]:
        """Filter ``(text, metadata)`` pairs, keeping order and metadata."""
        return [self.filter_text(text, source=source, metadata=meta) for text, meta in items]

    def should_block_storage(self, text: str) -> bool:
        """``not filter_text(text).should_store``, without masking or auditing."""
        snap = self._snapshot
        cfg = snap.config
        if not (cfg.enable_real_time_filtering and cfg.prevent_pii_storage):
            return False
        detected = snap.detector.get_pii_types(text)
        return bool(detected - cfg.allowed_pii_types)

    def analyze(self, text: str) -> PIIAnalysis:
        """Summarise the PII in text without filtering or auditing."""
        matches = self._snapshot.detector.detect(text)
        return PIIAnalysis(
            contains_pii=bool(matches),
            detected_types=frozenset(m.type for m in matches),
            total_matches=len(matches),
            high_confidence_matches=sum(m.confidence >= HIGH_CONFIDENCE for m in matches),
            average_confidence=sum(m.confidence for m in matches) / len(matches) if matches else 0.0,
            matches=matches,
        )

    def update_config(self, new_config: FilterConfig) -> dict[str, str]:
        """Swap in a new config; returns (and audits) the changed fields."""
        with self._update_lock:
            old = self._snapshot.config
            changes = config_diff(old, new_config)
            self._snapshot = _build(new_config)
        self.auditor.log_config_change(COMPONENT, changes)
        return changes

    def close(self) -> None:
        """Close the auditor if this filter created it."""
        if self._owns_auditor:
            self.auditor.close()
