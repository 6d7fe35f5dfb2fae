"""Core types."""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class PIIType(str, Enum):
    """Categories of personally identifiable information."""
    EMAIL = "email"
    PHONE = "phone"
    SSN = "ssn"
    CREDIT_CARD = "credit_card"
    IP_ADDRESS = "ip_address"
    MAC_ADDRESS = "mac_address"
    URL = "url"
    NAME = "name"
    ADDRESS = "address"
    DATE_OF_BIRTH = "date_of_birth"
    PASSPORT = "passport"
    DRIVERS_LICENSE = "drivers_license"

    @property
    def description(self) -> str:
        return _PII_DESCRIPTIONS[self]

    @property
    def placeholder(self) -> str:
        return _PII_PLACEHOLDERS[self]


_PII_DESCRIPTIONS = {
    PIIType.EMAIL: "Email Address",
    PIIType.PHONE: "Phone Number",
    PIIType.SSN: "Social Security Number",
    PIIType.CREDIT_CARD: "Credit Card Number",
    PIIType.IP_ADDRESS: "IP Address",
    PIIType.MAC_ADDRESS: "MAC Address",
    PIIType.URL: "URL",
    PIIType.NAME: "Personal Name",
    PIIType.ADDRESS: "Physical Address",
    PIIType.DATE_OF_BIRTH: "Date of Birth",
    PIIType.PASSPORT: "Passport Number",
    PIIType.DRIVERS_LICENSE: "Driver's License",
}

_PII_PLACEHOLDERS = {
    PIIType.EMAIL: "[EMAIL]",
    PIIType.PHONE: "[PHONE]",
    PIIType.SSN: "[SSN]",
    PIIType.CREDIT_CARD: "[CREDIT_CARD]",
    PIIType.IP_ADDRESS: "[IP_ADDRESS]",
    PIIType.MAC_ADDRESS: "[MAC_ADDRESS]",
    PIIType.URL: "[URL]",
    PIIType.NAME: "[NAME]",
    PIIType.ADDRESS: "[ADDRESS]",
    PIIType.DATE_OF_BIRTH: "[DOB]",
    PIIType.PASSPORT: "[PASSPORT]",
    PIIType.DRIVERS_LICENSE: "[LICENSE]",
}

# Tie-break order for overlapping candidates, most specific first.
TYPE_PRIORITY: tuple[PIIType, ...] = (
    PIIType.SSN,
    PIIType.CREDIT_CARD,
    PIIType.EMAIL,
    PIIType.PHONE,
    PIIType.IP_ADDRESS,
    PIIType.URL,
    PIIType.MAC_ADDRESS,
    PIIType.DATE_OF_BIRTH,
    PIIType.PASSPORT,
    PIIType.DRIVERS_LICENSE,
    PIIType.NAME,
    PIIType.ADDRESS,
)


@dataclass(frozen=True, slots=True)
class Match:
    """A single detected PII span.

    ``start``/``end`` are half-open ``str`` indices (code points) into the
    scanned text, so ``text == original[start:end]``.
    """
    type: PIIType
    start: int
    end: int
    text: str
    confidence: float      # 0.0–1.0
    context: str = ""      # surrounding characters, for review UIs
    source: str = "regex"  # "regex" | "ner"

    @property
    def length(self) -> int:
        return self.end - self.start


class MaskingStrategy(str, Enum):
    REDACT = "redact"
    HASH = "hash"
    ASTERISK = "asterisk"
    PLACEHOLDER = "placeholder"
    PARTIAL = "partial"
    REMOVE = "remove"


DEFAULT_STRATEGIES: Mapping[PIIType, MaskingStrategy] = MappingProxyType({
    PIIType.EMAIL: MaskingStrategy.PARTIAL,
    PIIType.PHONE: MaskingStrategy.PARTIAL,
    PIIType.SSN: MaskingStrategy.REDACT,
    PIIType.CREDIT_CARD: MaskingStrategy.PARTIAL,
    PIIType.IP_ADDRESS: MaskingStrategy.ASTERISK,
    PIIType.MAC_ADDRESS: MaskingStrategy.ASTERISK,
    PIIType.URL: MaskingStrategy.PLACEHOLDER,
    PIIType.NAME: MaskingStrategy.HASH,
    PIIType.ADDRESS: MaskingStrategy.REDACT,
    PIIType.DATE_OF_BIRTH: MaskingStrategy.REDACT,
    PIIType.PASSPORT: MaskingStrategy.REDACT,
    PIIType.DRIVERS_LICENSE: MaskingStrategy.REDACT,
})


@dataclass(frozen=True)
class DetectionConfig:
    """Detector sensitivity and pattern overrides."""
    enabled_types: frozenset[PIIType] = frozenset(PIIType)
    minimum_confidence: float = 0.7
    context_window: int = 20
    # PIIType → regex source replacing the built-in pattern
    custom_patterns: Mapping[PIIType, str] = field(default_factory=dict)
    use_ner: bool = False              # enable the Presidio layer
    ner_language: str = "en"
    ner_threshold: float = 0.35


@dataclass(frozen=True)
class MaskingConfig:
    """Per-type masking strategies."""
    strategies: Mapping[PIIType, MaskingStrategy] = field(default_factory=lambda: DEFAULT_STRATEGIES)
    default_strategy: MaskingStrategy = MaskingStrategy.REDACT
    preserve_length: bool = True
    partial_masking_ratio: float = 0.6
    # HMAC key for the hash strategy; None = process-wide random key
    hash_key: bytes | None = field(default=None, repr=False)


@dataclass(slots=True)
class MaskingResult:
    """Result of masking one text block."""
    masked_text: str
    masked_count: int = 0
    masking_map: dict[PIIType, int] = field(default_factory=dict)
    # (start, end) spans of the original text copied through verbatim
    preserved_ranges: list[tuple[int, int]] = field(default_factory=list)
    matches: list[Match] = field(default_factory=list)


@dataclass(frozen=True)
class FilterConfig:
    """Storage policy. Replaced wholesale via ``PIIFilter.update_config``."""
    allowed_pii_types: frozenset[PIIType] = frozenset()
    prevent_pii_storage: bool = True
    enable_real_time_filtering: bool = True
    log_filtered_content: bool = True     # one summary log line per filtered block
    masking: MaskingConfig = field(default_factory=MaskingConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)


@dataclass(slots=True)
class FilterResult:
    """Outcome of filtering one OCR text block."""
    original_text: str
    filtered_text: str
    contained_pii: bool = False
    detected_types: frozenset[PIIType] = frozenset()
    blocked_types: frozenset[PIIType] = frozenset()
    masking_applied: bool = False
    should_store: bool = True
    metadata: Any = None   # passed through untouched from the caller


@dataclass(slots=True)
class PIIAnalysis:
    contains_pii: bool
    detected_types: frozenset[PIIType]
    total_matches: int
    high_confidence_matches: int
    average_confidence: float
    matches: list[Match] = field(default_factory=list)


# ── Audit ────────────────────────────────────────────────────────────

class AuditEventType(str, Enum):
    PII_DETECTED = "pii_detected"
    PII_MASKED = "pii_masked"
    PII_STORED = "pii_stored"
    PII_ACCESSED = "pii_accessed"
    PII_DELETED = "pii_deleted"
    CONFIG_CHANGED = "config_changed"
    AUDIT_VIEWED = "audit_viewed"

    @property
    def description(self) -> str:
        return _EVENT_DESCRIPTIONS[self]


_EVENT_DESCRIPTIONS = {
    AuditEventType.PII_DETECTED: "PII Detected",
    AuditEventType.PII_MASKED: "PII Masked",
    AuditEventType.PII_STORED: "PII Stored",
    AuditEventType.PII_ACCESSED: "PII Accessed",
    AuditEventType.PII_DELETED: "PII Deleted",
    AuditEventType.CONFIG_CHANGED: "Configuration Changed",
    AuditEventType.AUDIT_VIEWED: "Audit Log Viewed",
}


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def description(self) -> str:
        return self.value.capitalize()


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """An immutable privacy audit record.

    ``event_id`` is assigned by the store when the event is appended.
    """
    event_type: AuditEventType
    context: str
    source_component: str
    pii_types: frozenset[PIIType] = frozenset()
    severity: Severity = Severity.MEDIUM
    metadata: Mapping[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)
    event_id: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "pii_types", frozenset(self.pii_types))
        object.__setattr__(
            self, "metadata", MappingProxyType({str(k): str(v) for k, v in self.metadata.items()})
        )
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))


@dataclass(frozen=True)
class AuditConfig:
    """Admission and retention policy for the auditor."""
    retention_days: int = 90
    enabled_event_types: frozenset[AuditEventType] = frozenset(AuditEventType)
    minimum_severity: Severity = Severity.LOW
    max_events_per_hour: int = 1000
    enable_real_time_alerts: bool = True
    queue_size: int = 10_000
    cleanup_interval: float | None = 24 * 60 * 60   # seconds; None disables


@dataclass(slots=True)
class AuditStats:
    """Exact aggregates over ``[start, end]``."""
    total_events: int = 0
    events_by_type: dict[AuditEventType, int] = field(default_factory=dict)
    events_by_severity: dict[Severity, int] = field(default_factory=dict)
    pii_type_frequency: dict[PIIType, int] = field(default_factory=dict)
    top_sources: list[tuple[str, int]] = field(default_factory=list)
    start: datetime | None = None
    end: datetime | None = None
