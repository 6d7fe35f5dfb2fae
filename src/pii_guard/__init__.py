"""PII Guard — detect, mask and audit PII in screen-capture OCR text."""

from .detector import PIIDetector
from .masker import PIIMasker
from .filter import PIIFilter, BLOCKED_MARKER
from .auditor import PrivacyAuditor
from .store import MemoryAuditStore, AuditStoreError
from .store_sqlite import SqliteAuditStore
from .config import create_filter, load_config, load_from_yaml
from .types import (
    AuditConfig,
    AuditEvent,
    AuditEventType,
    AuditStats,
    DetectionConfig,
    FilterConfig,
    FilterResult,
    MaskingConfig,
    MaskingResult,
    MaskingStrategy,
    Match,
    PIIAnalysis,
    PIIType,
    Severity,
)

__all__ = [
    "PIIDetector", "PIIMasker", "PIIFilter", "BLOCKED_MARKER",
    "PrivacyAuditor",
    "MemoryAuditStore", "SqliteAuditStore", "AuditStoreError",
    "create_filter", "load_config", "load_from_yaml",
    "AuditConfig", "AuditEvent", "AuditEventType", "AuditStats",
    "DetectionConfig", "FilterConfig", "FilterResult",
    "MaskingConfig", "MaskingResult", "MaskingStrategy",
    "Match", "PIIAnalysis", "PIIType", "Severity",
]
__version__ = "0.1.0"
