"""YAML/dict config loader for pii-guard.

Builds ``FilterConfig`` / ``AuditConfig`` from a plain dict (for embedding
in a larger app config) or a YAML file.  Settings persistence belongs to
the host application; this only translates its values.

Example YAML:

    pii_guard:
      enabled: true
      prevent_storage: true
      log_filtered_content: true
      allowed_types: [email]
      masking:
        default_strategy: redact
        strategies:
          email: partial
          ssn: hash
        preserve_length: true
        partial_ratio: 0.6
      detection:
        minimum_confidence: 0.7
        use_ner: false
      audit:
        backend: sqlite          # "memory" or "sqlite"
        path: ~/.pii-guard/privacy_audit.db
        retention_days: 90
        minimum_severity: low
        max_events_per_hour: 1000
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Iterable, TypeVar

import yaml

from .auditor import PrivacyAuditor
from .filter import PIIFilter
from .store import MemoryAuditStore
from .store_sqlite import SqliteAuditStore
from .types import (
    DEFAULT_STRATEGIES,
    AuditConfig,
    AuditEventType,
    DetectionConfig,
    FilterConfig,
    MaskingConfig,
    MaskingStrategy,
    PIIType,
    Severity,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", PIIType, AuditEventType)


def load_config(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline)."""
    # Support nested under "pii_guard" key or flat
    if "pii_guard" in data:
        data = data["pii_guard"] or {}

    masking = data.get("masking") or {}
    detection = data.get("detection") or {}
    audit = data.get("audit") or {}

    filter_config = FilterConfig(
        enable_real_time_filtering=bool(data.get("enabled", True)),
        prevent_pii_storage=bool(data.get("prevent_storage", True)),
        log_filtered_content=bool(data.get("log_filtered_content", True)),
        allowed_pii_types=_members(PIIType, data.get("allowed_types", [])),
        masking=_masking_config(masking),
        detection=_detection_config(detection),
    )

    audit_config = AuditConfig(
        retention_days=_number(int, audit, "retention_days", 90),
        enabled_event_types=(
            _members(AuditEventType, audit["event_types"])
            if "event_types" in audit else frozenset(AuditEventType)
        ),
        minimum_severity=_severity(audit.get("minimum_severity", "low")),
        max_events_per_hour=_number(int, audit, "max_events_per_hour", 1000),
        enable_real_time_alerts=bool(audit.get("real_time_alerts", True)),
    )

    return {
        "filter": filter_config,
        "audit": audit_config,
        "audit_backend": audit.get("backend", "memory"),
        "audit_path": audit.get("path", "privacy_audit.db"),
    }


def load_from_yaml(path: str | Path) -> dict[str, Any]:
    """Load config from a YAML file."""
    with open(Path(path).expanduser()) as f:
        return load_config(yaml.safe_load(f) or {})


def create_filter(config: dict[str, Any]) -> PIIFilter:
    """Create a filter wired to an auditor and store from a config dict.

    The caller owns the returned filter's auditor: call
    ``pii_filter.auditor.close()`` on shutdown.
    """
    cfg = load_config(config) if "filter" not in config else config

    if cfg["audit_backend"] == "sqlite":
        store = SqliteAuditStore(cfg["audit_path"])
    elif cfg["audit_backend"] == "memory":
        store = MemoryAuditStore()
    else:
        raise ValueError(f"unknown audit backend: {cfg['audit_backend']!r}")

    return PIIFilter(cfg["filter"], PrivacyAuditor(cfg["audit"], store))


# ── Helpers ──────────────────────────────────────────────────────────

def _masking_config(data: dict[str, Any]) -> MaskingConfig:
    strategies = dict(DEFAULT_STRATEGIES)
    for name, strategy in (data.get("strategies") or {}).items():
        pii_type = _member(PIIType, name)
        if pii_type is not None:
            strategies[pii_type] = _strategy(strategy)

    key = data.get("hash_key")
    return MaskingConfig(
        strategies=strategies,
        default_strategy=_strategy(data.get("default_strategy", "redact")),
        preserve_length=bool(data.get("preserve_length", True)),
        partial_masking_ratio=_number(float, data, "partial_ratio", 0.6),
        hash_key=key.encode("utf-8") if isinstance(key, str) else key,
    )


def _detection_config(data: dict[str, Any]) -> DetectionConfig:
    custom = {}
    for name, pattern in (data.get("custom_patterns") or {}).items():
        pii_type = _member(PIIType, name)
        if pii_type is not None:
            custom[pii_type] = str(pattern)

    return DetectionConfig(
        enabled_types=(
            _members(PIIType, data["enabled_types"])
            if "enabled_types" in data else frozenset(PIIType)
        ),
        minimum_confidence=_number(float, data, "minimum_confidence", 0.7),
        context_window=_number(int, data, "context_window", 20),
        custom_patterns=custom,
        use_ner=bool(data.get("use_ner", False)),
        ner_language=data.get("language", "en"),
        ner_threshold=_number(float, data, "ner_threshold", 0.35),
    )


def _member(enum: type[E], name: Any) -> E | None:
    try:
        return enum(str(name).strip().lower())
    except ValueError:
        logger.warning("Ignoring unknown %s %r", enum.__name__, name)
        return None


def _members(enum: type[E], names: Iterable[Any]) -> frozenset[E]:
    if isinstance(names, str):
        names = names.split(",")
    return frozenset(m for m in (_member(enum, n) for n in names) if m is not None)


def _strategy(name: Any) -> MaskingStrategy:
    try:
        return MaskingStrategy(str(name).strip().lower())
    except ValueError:
        logger.warning("Unknown masking strategy %r; using redact", name)
        return MaskingStrategy.REDACT


def _severity(name: Any) -> Severity:
    try:
        return Severity(str(name).strip().lower())
    except ValueError:
        raise ValueError(f"unknown severity: {name!r}") from None


def _number(kind: type, data: dict[str, Any], key: str, default: Any) -> Any:
    value = data.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None
