"""Privacy auditor — retention-bounded, queryable log of PII handling.

``log_event`` runs the admission policy inline (cheap: two set/enum checks
and a rolling-hour counter) and hands admitted events to a bounded queue.
A single worker thread drains the queue into the store, so the real-time
filtering path never waits on disk.  Reads wait until every event admitted
before the read has been written.

Usage:
    with PrivacyAuditor(store=SqliteAuditStore("audit.db")) as auditor:
        auditor.log_pii_detection({PIIType.EMAIL}, "OCR text filtering", "OCR")
        print(auditor.generate_audit_report(start, end))
"""

from __future__ import annotations
import logging
import queue
import threading
import time
from collections import Counter, deque
from dataclasses import fields, is_dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

from .store import AuditStore, AuditStoreError, MemoryAuditStore
from .types import (
    AuditConfig,
    AuditEvent,
    AuditEventType,
    AuditStats,
    MaskingResult,
    PIIType,
    Severity,
)

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60 * 60
COMPONENT = "PrivacyAuditor"
_STOP = object()

CRITICAL_TYPES = frozenset({PIIType.SSN, PIIType.CREDIT_CARD, PIIType.PASSPORT, PIIType.DRIVERS_LICENSE})
HIGH_TYPES = frozenset({PIIType.EMAIL, PIIType.PHONE, PIIType.DATE_OF_BIRTH})


def determine_severity(pii_types: Iterable[PIIType]) -> Severity:
    """Severity of a detection, driven by the most sensitive type seen."""
    types = set(pii_types)
    if types & CRITICAL_TYPES:
        return Severity.CRITICAL
    if types & HIGH_TYPES:
        return Severity.HIGH
    if len(types) > 3:
        return Severity.MEDIUM
    return Severity.LOW


def format_counts(counts: Mapping[PIIType, int]) -> str:
    """``{EMAIL: 1, SSN: 2}`` → ``"email:1,ssn:2"``."""
    return ",".join(f"{t.value}:{n}" for t, n in sorted(counts.items(), key=lambda kv: kv[0].value))


class PrivacyAuditor:
    """Owns one audit store and the worker that writes to it."""

    def __init__(
        self,
        config: AuditConfig | None = None,
        store: AuditStore | None = None,
        *,
        poll_interval: float = 1.0,
    ) -> None:
        self.config = config or AuditConfig()
        self.store: AuditStore = store if store is not None else MemoryAuditStore()
        self._clock = time.monotonic
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, self.config.queue_size))
        self._poll_interval = poll_interval

        # Admission state
        self._admit_lock = threading.Lock()
        self._window: deque[float] = deque()
        self._admitted = 0
        self._counters: Counter[str] = Counter()

        # Write progress, for read-your-writes
        self._progress = threading.Condition()
        self._processed = 0

        self._closed = False
        self._last_cleanup = self._clock()
        self._thread = threading.Thread(target=self._process, name="privacy-auditor", daemon=True)
        self._thread.start()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> bool:
        """Admit an event for persistence.  Never blocks, never raises.

        Returns whether the event was admitted; rejected events are
        dropped silently (not queued or retried).
        """
        with self._admit_lock:
            cfg = self.config
            if self._closed:
                self._counters["dropped_closed"] += 1
                return False
            if event.event_type not in cfg.enabled_event_types:
                self._counters["filtered_type"] += 1
                return False
            if event.severity.rank < cfg.minimum_severity.rank:
                self._counters["filtered_severity"] += 1
                return False

            now = self._clock()
            while self._window and self._window[0] <= now - RATE_WINDOW_SECONDS:
                self._window.popleft()
            if len(self._window) >= cfg.max_events_per_hour:
                self._counters["rate_limited"] += 1
                logger.debug("Audit rate limit reached; dropping %s event", event.event_type.value)
                return False

            try:
                self._queue.put_nowait(event)
            except queue.Full:
                self._counters["queue_full"] += 1
                logger.warning("Audit queue full; dropping %s event", event.event_type.value)
                return False

            self._window.append(now)
            self._admitted += 1
            self._counters["accepted"] += 1
        return True

    def update_config(self, new_config: AuditConfig) -> dict[str, str]:
        """Swap the admission/retention policy; returns (and audits) the diff.

        ``queue_size`` only takes effect at construction.  The change event
        itself is admitted under the new policy.
        """
        with self._admit_lock:
            changes = config_diff(self.config, new_config)
            self.config = new_config
        self.log_config_change(COMPONENT, changes)
        return changes

    def log_pii_detection(self, pii_types: Iterable[PIIType], context: str, source: str,
                          metadata: Mapping[str, str] | None = None) -> bool:
        types = frozenset(pii_types)
        return self.log_event(AuditEvent(
            event_type=AuditEventType.PII_DETECTED,
            pii_types=types,
            context=context,
            source_component=source,
            severity=determine_severity(types),
            metadata={"count": str(len(types)), **(metadata or {})},
        ))

    def log_pii_masking(self, pii_types: Iterable[PIIType], result: MaskingResult, source: str) -> bool:
        return self.log_event(AuditEvent(
            event_type=AuditEventType.PII_MASKED,
            pii_types=frozenset(pii_types),
            context=f"Masked {result.masked_count} PII instances",
            source_component=source,
            severity=Severity.LOW,
            metadata={
                "masked_count": str(result.masked_count),
                "masking_map": format_counts(result.masking_map),
            },
        ))

    def log_config_change(self, component: str, changes: Mapping[str, str]) -> bool:
        return self.log_event(AuditEvent(
            event_type=AuditEventType.CONFIG_CHANGED,
            context="Privacy configuration updated",
            source_component=component,
            severity=Severity.MEDIUM,
            metadata=changes,
        ))

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Newest first."""
        self.flush()
        try:
            return self.store.recent(limit)
        except AuditStoreError:
            logger.exception("Audit store read failed")
            return []

    def get_events(self, event_type: AuditEventType, limit: int = 100) -> list[AuditEvent]:
        """Newest first, only ``event_type``."""
        self.flush()
        try:
            return self.store.recent(limit, event_type)
        except AuditStoreError:
            logger.exception("Audit store read failed")
            return []

    def get_audit_stats(self, start: datetime, end: datetime) -> AuditStats:
        """Exact aggregates over events with ``start <= timestamp <= end``."""
        self.flush()
        try:
            events = self.store.between(_aware(start), _aware(end))
        except AuditStoreError:
            logger.exception("Audit store read failed")
            events = []

        by_type: Counter[AuditEventType] = Counter()
        by_severity: Counter[Severity] = Counter()
        by_pii: Counter[PIIType] = Counter()
        by_source: Counter[str] = Counter()
        for event in events:
            by_type[event.event_type] += 1
            by_severity[event.severity] += 1
            by_source[event.source_component] += 1
            by_pii.update(event.pii_types)

        return AuditStats(
            total_events=len(events),
            events_by_type=dict(by_type),
            events_by_severity=dict(by_severity),
            pii_type_frequency=dict(by_pii),
            top_sources=sorted(by_source.items(), key=lambda kv: (-kv[1], kv[0]))[:5],
            start=start,
            end=end,
        )

    def generate_audit_report(self, start: datetime, end: datetime) -> str:
        """Markdown summary of the audit trail for a period."""
        stats = self.get_audit_stats(start, end)
        lines = [
            "# Privacy Audit Report",
            "",
            f"**Period:** {_fmt_time(start)} - {_fmt_time(end)}",
            f"**Total Events:** {stats.total_events}",
            "",
            "## Events by Type",
        ]
        lines += _bullets((t.description, n) for t, n in stats.events_by_type.items())
        lines += ["", "## Events by Severity"]
        lines += _bullets((s.description, n) for s, n in stats.events_by_severity.items())
        lines += ["", "## PII Types Detected"]
        lines += _bullets((t.description, n) for t, n in stats.pii_type_frequency.items())
        lines += ["", "## Top Sources"]
        lines += _bullets(stats.top_sources)
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup_old_records(self) -> int:
        """Delete events older than the retention window; returns how many."""
        self.flush()
        return self._prune()

    def wipe(self) -> None:
        """Remove every stored event."""
        self.flush()
        try:
            self.store.clear()
        except AuditStoreError:
            logger.exception("Audit store wipe failed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every event admitted so far has been written."""
        with self._admit_lock:
            target = self._admitted
        with self._progress:
            return self._progress.wait_for(lambda: self._processed >= target, timeout=timeout)

    def close(self, timeout: float | None = 5.0) -> None:
        """Drain pending events, stop the worker and close the store."""
        with self._admit_lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_STOP)
        self._thread.join(timeout)
        try:
            self.store.close()
        except AuditStoreError:
            logger.exception("Audit store close failed")

    def __enter__(self) -> PrivacyAuditor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def stats(self) -> dict[str, int]:
        with self._admit_lock:
            counters = dict(self._counters)
        counters["pending"] = self._queue.qsize()
        return counters

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _process(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                self._maybe_cleanup()
                continue
            if item is _STOP:
                break
            try:
                self._write(item)
            finally:
                with self._progress:
                    self._processed += 1
                    self._progress.notify_all()
            self._maybe_cleanup()

    def _write(self, event: AuditEvent) -> None:
        try:
            stored = self.store.append(event)
        except (AuditStoreError, OSError):
            with self._admit_lock:
                self._counters["failed_writes"] += 1
            logger.exception("Failed to persist %s audit event", event.event_type.value)
            return
        except Exception:
            # Keep the worker alive: a dead worker would stall every reader
            with self._admit_lock:
                self._counters["failed_writes"] += 1
            logger.exception("Unexpected error persisting audit event")
            return

        if self.config.enable_real_time_alerts and stored.severity is Severity.CRITICAL:
            logger.warning(
                "CRITICAL PRIVACY EVENT: %s - %s (source=%s)",
                stored.event_type.value, stored.context, stored.source_component,
            )

    def _maybe_cleanup(self) -> None:
        interval = self.config.cleanup_interval
        if interval is None or self._clock() - self._last_cleanup < interval:
            return
        self._last_cleanup = self._clock()
        self._prune()

    def _prune(self) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.config.retention_days)
        try:
            removed = self.store.delete_before(cutoff)
        except AuditStoreError:
            logger.exception("Audit retention cleanup failed")
            return 0
        if removed:
            logger.info("Removed %d audit events older than %s", removed, cutoff.isoformat())
        return removed


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _fmt_time(ts: datetime) -> str:
    return _aware(ts).astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _bullets(items: Iterable[tuple[str, int]]) -> list[str]:
    rows = sorted(items, key=lambda kv: (-kv[1], kv[0]))
    if not rows:
        return ["- None"]
    return [f"- {label}: {count}" for label, count in rows]


def config_diff(old: Any, new: Any, prefix: str = "") -> dict[str, str]:
    """Changed dataclass fields as ``{dotted.name: stringified new value}``."""
    changes: dict[str, str] = {}
    for f in fields(new):
        before = getattr(old, f.name)
        after = getattr(new, f.name)
        if before == after:
            continue
        key = prefix + f.name
        if is_dataclass(after) and is_dataclass(before):
            changes.update(config_diff(before, after, prefix=f"{key}."))
        else:
            changes[key] = stringify(after)
    return changes


def stringify(value: Any) -> str:
    """Stable text form for audit metadata.  Key material is never written."""
    if isinstance(value, (bytes, bytearray)):
        return "<secret>"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (set, frozenset, list, tuple)):
        return ",".join(sorted(stringify(v) for v in value))
    if isinstance(value, dict) or hasattr(value, "items"):
        return ",".join(sorted(f"{stringify(k)}={stringify(v)}" for k, v in value.items()))
    if value is None:
        return "none"
    return str(value)
