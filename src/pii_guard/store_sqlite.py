"""Persistent audit store backed by SQLite — survives process restarts.

Drop-in replacement for MemoryAuditStore when the audit trail must be
durable.

Usage:
    store = SqliteAuditStore("~/.pii-guard/privacy_audit.db")
    auditor = PrivacyAuditor(store=store)
"""

from __future__ import annotations
import json
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path

from .store import AuditStoreError
from .types import AuditEvent, AuditEventType, PIIType, Severity

_SCHEMA = """
CREATE TABLE IF NOT EXISTS privacy_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    event_type TEXT NOT NULL,
    pii_types TEXT NOT NULL DEFAULT '[]',
    context TEXT NOT NULL DEFAULT '',
    source_component TEXT NOT NULL DEFAULT '',
    severity TEXT NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_events_timestamp
    ON privacy_events(timestamp);
CREATE INDEX IF NOT EXISTS idx_events_type
    ON privacy_events(event_type, timestamp);
"""

_COLUMNS = "id, timestamp, event_type, pii_types, context, source_component, severity, metadata"


class SqliteAuditStore:
    """Durable append-only event log."""

    __slots__ = ("_path", "_db", "_lock")

    def __init__(self, db_path: str | Path = "privacy_audit.db") -> None:
        self._lock = threading.Lock()
        try:
            if str(db_path) == ":memory:":
                self._path = db_path
            else:
                self._path = Path(db_path).expanduser()
                self._path.parent.mkdir(parents=True, exist_ok=True)
            self._db = sqlite3.connect(str(self._path), check_same_thread=False)
            self._db.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise AuditStoreError(f"cannot open audit database {db_path}: {exc}") from exc

    def append(self, event: AuditEvent) -> AuditEvent:
        row = (
            event.timestamp.timestamp(),
            event.event_type.value,
            json.dumps(sorted(t.value for t in event.pii_types)),
            event.context,
            event.source_component,
            event.severity.value,
            json.dumps(dict(event.metadata), sort_keys=True),
        )
        with self._lock:
            try:
                cur = self._db.execute(
                    "INSERT INTO privacy_events "
                    "(timestamp, event_type, pii_types, context, source_component, severity, metadata) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    row,
                )
                self._db.commit()
            except sqlite3.Error as exc:
                raise AuditStoreError(str(exc)) from exc
        return replace(event, event_id=cur.lastrowid)

    def recent(self, limit: int, event_type: AuditEventType | None = None) -> list[AuditEvent]:
        if limit <= 0:
            return []
        if event_type is None:
            sql = f"SELECT {_COLUMNS} FROM privacy_events ORDER BY timestamp DESC, id DESC LIMIT ?"
            params: tuple = (limit,)
        else:
            sql = (
                f"SELECT {_COLUMNS} FROM privacy_events WHERE event_type = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?"
            )
            params = (event_type.value, limit)
        return self._select(sql, params)

    def between(self, start: datetime, end: datetime) -> list[AuditEvent]:
        return self._select(
            f"SELECT {_COLUMNS} FROM privacy_events WHERE timestamp BETWEEN ? AND ? "
            "ORDER BY timestamp DESC, id DESC",
            (start.timestamp(), end.timestamp()),
        )

    def delete_before(self, cutoff: datetime) -> int:
        with self._lock:
            try:
                cur = self._db.execute(
                    "DELETE FROM privacy_events WHERE timestamp < ?", (cutoff.timestamp(),)
                )
                self._db.commit()
            except sqlite3.Error as exc:
                raise AuditStoreError(str(exc)) from exc
        return cur.rowcount

    def count(self) -> int:
        with self._lock:
            try:
                return self._db.execute("SELECT COUNT(*) FROM privacy_events").fetchone()[0]
            except sqlite3.Error as exc:
                raise AuditStoreError(str(exc)) from exc

    def clear(self) -> None:
        with self._lock:
            try:
                self._db.execute("DELETE FROM privacy_events")
                self._db.commit()
            except sqlite3.Error as exc:
                raise AuditStoreError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            self._db.close()

    # ------------------------------------------------------------------

    def _select(self, sql: str, params: tuple) -> list[AuditEvent]:
        with self._lock:
            try:
                rows = self._db.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise AuditStoreError(str(exc)) from exc
        events = []
        for row in rows:
            event = _row_to_event(row)
            if event is not None:
                events.append(event)
        return events


def _row_to_event(row: tuple) -> AuditEvent | None:
    """Decode a row; rows written by an incompatible version are skipped."""
    event_id, ts, event_type, pii_json, context, source, severity, meta_json = row
    try:
        return AuditEvent(
            event_type=AuditEventType(event_type),
            context=context,
            source_component=source,
            pii_types=frozenset(PIIType(t) for t in json.loads(pii_json)),
            severity=Severity(severity),
            metadata=json.loads(meta_json),
            timestamp=datetime.fromtimestamp(ts, tz=timezone.utc),
            event_id=event_id,
        )
    except (ValueError, TypeError, AttributeError):
        return None
