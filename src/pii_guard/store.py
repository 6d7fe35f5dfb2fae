"""Audit stores — append-only event logs with time-range queries.

Design goals:
  - Append order is preserved; ids are monotonic in append order
  - Events are never edited, only pruned by age or wiped
  - Every operation holds the store lock for one short critical section,
    so a prune is never half-visible to a concurrent query
"""

from __future__ import annotations
import itertools
import threading
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from .types import AuditEvent, AuditEventType


class AuditStoreError(Exception):
    """A store could not complete a read or write."""


class AuditStore(Protocol):
    def append(self, event: AuditEvent) -> AuditEvent: ...
    def recent(self, limit: int, event_type: AuditEventType | None = None) -> list[AuditEvent]: ...
    def between(self, start: datetime, end: datetime) -> list[AuditEvent]: ...
    def delete_before(self, cutoff: datetime) -> int: ...
    def count(self) -> int: ...
    def clear(self) -> None: ...
    def close(self) -> None: ...


def _newest_first(event: AuditEvent) -> tuple[datetime, int]:
    return (event.timestamp, event.event_id or 0)


class MemoryAuditStore:
    """In-process event log.  Lost on exit; fine for tests and short runs."""

    __slots__ = ("_events", "_ids", "_lock")

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def append(self, event: AuditEvent) -> AuditEvent:
        with self._lock:
            stored = replace(event, event_id=next(self._ids))
            self._events.append(stored)
        return stored

    def recent(self, limit: int, event_type: AuditEventType | None = None) -> list[AuditEvent]:
        if limit <= 0:
            return []
        with self._lock:
            events = [e for e in self._events if event_type is None or e.event_type == event_type]
        events.sort(key=_newest_first, reverse=True)
        return events[:limit]

    def between(self, start: datetime, end: datetime) -> list[AuditEvent]:
        with self._lock:
            events = [e for e in self._events if start <= e.timestamp <= end]
        events.sort(key=_newest_first, reverse=True)
        return events

    def delete_before(self, cutoff: datetime) -> int:
        with self._lock:
            kept = [e for e in self._events if e.timestamp >= cutoff]
            removed = len(self._events) - len(kept)
            self._events = kept
        return removed

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def count(self) -> int:
        with self._lock:
            return len(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def close(self) -> None:
        pass
