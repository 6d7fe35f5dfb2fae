"""Shared fixtures for the pii-guard test suite."""

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from pii_guard import PrivacyAuditor, AuditConfig


@pytest.fixture
def auditor():
    """In-memory auditor with periodic cleanup disabled."""
    a = PrivacyAuditor(AuditConfig(cleanup_interval=None), poll_interval=0.05)
    yield a
    a.close()


class FakeClock:
    """Stand-in for ``time.monotonic`` that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
