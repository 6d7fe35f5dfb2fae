"""Layer 1 — regex recognizers for structured PII.

Each recognizer pairs a format rule with a structural check.  A candidate
that passes the check gets the recognizer's ``strong`` score, otherwise
``weak``.  Weak scores sit below the default threshold, so they only
survive with a privacy keyword nearby or a lowered threshold.
"""

from __future__ import annotations
import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Iterator, Mapping

from .types import Match, PIIType, TYPE_PRIORITY

logger = logging.getLogger(__name__)

_PRIORITY = {t: i for i, t in enumerate(TYPE_PRIORITY)}


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isdigit())


def luhn_check(number: str) -> bool:
    """Luhn checksum over a string of digits."""
    if not number.isdigit():
        return False
    total = 0
    for i, ch in enumerate(reversed(number)):
        n = int(ch)
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


# ── Structural checks ────────────────────────────────────────────────
# Signature: (matched_text, full_text, start) -> bool

def _check_email(value: str, text: str, start: int) -> bool:
    local, _, domain = value.rpartition("@")
    return bool(local) and ".." not in value and not local.startswith(".") \
        and all(domain.split("."))


def _check_phone(value: str, text: str, start: int) -> bool:
    return 10 <= len(_digits(value)) <= 15


def _check_ssn(value: str, text: str, start: int) -> bool:
    # The undelimited nine-digit form is too ambiguous to trust on its own
    return len(_digits(value)) == 9 and not value.isdigit()


def _check_credit_card(value: str, text: str, start: int) -> bool:
    digits = _digits(value)
    return 13 <= len(digits) <= 19 and luhn_check(digits)


def _check_ip(value: str, text: str, start: int) -> bool:
    octets = value.split(".")
    return len(octets) == 4 and all(o.isdigit() and int(o) <= 255 for o in octets)


def _check_mac(value: str, text: str, start: int) -> bool:
    return len({ch for ch in value if ch in ":-"}) == 1


def _check_url(value: str, text: str, start: int) -> bool:
    host = value.split("://", 1)[1].split("/", 1)[0].split("?", 1)[0]
    host = host.rsplit("@", 1)[-1].split(":", 1)[0]
    return "." in host.strip(".") or host == "localhost"


def _check_date(value: str, text: str, start: int) -> bool:
    month, day, year = (int(p) for p in re.split(r"[-/]", value))
    try:
        date(year, month, day)
    except ValueError:
        return False
    return _keyword_before(text, start, ("dob", "birth", "born"))


def _keyword_check(*keywords: str) -> Callable[[str, str, int], bool]:
    def check(value: str, text: str, start: int) -> bool:
        return _keyword_before(text, start, keywords)
    return check


def _keyword_before(text: str, start: int, keywords: Iterable[str], window: int = 30) -> bool:
    prefix = text[max(0, start - window):start].lower()
    return any(k in prefix for k in keywords)


# ── Recognizers ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Recognizer:
    """One format rule for one PII type."""
    type: PIIType
    pattern: re.Pattern
    strong: float
    weak: float
    check: Callable[[str, str, int], bool]

    def scan(self, text: str) -> Iterator[Match]:
        for m in self.pattern.finditer(text):
            value = m.group()
            if not value:
                continue
            score = self.strong if self.check(value, text, m.start()) else self.weak
            yield Match(
                type=self.type,
                start=m.start(),
                end=m.end(),
                text=value,
                confidence=score,
            )


_BUILTIN: dict[PIIType, tuple[str, float, float, Callable[[str, str, int], bool]]] = {
    PIIType.EMAIL: (
        r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b",
        0.9, 0.5, _check_email,
    ),
    PIIType.PHONE: (
        r"(?<![\d+])(?:\+?1[\s.\-]?)?(?:\(\d{3}\)\s?|\d{3}[\s.\-]?)\d{3}[\s.\-]?\d{4}(?!\d)",
        0.85, 0.6, _check_phone,
    ),
    PIIType.SSN: (
        r"(?<![\d\-])(?!000|666|9\d\d)\d{3}([\s\-]?)(?!00)\d{2}\1(?!0000)\d{4}(?![\d\-])",
        0.95, 0.6, _check_ssn,
    ),
    PIIType.CREDIT_CARD: (
        r"(?<!\d)(?:4\d{3}|5[1-5]\d{2}|2[2-7]\d{2}|3[47]\d{2}|3[068]\d{2}|6(?:011|5\d{2}))"
        r"(?:[\s\-]?\d{4}){2}[\s\-]?\d{1,7}(?!\d)",
        0.9, 0.3, _check_credit_card,
    ),
    PIIType.IP_ADDRESS: (
        r"(?<![\d.])(?:\d{1,3}\.){3}\d{1,3}(?!\.?\d)",
        0.85, 0.4, _check_ip,
    ),
    PIIType.MAC_ADDRESS: (
        r"\b(?:[0-9A-Fa-f]{2}[:\-]){5}[0-9A-Fa-f]{2}\b",
        0.8, 0.5, _check_mac,
    ),
    PIIType.URL: (
        r"(?i)\bhttps?://[^\s<>\"'`]*[^\s<>\"'`.,;:!?)\]}]",
        0.9, 0.6, _check_url,
    ),
    PIIType.DATE_OF_BIRTH: (
        r"\b(?:0?[1-9]|1[0-2])[-/](?:0?[1-9]|[12]\d|3[01])[-/](?:19|20)\d{2}\b",
        0.8, 0.4, _check_date,
    ),
    PIIType.PASSPORT: (
        r"(?i)\b[A-Z]{1,2}\d{6,9}\b",
        0.85, 0.5, _keyword_check("passport"),
    ),
    PIIType.DRIVERS_LICENSE: (
        r"(?i)\b[A-Z]{1,2}\d{6,8}\b",
        0.85, 0.5, _keyword_check("license", "licence", "dl #", "dl:", "dl no"),
    ),
}


def build_recognizers(
    enabled: Iterable[PIIType],
    custom_patterns: Mapping[PIIType, str] | None = None,
) -> list[Recognizer]:
    """Compile recognizers for the enabled types.

    A custom pattern replaces the built-in regex for its type but keeps the
    structural check.  Custom patterns for types without a built-in rule
    (names, addresses) are accepted and checked as always-valid.
    """
    custom = custom_patterns or {}
    recognizers: list[Recognizer] = []
    for pii_type in sorted(set(enabled), key=lambda t: _PRIORITY[t]):
        builtin = _BUILTIN.get(pii_type)
        source = custom.get(pii_type)
        if source is not None:
            try:
                pattern = re.compile(source)
            except re.error as exc:
                logger.warning("Invalid custom pattern for %s (%s); using built-in", pii_type.value, exc)
                pattern = None
            if pattern is not None:
                if builtin is None:
                    recognizers.append(Recognizer(pii_type, pattern, 0.8, 0.8, lambda *_: True))
                else:
                    _, strong, weak, check = builtin
                    recognizers.append(Recognizer(pii_type, pattern, strong, weak, _safe(check)))
                continue
        if builtin is None:
            continue
        regex, strong, weak, check = builtin
        recognizers.append(Recognizer(pii_type, re.compile(regex), strong, weak, check))
    return recognizers


def _safe(check: Callable[[str, str, int], bool]) -> Callable[[str, str, int], bool]:
    """Structural checks assume the built-in shape; custom shapes may not fit."""
    def wrapped(value: str, text: str, start: int) -> bool:
        try:
            return check(value, text, start)
        except (ValueError, IndexError):
            return False
    return wrapped


def scan_regex(text: str, recognizers: Iterable[Recognizer]) -> Iterator[Match]:
    """Yield raw, possibly overlapping candidates from every recognizer."""
    for recognizer in recognizers:
        yield from recognizer.scan(text)


def resolve_overlaps(matches: Iterable[Match]) -> list[Match]:
    """Drop overlapping candidates; return the survivors sorted by start.

    Ranking: higher confidence, then longer span, then ``TYPE_PRIORITY``,
    then earlier start.  Each candidate is kept only if it does not overlap
    a better-ranked survivor.
    """
    ranked = sorted(
        matches,
        key=lambda m: (-m.confidence, -m.length, _PRIORITY[m.type], m.start),
    )
    # Survivors never overlap, so only the neighbours around the insertion
    # point can collide with a new candidate.
    starts: list[int] = []
    taken: list[Match] = []
    for m in ranked:
        i = bisect_right(starts, m.start)
        if i and taken[i - 1].end > m.start:
            continue
        if i < len(taken) and taken[i].start < m.end:
            continue
        starts.insert(i, m.start)
        taken.insert(i, m)
    return taken
