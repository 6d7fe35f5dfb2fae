"""Masker — rewrites detected PII spans according to per-type strategies.

Usage:
    masker = PIIMasker()
    result = masker.mask("Card number: 4111111111111111")
    print(result.masked_text)     # "Card number: ************1111"

The output is built in one left-to-right pass into a fresh buffer, so
length-changing replacements never shift the offsets of later matches.
"""

from __future__ import annotations
import hashlib
import hmac
import logging
import re
import secrets
from typing import Iterable

from .detector import PIIDetector
from .patterns import resolve_overlaps
from .types import Match, MaskingConfig, MaskingResult, MaskingStrategy, PIIType

logger = logging.getLogger(__name__)

REDACTED_MARKER = "[REDACTED]"
MASK_CHAR = "*"
SHORT_MASK = MASK_CHAR * 4
HASH_MARKER_FMT = "[HASH:{digest}]"
HASH_DIGEST_LEN = 8

# Shared by every masker in this process that doesn't bring its own key
_PROCESS_KEY = secrets.token_bytes(32)

_warned_strategies: set[str] = set()


class PIIMasker:
    """Applies masking strategies to PII found by a detector."""

    def __init__(
        self,
        config: MaskingConfig | None = None,
        detector: PIIDetector | None = None,
    ) -> None:
        self.config = config or MaskingConfig()
        self.detector = detector or PIIDetector()

    def mask(self, text: str, config: MaskingConfig | None = None) -> MaskingResult:
        """Detect and mask all PII in text."""
        matches = self.detector.detect(text)
        if not matches:
            return MaskingResult(masked_text=text, preserved_ranges=[(0, len(text))] if text else [])
        return self.apply(text, matches, config)

    def apply(
        self,
        text: str,
        matches: Iterable[Match],
        config: MaskingConfig | None = None,
    ) -> MaskingResult:
        """Mask pre-computed matches (offsets must refer to ``text``)."""
        cfg = config or self.config
        out = _Output()
        masking_map: dict[PIIType, int] = {}
        resolved = resolve_overlaps(matches)
        cursor = 0

        for m in resolved:
            if m.start > cursor:
                out.copy(text, cursor, m.start)
            strategy = resolve_strategy(m.type, cfg)
            if strategy is MaskingStrategy.REMOVE:
                cursor = _close_gap(out, text, m.end)
            else:
                out.replace(mask_value(m.text, m.type, strategy, cfg))
                cursor = m.end
            masking_map[m.type] = masking_map.get(m.type, 0) + 1

        if cursor < len(text):
            out.copy(text, cursor, len(text))

        return MaskingResult(
            masked_text="".join(out.parts),
            masked_count=len(resolved),
            masking_map=masking_map,
            preserved_ranges=out.preserved,
            matches=resolved,
        )

    def needs_masking(self, text: str) -> bool:
        """True if text contains at least one PII match."""
        return self.detector.contains_pii(text)

    def preview_masking(
        self, text: str, config: MaskingConfig | None = None
    ) -> list[tuple[Match, str]]:
        """What each match would become, without building the masked text."""
        cfg = config or self.config
        return [
            (m, mask_value(m.text, m.type, resolve_strategy(m.type, cfg), cfg))
            for m in self.detector.detect(text)
        ]


def resolve_strategy(pii_type: PIIType, config: MaskingConfig) -> MaskingStrategy:
    """Strategy for a type; anything unrecognised falls back to redact."""
    raw = config.strategies.get(pii_type, config.default_strategy)
    try:
        return MaskingStrategy(raw)
    except ValueError:
        key = str(raw)
        if key not in _warned_strategies:
            _warned_strategies.add(key)
            logger.warning("Unknown masking strategy %r for %s; using redact", raw, pii_type.value)
        return MaskingStrategy.REDACT


def mask_value(
    value: str,
    pii_type: PIIType,
    strategy: MaskingStrategy,
    config: MaskingConfig,
) -> str:
    """Masked replacement for a single matched value."""
    if strategy is MaskingStrategy.REDACT:
        return REDACTED_MARKER
    if strategy is MaskingStrategy.ASTERISK:
        return MASK_CHAR * len(value) if config.preserve_length else SHORT_MASK
    if strategy is MaskingStrategy.HASH:
        return hash_marker(value, config.hash_key)
    if strategy is MaskingStrategy.PLACEHOLDER:
        return pii_type.placeholder
    if strategy is MaskingStrategy.PARTIAL:
        return _partial(value, pii_type, config.partial_masking_ratio)
    return ""


def hash_marker(value: str, key: bytes | None = None) -> str:
    """Keyed, deterministic marker: same value and key, same marker."""
    digest = hmac.new(key or _PROCESS_KEY, value.encode("utf-8"), hashlib.sha256).hexdigest()
    return HASH_MARKER_FMT.format(digest=digest[:HASH_DIGEST_LEN])


def _partial(value: str, pii_type: PIIType, ratio: float) -> str:
    if pii_type is PIIType.EMAIL and "@" in value:
        local, _, domain = value.rpartition("@")
        return MASK_CHAR * len(local) + "@" + domain
    if pii_type in (PIIType.PHONE, PIIType.CREDIT_CARD):
        return _keep_last_digits(value, 4)
    if pii_type is PIIType.SSN:
        return re.sub(r"\d", MASK_CHAR, value)

    length = len(value)
    ratio = min(max(ratio, 0.0), 1.0)
    visible = min(max(1, int(length * (1.0 - ratio))), length - 1)
    head = visible // 2
    tail = visible - head
    return value[:head] + MASK_CHAR * (length - visible) + (value[length - tail:] if tail else "")


def _keep_last_digits(value: str, keep: int) -> str:
    total = sum(ch.isdigit() for ch in value)
    if total <= keep:
        return MASK_CHAR * len(value)
    seen = 0
    out: list[str] = []
    for ch in value:
        if ch.isdigit():
            seen += 1
            out.append(ch if seen > total - keep else MASK_CHAR)
        else:
            out.append(ch)
    return "".join(out)


# ── Remove: gap closing ──────────────────────────────────────────────

_BRACKETS = {"(": ")", "[": "]", "{": "}"}
_SEPARATORS = ",;:"
_TERMINATORS = ".!?"


class _Output:
    """Masked text under construction.

    Remembers which pieces were copied verbatim so that closing the gap
    left by a removed span only ever trims original text.
    """

    __slots__ = ("parts", "verbatim", "preserved")

    def __init__(self) -> None:
        self.parts: list[str] = []
        self.verbatim: list[bool] = []
        self.preserved: list[tuple[int, int]] = []

    def copy(self, text: str, start: int, end: int) -> None:
        self.parts.append(text[start:end])
        self.verbatim.append(True)
        self.preserved.append((start, end))

    def replace(self, value: str) -> None:
        if value:
            self.parts.append(value)
            self.verbatim.append(False)

    def last_char(self) -> str:
        """Last emitted char; "" at start of text, MASK_CHAR after a mask."""
        if not self.parts:
            return ""
        return self.parts[-1][-1] if self.verbatim[-1] else MASK_CHAR

    def drop_last_char(self) -> None:
        if not (self.parts and self.verbatim[-1]):
            return
        self.parts[-1] = self.parts[-1][:-1]
        start, end = self.preserved[-1]
        if end - 1 > start:
            self.preserved[-1] = (start, end - 1)
        else:
            self.parts.pop()
            self.verbatim.pop()
            self.preserved.pop()


def _close_gap(out: _Output, text: str, pos: int) -> int:
    """Collapse one separator around a removed span; returns the new cursor.

    ``"x (a@b.com) y"`` → ``"x y"``, ``"to a@b.com, then"`` → ``"to then"``,
    ``"Send to a@b.com."`` → ``"Send to."``.
    """
    prev = out.last_char()
    nxt = text[pos:pos + 1]
    open_left = not prev or prev.isspace() or prev in _BRACKETS

    if prev in _BRACKETS and nxt == _BRACKETS[prev]:
        out.drop_last_char()
        pos += 1
        prev = out.last_char()
        open_left = not prev or prev.isspace()
    elif nxt and nxt in _SEPARATORS and open_left:
        pos += 1
    nxt = text[pos:pos + 1]

    if nxt.isspace() and open_left:
        pos += 1
    elif prev.isspace() and (not nxt or nxt in _TERMINATORS):
        out.drop_last_char()
    return pos
