"""Tests for the masker."""

import re

from pii_guard import PIIMasker, MaskingConfig, MaskingStrategy, PIIType
from pii_guard.types import DEFAULT_STRATEGIES


def _only(strategy, **kwargs):
    """Config applying one strategy to every type."""
    return MaskingConfig(strategies={}, default_strategy=strategy, **kwargs)


# ── Strategies ───────────────────────────────────────────────────────

def test_default_email_partial_keeps_domain():
    result = PIIMasker().mask("Contact me at john.doe@company.com")
    assert result.masked_text == "Contact me at ********@company.com"
    assert "john.doe@company.com" not in result.masked_text


def test_redact():
    result = PIIMasker().mask("SSN: 123-45-6789")
    assert result.masked_text == "SSN: [REDACTED]"


def test_asterisk_preserves_length():
    result = PIIMasker().mask("Server at 192.168.1.100")
    assert result.masked_text == "Server at " + "*" * 13


def test_asterisk_fixed_run_without_preserve_length():
    masker = PIIMasker(MaskingConfig(preserve_length=False))
    assert masker.mask("Server at 192.168.1.100").masked_text == "Server at ****"


def test_placeholder():
    result = PIIMasker().mask("See https://example.com/page for details")
    assert result.masked_text == "See [URL] for details"


def test_placeholder_per_type():
    masker = PIIMasker(_only(MaskingStrategy.PLACEHOLDER))
    result = masker.mask("Call (555) 867-5309 or mail a@b.com")
    assert result.masked_text == "Call [PHONE] or mail [EMAIL]"


def test_partial_credit_card_keeps_last_four():
    result = PIIMasker().mask("Card number: 4111111111111111")
    assert result.masked_text == "Card number: ************1111"
    assert "4111111111111111" not in result.masked_text
    assert result.masked_text.endswith("1111")


def test_partial_phone_keeps_separators_and_last_four():
    result = PIIMasker().mask("Call (555) 867-5309")
    assert result.masked_text == "Call (***) ***-5309"


def test_partial_ssn_hides_every_digit():
    masker = PIIMasker(MaskingConfig(strategies={PIIType.SSN: MaskingStrategy.PARTIAL}))
    assert masker.mask("SSN: 123-45-6789").masked_text == "SSN: ***-**-****"


def test_partial_ratio_for_other_types():
    masker = PIIMasker(_only(MaskingStrategy.PARTIAL, partial_masking_ratio=0.6))
    # 13 chars, 40% visible → 5 kept: 2 in front, 3 at the back
    assert masker.mask("host 192.168.1.100").masked_text == "host 19********100"


def test_unknown_strategy_falls_back_to_redact():
    masker = PIIMasker(MaskingConfig(strategies={PIIType.EMAIL: "scramble"}))
    assert masker.mask("mail a@b.com").masked_text == "mail [REDACTED]"


# ── Hash ─────────────────────────────────────────────────────────────

def test_hash_is_deterministic():
    config = _only(MaskingStrategy.HASH, hash_key=b"test-key")
    text = "Email a@b.com and SSN 123-45-6789"
    first = PIIMasker(config).mask(text).masked_text
    second = PIIMasker(config).mask(text).masked_text
    assert first == second
    assert re.fullmatch(r"Email \[HASH:[0-9a-f]{8}\] and SSN \[HASH:[0-9a-f]{8}\]", first)


def test_hash_same_value_same_marker():
    masker = PIIMasker(_only(MaskingStrategy.HASH))
    masked = masker.mask("a@b.com, a@b.com").masked_text
    left, right = masked.split(", ")
    assert left == right


def test_hash_depends_on_key():
    text = "mail a@b.com"
    one = PIIMasker(_only(MaskingStrategy.HASH, hash_key=b"one")).mask(text).masked_text
    two = PIIMasker(_only(MaskingStrategy.HASH, hash_key=b"two")).mask(text).masked_text
    assert one != two


# ── Remove ───────────────────────────────────────────────────────────

def test_remove_collapses_following_space():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    assert masker.mask("Call 555-867-5309 now").masked_text == "Call now"


def test_remove_at_start():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    assert masker.mask("bob@example.com is mine").masked_text == "is mine"


def test_remove_at_end_drops_leading_space():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    assert masker.mask("Contact bob@example.com").masked_text == "Contact"


def test_remove_drops_trailing_comma():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    assert masker.mask("Email: a@b.com, thanks").masked_text == "Email: thanks"


def test_remove_collapses_brackets():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    result = masker.mask("x (a@b.com) y")
    assert result.masked_text == "x y"
    assert result.preserved_ranges == [(0, 2), (12, 13)]


def test_remove_list_items():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    assert masker.mask("a@b.com, c@d.com, e@f.com").masked_text == ""
    assert masker.mask("to a@b.com, c@d.com and me").masked_text == "to and me"


def test_remove_before_sentence_end():
    masker = PIIMasker(_only(MaskingStrategy.REMOVE))
    assert masker.mask("Send to a@b.com.").masked_text == "Send to."


def test_remove_next_to_masked_value():
    config = MaskingConfig(strategies={PIIType.EMAIL: MaskingStrategy.REMOVE},
                           default_strategy=MaskingStrategy.PLACEHOLDER)
    result = PIIMasker(config).mask("ip 10.0.0.1 a@b.com")
    assert result.masked_text == "ip [IP_ADDRESS]"


# ── Result bookkeeping ───────────────────────────────────────────────

def test_counts_and_map():
    result = PIIMasker().mask("a@b.com and c@d.org, SSN 123-45-6789")
    assert result.masked_count == 3
    assert result.masking_map == {PIIType.EMAIL: 2, PIIType.SSN: 1}


def test_preserved_ranges():
    text = "Email: a@b.com!"
    result = PIIMasker().mask(text)
    assert result.preserved_ranges == [(0, 7), (14, 15)]
    assert [text[s:e] for s, e in result.preserved_ranges] == ["Email: ", "!"]


def test_multiple_length_changing_replacements():
    result = PIIMasker().mask("123-45-6789 and 234-56-7890 are both SSNs")
    assert result.masked_text == "[REDACTED] and [REDACTED] are both SSNs"


def test_no_pii_returns_text_unchanged():
    result = PIIMasker().mask("nothing sensitive here")
    assert result.masked_text == "nothing sensitive here"
    assert result.masked_count == 0
    assert result.masking_map == {}


def test_mask_is_repeatable():
    masker = PIIMasker()
    text = "Email john.doe@company.com, card 4111 1111 1111 1111, ip 10.1.2.3"
    assert masker.mask(text).masked_text == masker.mask(text).masked_text


def test_per_call_config_overrides_default():
    masker = PIIMasker()
    result = masker.mask("SSN: 123-45-6789", _only(MaskingStrategy.PLACEHOLDER))
    assert result.masked_text == "SSN: [SSN]"


# ── Preview / existence check ────────────────────────────────────────

def test_needs_masking():
    masker = PIIMasker()
    assert masker.needs_masking("SSN: 123-45-6789")
    assert not masker.needs_masking("plain text")


def test_preview_masking():
    masker = PIIMasker()
    preview = masker.preview_masking("Call (555) 867-5309 or SSN 123-45-6789")
    assert [(m.type, value) for m, value in preview] == [
        (PIIType.PHONE, "(***) ***-5309"),
        (PIIType.SSN, "[REDACTED]"),
    ]


def test_default_config_uses_default_strategies():
    assert MaskingConfig().strategies == DEFAULT_STRATEGIES
    assert MaskingConfig() == MaskingConfig()
    assert MaskingConfig().strategies[PIIType.SSN] == MaskingStrategy.REDACT
