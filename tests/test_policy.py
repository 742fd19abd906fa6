import pytest

from agentchannels.application.policy import (
    is_sender_allowed,
    looks_like_e164,
    normalize_email_allow_entry,
    normalize_phone_allow_entry,
)
from agentchannels.domain.models import DmPolicy


def test_normalize_email_entry():
    assert normalize_email_allow_entry("  Email:Alice@Example.COM ") == "alice@example.com"


def test_normalize_phone_entry():
    assert normalize_phone_allow_entry("+1 (555) 123-4567") == "+15551234567"


def test_looks_like_e164():
    assert looks_like_e164("+15551234567")
    assert not looks_like_e164("5551234567")


def test_self_loop_blocked_even_when_open():
    assert not is_sender_allowed(DmPolicy.OPEN, ["*"], "Bot@Example.com", bot_address="bot@example.com")


def test_disabled_blocks_everyone():
    assert not is_sender_allowed(DmPolicy.DISABLED, ["alice@x.com"], "alice@x.com")


@pytest.mark.parametrize("allow_from", [[], None, ["*"], ["other@x.com", "*"]])
def test_allowlist_without_entries_or_with_wildcard_allows(allow_from):
    assert is_sender_allowed(DmPolicy.ALLOWLIST, allow_from, "anyone@x.com")


def test_allowlist_membership_is_case_insensitive():
    assert is_sender_allowed("allowlist", ["Alice@X.com"], "alice@x.com")
    assert not is_sender_allowed("allowlist", ["alice@x.com"], "mallory@x.com")


def test_pairing_behaves_like_allowlist():
    assert not is_sender_allowed(DmPolicy.PAIRING, ["alice@x.com"], "mallory@x.com")
    assert is_sender_allowed(DmPolicy.PAIRING, ["alice@x.com"], "alice@x.com")
