"""Inbound sender policy (dmPolicy + allowFrom)."""

from __future__ import annotations

import re
from typing import Iterable

from agentchannels.domain.models import DmPolicy

_EMAIL_PREFIX_RE = re.compile(r"^email:", re.IGNORECASE)
_NON_PHONE_RE = re.compile(r"[^+0-9]")
_E164_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def normalize_email_allow_entry(entry: str) -> str:
    return _EMAIL_PREFIX_RE.sub("", entry.strip()).lower()


def normalize_phone_allow_entry(entry: str) -> str:
    return _NON_PHONE_RE.sub("", entry)


def looks_like_e164(raw: str) -> bool:
    return bool(_E164_RE.match(raw.strip()))


def is_sender_allowed(
    policy: DmPolicy | str,
    allow_from: Iterable[str] | None,
    sender: str,
    bot_address: str | None = None,
) -> bool:
    """
    Decide whether an inbound message from ``sender`` may be dispatched.

    Messages from the bot's own address are always rejected so replies never
    loop. ``pairing`` is treated like ``allowlist``; approving new senders is
    up to the host.
    """
    sender_lower = sender.strip().lower()
    if bot_address and sender_lower == bot_address.strip().lower():
        return False

    policy = DmPolicy(policy)
    if policy is DmPolicy.DISABLED:
        return False
    if policy is DmPolicy.OPEN:
        return True

    entries = [e.strip().lower() for e in (allow_from or []) if e and e.strip()]
    if not entries or "*" in entries:
        return True
    return sender_lower in entries
