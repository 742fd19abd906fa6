"""Reply threading helpers: session keys, quote stripping, reply recipients."""

from __future__ import annotations

import re
from typing import Iterable

from agentchannels.domain.entities.email_message import ReplyRecipients

_QUOTE_HEADER_RE = re.compile(r"^On .+ wrote:$", re.IGNORECASE)
_ORIGINAL_MESSAGE_RE = re.compile(r"^-{2,}\s*Original Message", re.IGNORECASE)
_UNDERSCORE_DIVIDER_RE = re.compile(r"^_{2,}$")
_RE_PREFIX_RE = re.compile(r"^Re:\s*", re.IGNORECASE)


def build_email_session_key(account_id: str, thread_id: str) -> str:
    return f"email:{account_id}:thread:{thread_id}"


def build_reply_subject(subject: str | None) -> str:
    if not subject:
        return "Re:"
    return f"Re: {_RE_PREFIX_RE.sub('', subject, count=1)}"


def _is_quote_boundary(line: str) -> bool:
    stripped = line.strip()
    return bool(
        _QUOTE_HEADER_RE.match(stripped)
        or _ORIGINAL_MESSAGE_RE.match(stripped)
        or _UNDERSCORE_DIVIDER_RE.match(stripped)
    )


def extract_latest_content(body_text: str | None) -> str:
    """
    Return only the newly written part of a reply body.

    Scanning stops at the first quote header ("On ... wrote:"), an
    "-- Original Message" separator or an underscore divider. Lines starting
    with ">" before that point are dropped.
    """
    if not body_text:
        return ""

    kept: list[str] = []
    for line in body_text.split("\n"):
        if _is_quote_boundary(line):
            break
        if line.startswith(">"):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


def resolve_reply_recipients(
    bot_email: str,
    original_from: str,
    original_to: Iterable[str],
    original_cc: Iterable[str],
    preserve_cc: bool,
) -> ReplyRecipients:
    """
    Compute To/Cc for an automated reply.

    The reply always goes to the original sender. With ``preserve_cc`` the
    other original To and Cc recipients are carried over as Cc (To entries
    first), minus the bot and the sender. The result is the same whether the
    bot was reached through To or Cc.
    """
    to = [original_from]
    if not preserve_cc:
        return ReplyRecipients(to=to, cc=[])

    excluded = {bot_email.lower(), original_from.lower()}
    cc = [addr for addr in original_to if addr.lower() not in excluded]
    cc.extend(addr for addr in original_cc if addr.lower() not in excluded)
    return ReplyRecipients(to=to, cc=cc)
