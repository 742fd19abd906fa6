"""Shared fakes for the channel adapter tests."""

from __future__ import annotations

import base64
from typing import Any

import pytest

from agentchannels.application.ports.email_source import EmailSource, SendEmailParams, SentEmail
from agentchannels.domain.entities.attachment import SavedMedia
from agentchannels.domain.entities.email_message import InboundEmail
from agentchannels.domain.models import InboundContext, ReplyPayload
from agentchannels.infrastructure.email.accounts import resolve_email_account
from agentchannels.infrastructure.settings import EmailChannelConfig

BOT = "bot@example.com"


def make_email(**overrides: Any) -> InboundEmail:
    fields: dict[str, Any] = dict(
        message_id="<m1@mail.example.com>",
        thread_id="t1",
        sender="alice@example.com",
        sender_name="Alice",
        to=(BOT,),
        cc=(),
        subject="Hello",
        body_text="Hi bot",
        body_html="",
        in_reply_to="",
        references=(),
    )
    fields.update(overrides)
    return InboundEmail(**fields)


def b64url(text: str | bytes) -> str:
    data = text.encode("utf-8") if isinstance(text, str) else text
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


class FakeEmailSource(EmailSource):
    """In-memory mailbox."""

    def __init__(self, user_email: str = BOT) -> None:
        self.user_email = user_email
        self.messages: dict[str, InboundEmail] = {}
        self.attachments: dict[tuple[str, str], bytes] = {}
        self.history: dict[str, list[str]] = {}
        self.unread: list[str] = []
        self.read: list[str] = []
        self.sent: list[SendEmailParams] = []
        self.fetched: list[str] = []

    async def get_message(self, message_id: str) -> InboundEmail:
        self.fetched.append(message_id)
        return self.messages[message_id]

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        return self.attachments[(message_id, attachment_id)]

    async def get_history(self, start_history_id: str) -> list[str]:
        if start_history_id not in self.history:
            raise LookupError(start_history_id)
        return self.history[start_history_id]

    async def list_unread_message_ids(self) -> list[str]:
        return [mid for mid in self.unread if mid not in self.read]

    async def mark_as_read(self, message_id: str) -> None:
        self.read.append(message_id)

    async def send_email(self, params: SendEmailParams) -> SentEmail:
        self.sent.append(params)
        return SentEmail(message_id=f"sent-{len(self.sent)}", thread_id=params.thread_id or "")


class RecordingDispatcher:
    """Records every context and answers with fixed replies."""

    def __init__(self, replies: list[str] | None = None, error: Exception | None = None) -> None:
        self.replies = replies if replies is not None else ["Thanks!"]
        self.error = error
        self.contexts: list[InboundContext] = []

    async def dispatch(self, ctx: InboundContext, deliver) -> None:
        self.contexts.append(ctx)
        if self.error is not None:
            raise self.error
        for text in self.replies:
            await deliver(ReplyPayload(text=text))


class MemoryMediaStore:
    def __init__(self) -> None:
        self.saved: list[tuple[bytes, str | None]] = []

    def save(self, data: bytes, content_type: str | None, direction: str, max_bytes: int) -> SavedMedia:
        self.saved.append((data, content_type))
        return SavedMedia(path=f"/media/{direction}/{len(self.saved)}", content_type=content_type)


@pytest.fixture
def email_account():
    cfg = EmailChannelConfig(
        gmail_address=BOT,
        credentials_path="/tmp/creds.json",
        token_path="/tmp/token.json",
        allow_from=["*"],
    )
    return resolve_email_account(cfg)


@pytest.fixture
def source() -> FakeEmailSource:
    return FakeEmailSource()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()
