from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from agentchannels.domain.entities.email_message import InboundEmail

@dataclass(frozen=True)
class OutboundAttachment:
    filename: str
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class SendEmailParams:
    to: list[str]
    subject: str
    text_body: str
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    html_body: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: list[str] = field(default_factory=list)
    thread_id: Optional[str] = None
    attachments: list[OutboundAttachment] = field(default_factory=list)


@dataclass(frozen=True)
class SentEmail:
    message_id: str
    thread_id: str


class EmailSource:
    """Mailbox operations the inbound pipeline needs from a provider."""

    user_email: str

    async def get_message(self, message_id: str) -> InboundEmail:
        raise NotImplementedError

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        raise NotImplementedError

    async def get_history(self, start_history_id: str) -> list[str]:
        raise NotImplementedError

    async def list_unread_message_ids(self) -> list[str]:
        raise NotImplementedError

    async def mark_as_read(self, message_id: str) -> None:
        raise NotImplementedError

    async def send_email(self, params: SendEmailParams) -> SentEmail:
        raise NotImplementedError
