from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    mime_type: str
    size: int
    attachment_id: str


@dataclass(frozen=True)
class InboundEmail:
    message_id: str
    thread_id: str
    sender: str  # bare lowercased address
    sender_name: str
    to: tuple[str, ...]
    cc: tuple[str, ...]
    subject: str
    body_text: str
    body_html: str
    in_reply_to: str
    references: tuple[str, ...] = ()
    date: Optional[datetime] = None
    attachments: tuple[EmailAttachment, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReplyRecipients:
    to: list[str]
    cc: list[str]
