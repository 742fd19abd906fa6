"""Domain models shared by the channel adapters."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Channel(str, Enum):
    """Transports handled by the adapters."""

    EMAIL = "email"
    SMS = "sms"
    VAPI = "vapi"
    API = "api"


class DmPolicy(str, Enum):
    """Which senders may reach the agent over a direct channel."""

    DISABLED = "disabled"
    ALLOWLIST = "allowlist"
    PAIRING = "pairing"
    OPEN = "open"


class InboundOutcome(str, Enum):
    """Terminal state of one inbound notification."""

    DUPLICATE = "duplicate"
    EMPTY = "empty"
    BLOCKED = "blocked"
    DISPATCHED = "dispatched"
    FAILED = "failed"


class InboundContext(BaseModel):
    """Normalized inbound message handed to the host's reply dispatcher."""

    body: str
    body_for_agent: str
    raw_body: str = ""
    sender_id: str
    sender_name: str | None = None
    to: str
    session_key: str
    account_id: str = "default"
    provider: Channel
    surface: Channel
    chat_type: str = "direct"
    message_sid: str | None = None
    thread_id: str | None = None

    # Email threading
    email_subject: str | None = None
    email_cc: str | None = None
    email_in_reply_to: str | None = None
    email_references: str | None = None
    reply_to: list[str] = Field(default_factory=list)
    reply_cc: list[str] = Field(default_factory=list)

    media_paths: list[str] = Field(default_factory=list)
    media_types: list[str] = Field(default_factory=list)
    untrusted_context: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ReplyPayload(BaseModel):
    """One reply chunk produced by the dispatcher."""

    text: str | None = None
    media_urls: list[str] = Field(default_factory=list)
