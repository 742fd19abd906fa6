"""Interfaces the use cases depend on."""

from agentchannels.application.ports.email_source import (
    EmailSource,
    OutboundAttachment,
    SendEmailParams,
    SentEmail,
)
from agentchannels.application.ports.media_store import MediaStore
from agentchannels.application.ports.reply_dispatcher import Deliver, ReplyDispatcher

__all__ = [
    "Deliver",
    "EmailSource",
    "MediaStore",
    "OutboundAttachment",
    "ReplyDispatcher",
    "SendEmailParams",
    "SentEmail",
]
