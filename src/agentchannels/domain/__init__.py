"""Domain models and entities."""

from agentchannels.domain.entities.attachment import SavedMedia, SmsMedia
from agentchannels.domain.entities.email_message import (
    EmailAttachment,
    InboundEmail,
    ReplyRecipients,
)
from agentchannels.domain.entities.sms_message import InboundSms
from agentchannels.domain.models import (
    Channel,
    DmPolicy,
    InboundContext,
    InboundOutcome,
    ReplyPayload,
)

__all__ = [
    "Channel",
    "DmPolicy",
    "InboundOutcome",
    "InboundContext",
    "ReplyPayload",
    "EmailAttachment",
    "InboundEmail",
    "ReplyRecipients",
    "InboundSms",
    "SavedMedia",
    "SmsMedia",
]
