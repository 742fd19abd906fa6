"""Gmail REST client and payload mapping."""

from agentchannels.infrastructure.email.gmail.client import GmailClient

__all__ = [
    "GmailClient",
]
