"""Voice infrastructure for VAPI integration."""

from agentchannels.infrastructure.voice.providers.vapi.outbound import (
    OutboundCallResult,
    OutboundContext,
    VapiProvider,
)

__all__ = [
    "OutboundCallResult",
    "OutboundContext",
    "VapiProvider",
]
