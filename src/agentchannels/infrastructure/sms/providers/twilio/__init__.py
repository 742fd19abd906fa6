"""SMS infrastructure for Twilio integration."""

from agentchannels.infrastructure.sms.providers.twilio.outbound import (
    TwilioProvider,
    SMSResult,
)
from agentchannels.infrastructure.sms.providers.twilio.signature import (
    compute_twilio_signature,
    resolve_webhook_url,
    validate_twilio_signature,
)

__all__ = [
    "TwilioProvider",
    "SMSResult",
    "compute_twilio_signature",
    "resolve_webhook_url",
    "validate_twilio_signature",
]
