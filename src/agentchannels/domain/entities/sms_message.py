from __future__ import annotations
from dataclasses import dataclass, field
from typing import Mapping

from agentchannels.domain.entities.attachment import SmsMedia

@dataclass(frozen=True)
class InboundSms:
    message_sid: str
    account_sid: str
    sender: str
    recipient: str
    body: str
    media: tuple[SmsMedia, ...] = field(default_factory=tuple)

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> "InboundSms":
        """Build from a Twilio form-encoded webhook (MediaUrlN / MediaContentTypeN)."""
        try:
            num_media = int(form.get("NumMedia") or 0)
        except ValueError:
            num_media = 0

        media = []
        for i in range(num_media):
            url = form.get(f"MediaUrl{i}")
            if url:
                media.append(SmsMedia(url=url, content_type=form.get(f"MediaContentType{i}")))

        return cls(
            message_sid=form.get("MessageSid") or "",
            account_sid=form.get("AccountSid") or "",
            sender=form.get("From") or "",
            recipient=form.get("To") or "",
            body=form.get("Body") or "",
            media=tuple(media),
        )
