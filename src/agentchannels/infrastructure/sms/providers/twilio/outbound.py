"""Twilio SMS provider for sending outbound messages."""

from __future__ import annotations

import re
from dataclasses import dataclass

import httpx
from loguru import logger

from agentchannels.infrastructure.settings import SmsChannelConfig

_NON_PHONE_RE = re.compile(r"[^+0-9]")


@dataclass
class SMSResult:
    """Result of sending an SMS."""

    success: bool
    sid: str | None = None
    error: str | None = None


class TwilioProvider:
    """Twilio SMS provider for sending outbound messages."""

    BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(
        self,
        account_sid: str = "",
        auth_token: str = "",
        default_from: str = "",
        http_client: httpx.AsyncClient | None = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.default_from = default_from
        self._http = http_client

    @classmethod
    def from_config(cls, config: SmsChannelConfig, http_client: httpx.AsyncClient | None = None) -> "TwilioProvider":
        return cls(
            account_sid=config.account_sid,
            auth_token=config.auth_token.get_secret_value() if config.auth_token else "",
            default_from=config.phone_number,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.default_from)

    async def _post(self, url: str, data: dict[str, str]) -> httpx.Response:
        auth = (self.account_sid, self.auth_token)
        if self._http is not None:
            return await self._http.post(url, data=data, auth=auth, timeout=30.0)
        async with httpx.AsyncClient() as client:
            return await client.post(url, data=data, auth=auth, timeout=30.0)

    async def send_sms(self, to: str, text: str) -> SMSResult:
        """Send an SMS message via the Twilio Messages API."""
        if not self.configured:
            return SMSResult(
                success=False,
                error="account_sid, auth_token, and phone_number required for outbound SMS",
            )

        clean_number = _NON_PHONE_RE.sub("", to)
        payload = {
            "From": self.default_from,
            "To": clean_number,
            "Body": text,
        }

        try:
            response = await self._post(
                f"{self.BASE_URL}/Accounts/{self.account_sid}/Messages.json",
                payload,
            )
        except httpx.TimeoutException:
            logger.error(f"Twilio API timeout sending to {clean_number}")
            return SMSResult(success=False, error="Request timeout")
        except httpx.HTTPError as e:
            logger.error(f"Twilio API exception: {e}")
            return SMSResult(success=False, error=str(e))

        if response.is_error:
            error_text = response.text
            logger.error(f"Twilio API error {response.status_code}: {error_text}")
            return SMSResult(success=False, error=f"Twilio API {response.status_code}: {error_text[:200]}")

        sid = response.json().get("sid")
        logger.info(f"SMS sent to {clean_number}, sid={sid}")
        return SMSResult(success=True, sid=sid)
