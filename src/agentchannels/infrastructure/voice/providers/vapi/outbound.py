"""VAPI provider for placing outbound phone calls."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx
from loguru import logger

from agentchannels.infrastructure.settings import VapiChannelConfig

_NON_PHONE_RE = re.compile(r"[^+0-9]")


@dataclass
class OutboundCallResult:
    """Result of placing a call."""

    success: bool
    call_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class OutboundContext:
    """Why we placed a call; handed to the agent when the callee answers."""

    context: str
    callee_number: str
    callee_name: Optional[str] = None
    initiated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class VapiProvider:
    """
    Places calls through ``POST /call/phone``.

    When the callee picks up, VAPI calls back ``/chat/completions`` with the
    same call id; the stored context is consumed there.
    """

    BASE_URL = "https://api.vapi.ai"

    def __init__(
        self,
        api_key: str = "",
        assistant_id: str | None = None,
        phone_number_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.phone_number_id = phone_number_id
        self._http = http_client
        self._contexts: dict[str, OutboundContext] = {}

    @classmethod
    def from_config(cls, config: VapiChannelConfig, http_client: httpx.AsyncClient | None = None) -> "VapiProvider":
        return cls(
            api_key=config.api_key.get_secret_value() if config.api_key else "",
            assistant_id=config.assistant_id,
            phone_number_id=config.phone_number_id,
            http_client=http_client,
        )

    async def _post(self, path: str, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        url = f"{self.BASE_URL}{path}"
        if self._http is not None:
            return await self._http.post(url, json=payload, headers=headers, timeout=30.0)
        async with httpx.AsyncClient() as client:
            return await client.post(url, json=payload, headers=headers, timeout=30.0)

    async def call(
        self,
        to: str,
        greeting: str | None = None,
        context: str | None = None,
        callee_name: str | None = None,
    ) -> OutboundCallResult:
        if not self.assistant_id or not self.phone_number_id:
            return OutboundCallResult(
                success=False,
                error="assistant_id and phone_number_id required for outbound calls",
            )

        clean_number = _NON_PHONE_RE.sub("", to)
        payload: dict = {
            "assistantId": self.assistant_id,
            "phoneNumberId": self.phone_number_id,
            "customer": {"number": clean_number},
        }
        if greeting:
            payload["firstMessage"] = greeting

        try:
            response = await self._post("/call/phone", payload)
        except httpx.HTTPError as e:
            logger.error(f"Outbound call failed: {e}")
            return OutboundCallResult(success=False, error=str(e))

        if response.is_error:
            return OutboundCallResult(success=False, error=f"VAPI API {response.status_code}: {response.text}")

        call_id = response.json().get("id")
        if context and call_id:
            self._contexts[call_id] = OutboundContext(
                context=context,
                callee_number=clean_number,
                callee_name=callee_name,
            )
        logger.info(f"Outbound call initiated: {call_id} -> {clean_number}")
        return OutboundCallResult(success=True, call_id=call_id)

    def consume_context(self, call_id: str) -> Optional[OutboundContext]:
        return self._contexts.pop(call_id, None)

    def has_context(self, call_id: str) -> bool:
        return call_id in self._contexts
