"""Reply dispatcher that hands inbound messages to the host over HTTP."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from agentchannels.application.ports.reply_dispatcher import Deliver
from agentchannels.domain.models import InboundContext, ReplyPayload


class HttpReplyDispatcher:
    """
    POSTs the inbound context to the host's dispatch endpoint.

    The host answers with ``{"replies": [{"text": ..., "media_urls": [...]}, ...]}``;
    each reply is passed to ``deliver`` in order.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.token = token
        self.timeout = timeout
        self._http = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        if self._http is not None:
            return await self._http.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        async with httpx.AsyncClient() as client:
            return await client.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)

    async def dispatch(self, ctx: InboundContext, deliver: Deliver) -> None:
        response = await self._post(ctx.model_dump(mode="json"))
        response.raise_for_status()

        data = response.json() if response.content else {}
        replies = data.get("replies") or []
        logger.debug(f"Dispatcher returned {len(replies)} replies for {ctx.session_key}")
        for raw in replies:
            payload = ReplyPayload.model_validate(raw)
            if not payload.text and not payload.media_urls:
                continue
            await deliver(payload)


class EchoReplyDispatcher:
    """Local development dispatcher: replies with the inbound body."""

    async def dispatch(self, ctx: InboundContext, deliver: Deliver) -> None:
        await deliver(ReplyPayload(text=f"Echo: {ctx.body_for_agent or ctx.body}"))
