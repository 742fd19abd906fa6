from __future__ import annotations
from typing import Awaitable, Callable, Protocol

from agentchannels.domain.models import InboundContext, ReplyPayload

Deliver = Callable[[ReplyPayload], Awaitable[None]]

class ReplyDispatcher(Protocol):
    async def dispatch(self, ctx: InboundContext, deliver: Deliver) -> None: ...
