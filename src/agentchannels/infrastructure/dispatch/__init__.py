"""Reply dispatchers that connect the channels to the host agent runtime."""

from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.infrastructure.dispatch.http import EchoReplyDispatcher, HttpReplyDispatcher
from agentchannels.infrastructure.settings import Settings


def build_reply_dispatcher(settings: Settings) -> ReplyDispatcher:
    """HTTP dispatcher when ``dispatch_url`` is configured, echo otherwise."""
    if settings.dispatch_url:
        token = settings.dispatch_token.get_secret_value() if settings.dispatch_token else None
        return HttpReplyDispatcher(
            url=settings.dispatch_url,
            token=token,
            timeout=settings.dispatch_timeout_s,
        )
    return EchoReplyDispatcher()


__all__ = [
    "EchoReplyDispatcher",
    "HttpReplyDispatcher",
    "build_reply_dispatcher",
]
