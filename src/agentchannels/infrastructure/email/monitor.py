"""Long-running email monitor: Pub/Sub push via the watch relay, or polling."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from loguru import logger

from agentchannels.application.dedup import DedupCache
from agentchannels.application.ports.email_source import EmailSource
from agentchannels.application.ports.media_store import MediaStore
from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.application.use_cases.process_email import (
    DEFAULT_MEDIA_MAX_BYTES,
    InboundEmailPipeline,
)
from agentchannels.errors import ConfigurationError
from agentchannels.infrastructure.email.accounts import (
    DEFAULT_GMAIL_SERVE_BIND,
    DEFAULT_GMAIL_SERVE_PORT,
    ResolvedEmailAccount,
)
from agentchannels.infrastructure.email.gmail.client import GmailClient
from agentchannels.infrastructure.email.payload import (
    extract_inbound_message_ids,
    resolve_inbound_history_id,
)
from agentchannels.infrastructure.email.watch_relay import (
    WatchRelay,
    WatchRelayConfig,
    run_watch_start,
    sleep_or_stop,
)
from agentchannels.infrastructure.settings import DEFAULT_ACCOUNT_ID

DEFAULT_GATEWAY_PORT = 18789

ClientFactory = Callable[[ResolvedEmailAccount], EmailSource]


def build_default_email_hook_url(gateway_port: int, account_id: str) -> str:
    base = f"http://127.0.0.1:{gateway_port}/email/inbound"
    if account_id == DEFAULT_ACCOUNT_ID:
        return base
    return f"{base}?{urlencode({'accountId': account_id})}"


def ensure_email_hook_url_account_id(hook_url: str, account_id: str) -> str:
    """Add ``accountId`` to a configured hook URL unless it is already there."""
    if account_id == DEFAULT_ACCOUNT_ID:
        return hook_url
    parts = urlsplit(hook_url)
    params = parse_qsl(parts.query, keep_blank_values=True)
    if any(key == "accountId" for key, _ in params):
        return hook_url
    params.append(("accountId", account_id))
    return urlunsplit(parts._replace(query=urlencode(params)))


def _gmail_client_from_account(account: ResolvedEmailAccount) -> EmailSource:
    return GmailClient.from_files(
        credentials_path=account.credentials_path,
        token_path=account.token_path,
        user_email=account.gmail_address,
    )


class EmailMonitor:
    """
    Runs one email account until ``stop()`` is called.

    While running, ``pipeline`` is available for the ``/email/inbound`` hook.
    """

    def __init__(
        self,
        account: ResolvedEmailAccount,
        dispatcher: ReplyDispatcher,
        media_store: MediaStore | None = None,
        gateway_port: int = DEFAULT_GATEWAY_PORT,
        media_max_bytes: int = DEFAULT_MEDIA_MAX_BYTES,
        client_factory: ClientFactory | None = None,
    ):
        self.account = account
        self.dispatcher = dispatcher
        self.media_store = media_store
        self.gateway_port = gateway_port
        self.media_max_bytes = media_max_bytes
        self.client_factory = client_factory or _gmail_client_from_account
        self.pipeline: Optional[InboundEmailPipeline] = None
        self.relay: Optional[WatchRelay] = None
        self.last_error: Optional[str] = None
        self._stop = asyncio.Event()

    def validate(self) -> None:
        account_id = self.account.account_id
        for field in ("gmail_address", "credentials_path", "token_path"):
            if not getattr(self.account, field):
                raise ConfigurationError(
                    f'Email {field} missing for account "{account_id}" (set email.{field}).'
                )

    def stop(self) -> None:
        self._stop.set()

    @property
    def running(self) -> bool:
        return self.pipeline is not None

    def hook_url(self) -> str:
        configured = self.account.config.hook_url
        url = configured or build_default_email_hook_url(self.gateway_port, self.account.account_id)
        return ensure_email_hook_url_account_id(url, self.account.account_id)

    def relay_config(self) -> WatchRelayConfig:
        cfg = self.account.config
        return WatchRelayConfig(
            gmail_address=self.account.gmail_address or "",
            topic=cfg.pubsub_topic or "",
            push_token=cfg.push_token.get_secret_value() if cfg.push_token else "",
            hook_url=self.hook_url(),
            hook_token=self.account.hook_token,
            serve_bind=cfg.serve_bind or DEFAULT_GMAIL_SERVE_BIND,
            serve_port=cfg.serve_port or DEFAULT_GMAIL_SERVE_PORT,
            label=cfg.watch_label or "INBOX",
        )

    async def run(self) -> None:
        self.validate()

        source = self.client_factory(self.account)
        self.pipeline = InboundEmailPipeline(
            account=self.account,
            source=source,
            dispatcher=self.dispatcher,
            dedup=DedupCache(),
            media_store=self.media_store,
            media_max_bytes=self.media_max_bytes,
        )
        logger.info(f"Email monitor [{self.account.account_id}] connected as {self.account.gmail_address}")

        try:
            if self.account.push_enabled:
                await self._run_push()
            else:
                await self._run_polling()
        finally:
            self.pipeline = None
            aclose = getattr(source, "aclose", None)
            if aclose is not None:
                await aclose()
            logger.info(f"Email monitor [{self.account.account_id}] stopped")

    async def _run_push(self) -> None:
        config = self.relay_config()
        if not await run_watch_start(config, "initial"):
            self.last_error = "email watch initial start failed"

        self.relay = WatchRelay(config, self._stop)
        relay_task = asyncio.create_task(self.relay.supervise())
        renew_task = asyncio.create_task(self._renew_loop(config))
        try:
            await self._stop.wait()
        finally:
            renew_task.cancel()
            await asyncio.gather(relay_task, renew_task, return_exceptions=True)
            if self.relay.last_error:
                self.last_error = self.relay.last_error

    async def _renew_loop(self, config: WatchRelayConfig) -> None:
        interval = self.account.renew_every_minutes * 60
        while not await sleep_or_stop(self._stop, interval):
            if not await run_watch_start(config, "renewal"):
                self.last_error = "email watch renewal failed"

    async def _run_polling(self) -> None:
        interval = self.account.poll_interval_seconds
        logger.debug(
            f"Email [{self.account.account_id}]: Pub/Sub not configured, "
            f"polling every {interval}s for {self.account.gmail_address}"
        )
        while True:
            try:
                await self.pipeline.poll_once()
                self.last_error = None
            except Exception as e:
                self.last_error = f"poll error: {e}"
                logger.error(f"Email poll error [{self.account.account_id}]: {e}")
            if await sleep_or_stop(self._stop, interval):
                return


__all__ = [
    "EmailMonitor",
    "build_default_email_hook_url",
    "ensure_email_hook_url_account_id",
    "extract_inbound_message_ids",
    "resolve_inbound_history_id",
]
