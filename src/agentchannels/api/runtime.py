"""Per-process wiring of the channel adapters, stored on ``app.state.runtime``."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import Request
from loguru import logger

from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.application.use_cases.process_sms import ProcessSMSUseCase
from agentchannels.application.use_cases.process_voice import VoiceConversationUseCase
from agentchannels.infrastructure.dispatch import build_reply_dispatcher
from agentchannels.infrastructure.email.accounts import list_enabled_email_accounts
from agentchannels.infrastructure.email.monitor import EmailMonitor
from agentchannels.infrastructure.media import LocalMediaStore
from agentchannels.infrastructure.settings import Settings
from agentchannels.infrastructure.sms.providers.twilio import TwilioProvider
from agentchannels.infrastructure.voice.providers.vapi import VapiProvider


@dataclass
class ChannelRuntime:
    settings: Settings
    dispatcher: ReplyDispatcher
    media_store: LocalMediaStore
    sms_provider: TwilioProvider
    sms: ProcessSMSUseCase
    vapi_provider: VapiProvider
    voice: VoiceConversationUseCase
    email_monitors: dict[str, EmailMonitor] = field(default_factory=dict)
    _tasks: dict[str, asyncio.Task] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: Settings, dispatcher: ReplyDispatcher | None = None) -> "ChannelRuntime":
        dispatcher = dispatcher or build_reply_dispatcher(settings)
        media_store = LocalMediaStore(settings.media_dir)

        sms_provider = TwilioProvider.from_config(settings.sms)
        vapi_provider = VapiProvider.from_config(settings.vapi)

        monitors = {
            account.account_id: EmailMonitor(
                account=account,
                dispatcher=dispatcher,
                media_store=media_store,
                gateway_port=settings.effective_gateway_port,
                media_max_bytes=settings.media_max_bytes,
            )
            for account in list_enabled_email_accounts(settings.email)
            if account.gmail_address
        }

        return cls(
            settings=settings,
            dispatcher=dispatcher,
            media_store=media_store,
            sms_provider=sms_provider,
            sms=ProcessSMSUseCase(settings.sms, dispatcher, sms_provider),
            vapi_provider=vapi_provider,
            voice=VoiceConversationUseCase(settings.vapi, dispatcher, vapi_provider),
            email_monitors=monitors,
        )

    async def start_email_monitors(self) -> None:
        for account_id, monitor in self.email_monitors.items():
            self._tasks[account_id] = asyncio.create_task(
                self._run_monitor(monitor), name=f"email-monitor:{account_id}"
            )

    async def _run_monitor(self, monitor: EmailMonitor) -> None:
        try:
            await monitor.run()
        except Exception as e:
            monitor.last_error = str(e)
            logger.exception(f"Email monitor [{monitor.account.account_id}] failed: {e}")

    async def stop_email_monitors(self) -> None:
        for monitor in self.email_monitors.values():
            monitor.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()


def get_runtime(request: Request) -> ChannelRuntime:
    return request.app.state.runtime
