"""Email worker - runs the email monitors without the HTTP API."""

from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass, field

from loguru import logger

from agentchannels.errors import ConfigurationError
from agentchannels.infrastructure.dispatch import build_reply_dispatcher
from agentchannels.infrastructure.email.accounts import ResolvedEmailAccount, list_enabled_email_accounts
from agentchannels.infrastructure.email.monitor import EmailMonitor
from agentchannels.infrastructure.logging import configure_logging
from agentchannels.infrastructure.media import LocalMediaStore
from agentchannels.infrastructure.settings import Settings, get_settings


@dataclass
class WorkerStats:
    """Track worker statistics."""

    started: int = 0
    failed: dict[str, str] = field(default_factory=dict)


class EmailWorker:
    """
    Multi-account email worker.

    Runs one monitor per enabled account. Push-mode accounts receive Gmail
    notifications through the watch relay, which posts them to the API's
    ``/email/inbound`` hook; in this standalone process such accounts only
    keep the watch alive. Polling accounts are fully processed here.
    """

    def __init__(self, settings: Settings, accounts: list[ResolvedEmailAccount]):
        self.settings = settings
        self.accounts = accounts
        self.stats = WorkerStats()
        self.monitors: list[EmailMonitor] = []

    def _build_monitors(self) -> None:
        dispatcher = build_reply_dispatcher(self.settings)
        media_store = LocalMediaStore(self.settings.media_dir)
        self.monitors = [
            EmailMonitor(
                account=account,
                dispatcher=dispatcher,
                media_store=media_store,
                gateway_port=self.settings.effective_gateway_port,
                media_max_bytes=self.settings.media_max_bytes,
            )
            for account in self.accounts
        ]

    def _handle_shutdown(self, signum) -> None:
        """Handle graceful shutdown."""
        logger.info(f"Received signal {signum}, shutting down...")
        for monitor in self.monitors:
            monitor.stop()

    async def _run_monitor(self, monitor: EmailMonitor) -> None:
        account_id = monitor.account.account_id
        try:
            self.stats.started += 1
            await monitor.run()
        except ConfigurationError as e:
            self.stats.failed[account_id] = str(e)
            logger.error(str(e))
        except Exception as e:
            self.stats.failed[account_id] = str(e)
            logger.exception(f"Email monitor [{account_id}] crashed: {e}")

    async def run(self) -> int:
        """Run until SIGINT/SIGTERM."""
        self._build_monitors()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown, sig)

        logger.info(f"Email worker starting with {len(self.monitors)} account(s)")
        for monitor in self.monitors:
            mode = "push" if monitor.account.push_enabled else f"poll every {monitor.account.poll_interval_seconds}s"
            logger.info(f"  - {monitor.account.account_id}: {monitor.account.gmail_address} ({mode})")

        await asyncio.gather(*(self._run_monitor(m) for m in self.monitors))

        logger.info(f"Worker shutdown complete (started={self.stats.started}, failed={self.stats.failed})")
        return 1 if self.stats.failed and len(self.stats.failed) == len(self.monitors) else 0


def main() -> int:
    """Entry point for the email worker."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} Email Worker")
    logger.info("=" * 60)

    accounts = list_enabled_email_accounts(settings.email)
    if not accounts:
        logger.error("No email accounts enabled! Set EMAIL__GMAIL_ADDRESS or EMAIL__ACCOUNTS")
        return 1

    worker = EmailWorker(settings, accounts)
    return asyncio.run(worker.run())


if __name__ == "__main__":
    raise SystemExit(main())
