"""Supervisor for the ``gog gmail watch serve`` Pub/Sub relay process."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Optional

from loguru import logger

GOG_BINARY = "gog"
RESTART_BACKOFF_SECONDS = 5.0
WATCH_START_TIMEOUT_SECONDS = 120.0
STOP_GRACE_SECONDS = 5.0
PUBSUB_PATH = "/gmail-pubsub"

# Stopgap: the relay has no structured exit status for bind failures, so
# they are recognised from its stderr.
ADDRESS_IN_USE_RE = re.compile(r"address already in use|EADDRINUSE", re.IGNORECASE)


class RelayExit(str, Enum):
    """Why a relay run ended."""

    BIND_CONFLICT = "bind_conflict"
    TRANSIENT = "transient"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WatchRelayConfig:
    gmail_address: str
    topic: str
    push_token: str
    hook_url: str
    hook_token: str = ""
    serve_bind: str = "127.0.0.1"
    serve_port: int = 8788
    label: str = "INBOX"

    def serve_args(self) -> list[str]:
        args = [
            "gmail", "watch", "serve",
            "--account", self.gmail_address,
            "--bind", self.serve_bind,
            "--port", str(self.serve_port),
            "--path", PUBSUB_PATH,
            "--token", self.push_token,
            "--hook-url", self.hook_url,
        ]
        if self.hook_token:
            args += ["--hook-token", self.hook_token]
        args.append("--include-body")
        return args

    def start_args(self) -> list[str]:
        return [
            "gmail", "watch", "start",
            "--account", self.gmail_address,
            "--label", self.label,
            "--topic", self.topic,
        ]


async def sleep_or_stop(stop_event: asyncio.Event, seconds: float) -> bool:
    """Sleep up to ``seconds``; True when the stop event fired first."""
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


async def run_watch_start(
    config: WatchRelayConfig,
    phase: Literal["initial", "renewal"] = "initial",
    binary: str = GOG_BINARY,
    timeout: float = WATCH_START_TIMEOUT_SECONDS,
) -> bool:
    """Register (or renew) the Gmail watch. Never raises; returns success."""
    try:
        proc = await asyncio.create_subprocess_exec(
            binary,
            *config.start_args(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"Email watch {phase} failed: {e}")
        return False

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.error(f"Email watch {phase} timed out after {timeout:.0f}s")
        return False

    if proc.returncode != 0:
        detail = " | ".join(
            part for part in (
                f"exit code {proc.returncode}",
                stderr.decode("utf-8", "replace").strip(),
                stdout.decode("utf-8", "replace").strip(),
            ) if part
        )
        message = f"Email watch {phase} failed: {detail}"
        if phase == "initial":
            logger.error(message)
        else:
            logger.debug(message)
        return False

    if phase == "initial":
        logger.debug(f"Email watch started for {config.gmail_address}")
    return True


class WatchRelay:
    """Keeps one relay child running until stopped or it cannot bind."""

    def __init__(
        self,
        config: WatchRelayConfig,
        stop_event: asyncio.Event,
        binary: str = GOG_BINARY,
        backoff_seconds: float = RESTART_BACKOFF_SECONDS,
    ):
        self.config = config
        self.stop_event = stop_event
        self.binary = binary
        self.backoff_seconds = backoff_seconds
        self.last_error: Optional[str] = None

    async def _pump(self, stream: Optional[asyncio.StreamReader], seen_bind_error: list[bool]) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", "replace").strip()
            if not line:
                continue
            if ADDRESS_IN_USE_RE.search(line):
                seen_bind_error[0] = True
            logger.debug(f"[gog] {line}")

    async def run_once(self) -> RelayExit:
        """Run the relay until it exits or the stop event fires."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *self.config.serve_args(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self.last_error = f"gog process error: {e}"
            logger.error(self.last_error)
            return RelayExit.TRANSIENT

        bind_error = [False]
        pumps = asyncio.gather(self._pump(proc.stdout, bind_error), self._pump(proc.stderr, bind_error))
        exited = asyncio.ensure_future(proc.wait())
        stopped = asyncio.ensure_future(self.stop_event.wait())
        try:
            await asyncio.wait({exited, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopped.cancel()

        if not exited.done():
            proc.terminate()
            try:
                await asyncio.wait_for(exited, timeout=STOP_GRACE_SECONDS)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
            await pumps
            return RelayExit.STOPPED

        await pumps
        if self.stop_event.is_set():
            return RelayExit.STOPPED
        if bind_error[0]:
            return RelayExit.BIND_CONFLICT
        logger.debug(f"gog exited (code={proc.returncode}); restarting in {self.backoff_seconds:.0f}s")
        return RelayExit.TRANSIENT

    async def supervise(self) -> RelayExit:
        """Restart on transient exits; give up on bind conflicts."""
        while True:
            outcome = await self.run_once()
            if outcome is RelayExit.BIND_CONFLICT:
                self.last_error = "gog serve failed to bind (address already in use); stopping restarts."
                logger.error(self.last_error)
                return outcome
            if outcome is RelayExit.STOPPED:
                return outcome
            if await sleep_or_stop(self.stop_event, self.backoff_seconds):
                return RelayExit.STOPPED
