"""Watch relay supervision against small shell scripts standing in for gog."""

from __future__ import annotations

import asyncio
import stat
from pathlib import Path

import pytest

from agentchannels.infrastructure.email.watch_relay import (
    RelayExit,
    WatchRelay,
    WatchRelayConfig,
    run_watch_start,
    sleep_or_stop,
)

CONFIG = WatchRelayConfig(
    gmail_address="bot@example.com",
    topic="projects/p/topics/gmail",
    push_token="push",
    hook_url="http://127.0.0.1:18789/email/inbound",
)


def _script(tmp_path: Path, body: str) -> str:
    path = tmp_path / "gog"
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


def test_serve_args_without_hook_token():
    args = CONFIG.serve_args()
    assert "--hook-token" not in args
    assert args[args.index("--path") + 1] == "/gmail-pubsub"
    assert args[args.index("--port") + 1] == "8788"


@pytest.mark.asyncio
async def test_sleep_or_stop():
    stop = asyncio.Event()
    assert await sleep_or_stop(stop, 0.01) is False
    stop.set()
    assert await sleep_or_stop(stop, 10) is True


@pytest.mark.asyncio
async def test_watch_start_success_and_failure(tmp_path):
    ok = _script(tmp_path, "exit 0")
    assert await run_watch_start(CONFIG, "initial", binary=ok) is True

    failing = _script(tmp_path, "echo boom >&2\nexit 3")
    assert await run_watch_start(CONFIG, "renewal", binary=failing) is False


@pytest.mark.asyncio
async def test_watch_start_missing_binary(tmp_path):
    assert await run_watch_start(CONFIG, binary=str(tmp_path / "nope")) is False


@pytest.mark.asyncio
async def test_watch_start_timeout(tmp_path):
    slow = _script(tmp_path, "sleep 5")
    assert await run_watch_start(CONFIG, binary=slow, timeout=0.2) is False


@pytest.mark.asyncio
async def test_bind_conflict_stops_restarts(tmp_path):
    binary = _script(tmp_path, "echo 'listen tcp 127.0.0.1:8788: bind: address already in use' >&2\nexit 1")
    relay = WatchRelay(CONFIG, asyncio.Event(), binary=binary, backoff_seconds=0.01)

    outcome = await asyncio.wait_for(relay.supervise(), timeout=5)

    assert outcome is RelayExit.BIND_CONFLICT
    assert "address already in use" in relay.last_error


@pytest.mark.asyncio
async def test_transient_exit_restarts_until_stopped(tmp_path):
    counter = tmp_path / "runs"
    binary = _script(tmp_path, f"echo run >> {counter}\nexit 1")
    stop = asyncio.Event()
    relay = WatchRelay(CONFIG, stop, binary=binary, backoff_seconds=0.01)

    task = asyncio.create_task(relay.supervise())
    for _ in range(200):
        if counter.exists() and len(counter.read_text().splitlines()) >= 2:
            break
        await asyncio.sleep(0.01)
    stop.set()

    assert await asyncio.wait_for(task, timeout=5) is RelayExit.STOPPED
    assert len(counter.read_text().splitlines()) >= 2


@pytest.mark.asyncio
async def test_stop_terminates_running_relay(tmp_path):
    binary = _script(tmp_path, "echo serving\nexec sleep 30")
    stop = asyncio.Event()
    relay = WatchRelay(CONFIG, stop, binary=binary)

    task = asyncio.create_task(relay.run_once())
    await asyncio.sleep(0.2)
    stop.set()

    assert await asyncio.wait_for(task, timeout=10) is RelayExit.STOPPED
