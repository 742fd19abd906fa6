"""
SSE helpers for VAPI's OpenAI-compatible custom LLM protocol.

Each chunk is an OpenAI ``chat.completion.chunk`` written as a server-sent
event. VAPI pipes chunk text straight to TTS, so text should be yielded as
soon as the agent produces it.
"""

from __future__ import annotations

import json
from typing import AsyncIterator, Optional

DONE = "data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _event(call_id: str, delta: dict, finish_reason: Optional[str]) -> str:
    chunk = {
        "id": f"chatcmpl-{call_id}",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(chunk)}\n\n"


def format_chunk(call_id: str, text: str) -> str:
    return _event(call_id, {"content": text}, None)


def format_stop(call_id: str) -> str:
    return _event(call_id, {}, "stop")


async def stream_text(call_id: str, texts: AsyncIterator[str]) -> AsyncIterator[str]:
    """Wrap text pieces as SSE chunks, then the stop chunk and ``[DONE]``."""
    async for text in texts:
        yield format_chunk(call_id, text)
    yield format_stop(call_id)
    yield DONE
