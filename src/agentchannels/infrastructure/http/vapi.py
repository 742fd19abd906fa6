"""VAPI custom LLM, tool and server-message endpoints."""

from __future__ import annotations

import uuid
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import BaseModel, Field

from agentchannels.api.runtime import ChannelRuntime, get_runtime
from agentchannels.application.use_cases.process_voice import UNKNOWN_CALLER, normalize_caller_number
from agentchannels.infrastructure.voice.streaming import SSE_HEADERS, stream_text

router = APIRouter(tags=["vapi"])


# ============================================================================
# Request Models
# ============================================================================


class VapiMessage(BaseModel):
    role: str
    content: str | None = None


class VapiCall(BaseModel):
    id: str | None = None
    type: str | None = None
    status: str | None = None
    customer: dict[str, Any] = Field(default_factory=dict)


class VapiChatRequest(BaseModel):
    """OpenAI-style chat request VAPI sends to a custom LLM."""

    model_config = {"extra": "allow"}

    messages: list[VapiMessage] = Field(default_factory=list)
    call: VapiCall | None = None


class OutboundCallRequest(BaseModel):
    to: str
    greeting: str | None = None
    context: str | None = None


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/chat/completions")
async def chat_completions(
    payload: VapiChatRequest,
    runtime: ChannelRuntime = Depends(get_runtime),
) -> StreamingResponse:
    """Stream the agent's reply to transcribed caller speech as SSE."""
    call = payload.call or VapiCall()
    call_id = call.id or str(uuid.uuid4())
    caller = normalize_caller_number((call.customer or {}).get("number")) or UNKNOWN_CALLER
    direction = "outbound" if call.type == "outboundPhoneCall" else "inbound"
    logger.info(f"VAPI {direction} call {call_id} from {caller}")

    texts: AsyncIterator[str] = runtime.voice.respond(
        call_id,
        caller,
        [m.model_dump() for m in payload.messages],
    )
    return StreamingResponse(
        stream_text(call_id, texts),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/api/action")
async def api_action(request: Request, runtime: ChannelRuntime = Depends(get_runtime)):
    """Run a natural-language action for an apiRequest tool."""
    body = await _json_body(request)
    query = request.query_params

    def _usable(value: Any) -> str | None:
        return value if isinstance(value, str) and value and "{{" not in value else None

    call_id = _usable(query.get("callId")) or _usable(body.get("callId")) or str(uuid.uuid4())
    caller = runtime.voice.resolve_action_caller(
        call_id, _usable(query.get("caller")) or _usable(body.get("caller"))
    )

    action_request = body.get("request")
    if not isinstance(action_request, str) or not action_request:
        return JSONResponse(status_code=400, content={"success": False, "error": "Missing 'request' field"})

    logger.info(f"Action request from {caller}: {action_request[:100]}")
    try:
        result = await runtime.voice.run_action(action_request, caller)
    except Exception as e:
        logger.exception(f"Action error for {caller}: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to execute action. Please try again."},
        )
    return {"success": True, "result": result}


@router.post("/server")
async def server_message(request: Request, runtime: ChannelRuntime = Depends(get_runtime)) -> dict:
    """VAPI Server URL: assistant requests, tool calls and lifecycle messages."""
    return await runtime.voice.handle_server_message(await _json_body(request))


@router.post("/assistant-selector")
async def assistant_selector(request: Request, runtime: ChannelRuntime = Depends(get_runtime)):
    """Pick the assistant for an inbound call and pass the caller id through."""
    body = await _json_body(request)
    call = body.get("call") or {}
    caller = normalize_caller_number((call.get("customer") or {}).get("number")) or UNKNOWN_CALLER

    if not runtime.settings.vapi.assistant_id:
        logger.error("No assistant_id configured for inbound calls")
        return JSONResponse(status_code=500, content={"error": "No assistant configured"})

    logger.info(f"Inbound call from {caller} -> assistant {runtime.settings.vapi.assistant_id}")
    runtime.voice.calls.remember(call.get("id"), caller)
    return runtime.voice.assistant_response(caller)


@router.post("/events")
async def vapi_events(request: Request, runtime: ChannelRuntime = Depends(get_runtime)) -> dict:
    return runtime.voice.handle_event(await _json_body(request))


@router.post("/vapi/call")
async def vapi_call(payload: OutboundCallRequest, runtime: ChannelRuntime = Depends(get_runtime)) -> dict:
    """Place an outbound call; ``context`` is given to the agent when the callee answers."""
    result = await runtime.vapi_provider.call(payload.to, payload.greeting, payload.context)
    if not result.success:
        return {"success": False, "error": result.error}
    return {"success": True, "call_id": result.call_id}
