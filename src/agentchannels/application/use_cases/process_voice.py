"""Voice conversations over VAPI's custom LLM and server-message webhooks."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, AsyncIterator, Optional

from loguru import logger

from agentchannels.application.policy import is_sender_allowed, normalize_phone_allow_entry
from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.domain.models import Channel, InboundContext, ReplyPayload
from agentchannels.infrastructure.settings import VapiChannelConfig
from agentchannels.infrastructure.voice.providers.vapi import VapiProvider

UNKNOWN_CALLER = "unknown"
VOICE_ERROR_REPLY = "Sorry, something went wrong. Please try again."
VOICE_BLOCKED_REPLY = "Sorry, this number can't reach the assistant."
ACTION_DEFAULT_RESULT = "Action completed."
ACTION_TOOL_NAME = "do_action"

TOOL_CALL_PREAMBLE = (
    "[Voice tool call] Caller phone: {caller}\n\n"
    "Match the caller's phone number against your contacts and workspace notes "
    "if you need to know who is calling or how to reach them on other channels.\n\n"
    "Carry out this request and answer with a short result that can be read "
    "aloud (one or two sentences)."
)

_STARTS_WITH_DIGIT = re.compile(r"^\d")

_END = object()


def normalize_caller_number(raw: Any) -> Optional[str]:
    """Trimmed caller number with a ``+`` prefix; unresolved ``{{...}}`` templates count as absent."""
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if not value or "{{" in value:
        return None
    if _STARTS_WITH_DIGIT.match(value):
        value = f"+{value}"
    return value


def latest_user_message(messages: list[dict[str, Any]] | None) -> Optional[str]:
    for message in reversed(messages or []):
        if message.get("role") == "user":
            return message.get("content") or None
    return None


def parse_tool_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return {"request": raw}
        return parsed if isinstance(parsed, dict) else {"request": raw}
    return raw if isinstance(raw, dict) else {}


class ActiveCallRegistry:
    """Maps live call ids to caller numbers for tool requests that omit the caller."""

    def __init__(self) -> None:
        self._calls: dict[str, str] = {}
        self.current_caller: Optional[str] = None

    def remember(self, call_id: Optional[str], caller: Optional[str]) -> None:
        if not caller or caller == UNKNOWN_CALLER:
            return
        if call_id:
            self._calls[call_id] = caller
        self.current_caller = caller

    def lookup(self, call_id: Optional[str]) -> Optional[str]:
        if call_id and call_id in self._calls:
            return self._calls[call_id]
        return None

    def forget(self, call_id: Optional[str]) -> None:
        if call_id:
            self._calls.pop(call_id, None)

    def __len__(self) -> int:
        return len(self._calls)


class VoiceConversationUseCase:
    """Turns VAPI requests into dispatcher calls and dispatcher replies into speech."""

    def __init__(
        self,
        config: VapiChannelConfig,
        dispatcher: ReplyDispatcher,
        provider: VapiProvider | None = None,
        calls: ActiveCallRegistry | None = None,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.provider = provider
        self.calls = calls or ActiveCallRegistry()

    def _caller_allowed(self, caller: str) -> bool:
        allow_from = [
            entry if entry.strip() == "*" else normalize_phone_allow_entry(entry)
            for entry in self.config.allow_from
        ]
        return is_sender_allowed(self.config.inbound_policy, allow_from, normalize_phone_allow_entry(caller))

    def _outbound_context(self, call_id: str) -> Optional[str]:
        if self.provider is None:
            return None
        outbound = self.provider.consume_context(call_id)
        if outbound is None:
            return None
        callee = outbound.callee_name or outbound.callee_number
        return f"This is an outbound call you initiated to {callee}. Context: {outbound.context}"

    # ------------------------------------------------------------------
    # /chat/completions
    # ------------------------------------------------------------------

    async def respond(
        self,
        call_id: str,
        caller: str,
        messages: list[dict[str, Any]] | None,
    ) -> AsyncIterator[str]:
        """Yield reply text as the dispatcher delivers it."""
        self.calls.remember(call_id, caller)

        latest = latest_user_message(messages)
        if not latest:
            logger.info(f"No user message on call {call_id}, sending greeting")
            yield self.config.default_greeting
            return

        if caller != UNKNOWN_CALLER and not self._caller_allowed(caller):
            logger.info(f"Call {call_id} from {caller} blocked by {self.config.inbound_policy.value} policy")
            yield VOICE_BLOCKED_REPLY
            return

        system_context = self._outbound_context(call_id)
        ctx = InboundContext(
            body=latest,
            body_for_agent=latest,
            raw_body=latest,
            sender_id=caller,
            to=caller,
            session_key=f"agent:main:vapi:dm:{caller}",
            provider=Channel.VAPI,
            surface=Channel.VAPI,
            message_sid=call_id,
            untrusted_context=[system_context] if system_context else [],
            metadata={"sender_e164": caller},
        )

        queue: asyncio.Queue = asyncio.Queue()

        async def deliver(payload: ReplyPayload) -> None:
            if payload.text:
                await queue.put(payload.text)

        async def run() -> None:
            try:
                await self.dispatcher.dispatch(ctx, deliver)
            except Exception as e:
                logger.error(f"Call {call_id} agent error: {e}")
                await queue.put(VOICE_ERROR_REPLY)
            finally:
                await queue.put(_END)

        logger.info(f"Dispatching reply for session={ctx.session_key}")
        task = asyncio.create_task(run())
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    break
                yield item
        finally:
            if not task.done():
                task.cancel()

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    def resolve_action_caller(self, call_id: Optional[str], caller: Any) -> str:
        resolved = normalize_caller_number(caller)
        if resolved:
            return resolved
        tracked = self.calls.lookup(call_id) or self.calls.current_caller
        if tracked:
            logger.info(f"Resolved caller {tracked} from tracking")
            return normalize_caller_number(tracked) or UNKNOWN_CALLER
        return UNKNOWN_CALLER

    async def run_action(self, request_text: str, caller: str) -> str:
        """Run one natural-language request on the caller's tool session and collect the reply."""
        if caller != UNKNOWN_CALLER and not self._caller_allowed(caller):
            logger.info(f"Action from {caller} blocked by {self.config.inbound_policy.value} policy")
            return VOICE_BLOCKED_REPLY

        ctx = InboundContext(
            body=request_text,
            body_for_agent=request_text,
            raw_body=request_text,
            sender_id=caller,
            to=caller,
            session_key=f"agent:main:vapi:tool:{caller}",
            provider=Channel.API,
            surface=Channel.API,
            untrusted_context=[TOOL_CALL_PREAMBLE.format(caller=caller)],
            metadata={"sender_e164": caller},
        )
        parts: list[str] = []

        async def deliver(payload: ReplyPayload) -> None:
            if payload.text:
                parts.append(payload.text)

        await self.dispatcher.dispatch(ctx, deliver)
        result = "".join(parts)
        logger.info(f"Action completed for {caller}: {result[:100]}")
        return result or ACTION_DEFAULT_RESULT

    async def _run_tool_calls(self, message: dict[str, Any], caller: str) -> dict[str, Any]:
        tool_calls = message.get("toolCallList") or message.get("toolCalls") or []
        results: list[dict[str, str]] = []

        for tool_call in tool_calls:
            function = tool_call.get("function") or {}
            name = tool_call.get("name") or function.get("name")
            args = parse_tool_arguments(tool_call.get("arguments") or function.get("arguments"))
            tool_call_id = tool_call.get("id")
            logger.info(f"Tool call: {name} from {caller}")

            if name != ACTION_TOOL_NAME:
                results.append({"toolCallId": tool_call_id, "result": f"Unknown tool: {name}"})
                continue

            request_text = args.get("request")
            if not request_text:
                results.append({"toolCallId": tool_call_id, "result": "No request provided."})
                continue

            try:
                result = await self.run_action(str(request_text), caller)
            except Exception as e:
                logger.error(f"Tool error: {e}")
                result = "Failed to execute action."
            results.append({"toolCallId": tool_call_id, "result": result})

        return {"results": results}

    # ------------------------------------------------------------------
    # Server messages and events
    # ------------------------------------------------------------------

    def assistant_response(self, caller: Optional[str]) -> dict[str, Any]:
        return {
            "assistantId": self.config.assistant_id,
            "assistantOverrides": {"variableValues": {"callerId": caller or UNKNOWN_CALLER}},
        }

    async def handle_server_message(self, body: dict[str, Any]) -> dict[str, Any]:
        message = body.get("message") or {}
        message_type = message.get("type")
        call = message.get("call") or {}
        call_id = call.get("id")
        caller = normalize_caller_number((call.get("customer") or {}).get("number"))

        logger.info(f"Server message: type={message_type} caller={caller or UNKNOWN_CALLER}")
        self.calls.remember(call_id, caller)

        if message_type == "assistant-request":
            return self.assistant_response(caller)
        if message_type == "tool-calls":
            return await self._run_tool_calls(message, self.resolve_action_caller(call_id, caller))
        if message_type == "end-of-call-report":
            logger.info(f"Call {call_id} ended")
            self.calls.forget(call_id)
        return {"ok": True}

    def handle_event(self, body: dict[str, Any]) -> dict[str, Any]:
        message = body.get("message") or {}
        event_type = message.get("type")
        call = message.get("call") or {}
        call_id = call.get("id")
        self.calls.remember(call_id, normalize_caller_number((call.get("customer") or {}).get("number")))

        if event_type == "end-of-call-report":
            logger.info(
                f"Call {call_id} ended, reason={message.get('endedReason')} "
                f"duration={message.get('durationSeconds')}s"
            )
            self.calls.forget(call_id)
        elif event_type == "status-update":
            logger.info(f"Call {call_id} status: {call.get('status')}")
        elif event_type != "transcript":
            logger.info(f"Event: {event_type} for call {call_id}")
        return {"ok": True}
