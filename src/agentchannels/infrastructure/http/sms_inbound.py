"""Twilio SMS webhook and outbound send endpoints."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response
from loguru import logger
from pydantic import BaseModel

from agentchannels.api.runtime import ChannelRuntime, get_runtime
from agentchannels.application.use_cases.process_sms import ProcessSMSUseCase
from agentchannels.domain.entities.sms_message import InboundSms
from agentchannels.infrastructure.sms.providers.twilio import resolve_webhook_url, validate_twilio_signature

router = APIRouter(tags=["sms"])

EMPTY_TWIML = "<Response/>"


# ============================================================================
# Request Models
# ============================================================================


class SendSmsRequest(BaseModel):
    """Outbound SMS request."""

    to: str | None = None
    text: str | None = None


# ============================================================================
# Background Task
# ============================================================================


async def _process_sms_event(use_case: ProcessSMSUseCase, inbound: InboundSms) -> None:
    """Background task to process a single inbound SMS."""
    try:
        result = await use_case.process(inbound)
        logger.info(f"SMS processed: {inbound.sender} -> {result.get('status')}")
    except Exception as e:
        logger.exception(f"Failed to process SMS from {inbound.sender}: {e}")


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/sms/inbound")
async def sms_inbound(
    request: Request,
    background_tasks: BackgroundTasks,
    runtime: ChannelRuntime = Depends(get_runtime),
) -> Response:
    """
    Receive an inbound SMS webhook from Twilio.

    This endpoint:
    1. Validates the X-Twilio-Signature header (required once auth_token is set)
    2. Queues the message for background processing
    3. Returns empty TwiML immediately (the reply goes out as a separate SMS)
    """
    form = await request.form()
    params = {key: value for key, value in form.items() if isinstance(value, str)}
    inbound = InboundSms.from_form(params)
    logger.info(f"SMS inbound {inbound.message_sid or 'unknown'} from {inbound.sender}: {inbound.body[:80]}")

    config = runtime.settings.sms
    signature = request.headers.get("x-twilio-signature")
    auth_token = config.auth_token.get_secret_value() if config.auth_token else ""
    if auth_token:
        webhook_url = resolve_webhook_url(config.webhook_url, request)
        if not signature or not validate_twilio_signature(auth_token, signature, webhook_url, params):
            logger.warning(f"Invalid Twilio signature for {inbound.message_sid} (url={webhook_url})")
            return PlainTextResponse("Invalid signature", status_code=403)

    background_tasks.add_task(_process_sms_event, runtime.sms, inbound)
    return Response(content=EMPTY_TWIML, media_type="text/xml")


@router.post("/sms/send")
async def sms_send(
    payload: SendSmsRequest,
    runtime: ChannelRuntime = Depends(get_runtime),
) -> dict:
    """Send an outbound SMS."""
    if not payload.to or not payload.text:
        raise HTTPException(status_code=400, detail="'to' and 'text' are required")

    result = await runtime.sms_provider.send_sms(payload.to, payload.text)
    if not result.success:
        return {"success": False, "error": result.error}
    return {"success": True, "sid": result.sid}


@router.get("/sms/status")
async def sms_status(runtime: ChannelRuntime = Depends(get_runtime)) -> dict:
    """Status of the SMS subsystem."""
    config = runtime.settings.sms
    return {
        "enabled": config.enabled,
        "configured": config.configured,
        "phone_number": config.phone_number or None,
        "inbound_policy": config.inbound_policy.value,
    }
