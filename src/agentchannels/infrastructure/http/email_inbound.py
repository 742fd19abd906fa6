"""Hook endpoint the Gmail watch relay posts notifications to."""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger

from agentchannels.api.runtime import ChannelRuntime, get_runtime
from agentchannels.infrastructure.email.accounts import normalize_account_id
from agentchannels.infrastructure.email.payload import (
    extract_inbound_message_ids,
    resolve_inbound_history_id,
)

router = APIRouter(tags=["email"])


def _presented_token(request: Request) -> str:
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return request.headers.get("x-gog-token", "").strip()


@router.post("/email/inbound")
async def email_inbound(
    request: Request,
    account_id: str | None = Query(default=None, alias="accountId"),
    runtime: ChannelRuntime = Depends(get_runtime),
):
    account_id = normalize_account_id(account_id)
    monitor = runtime.email_monitors.get(account_id)

    if monitor is not None and monitor.account.hook_token:
        if not hmac.compare_digest(_presented_token(request), monitor.account.hook_token):
            logger.warning(f"Email hook unauthorized attempt for account {account_id}")
            return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    if not extract_inbound_message_ids(payload) and not resolve_inbound_history_id(payload):
        return {"ok": True, "skipped": "no messageId"}

    pipeline = monitor.pipeline if monitor is not None else None
    if pipeline is None:
        return JSONResponse(status_code=500, content={"error": "Gmail client not available"})

    try:
        return await pipeline.handle_notification(payload)
    except Exception as e:
        logger.exception(f"Email inbound error for account {account_id}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
