"""Service-level routes for the channel adapters."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from agentchannels.api.runtime import ChannelRuntime, get_runtime

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    channels: dict[str, dict]


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(runtime: ChannelRuntime = Depends(get_runtime)) -> HealthResponse:
    """Basic health check with per-channel state."""
    settings = runtime.settings
    email = {
        account_id: {
            "running": monitor.running,
            "mode": "push" if monitor.account.push_enabled else "poll",
            "last_error": monitor.last_error,
        }
        for account_id, monitor in runtime.email_monitors.items()
    }
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=settings.app_version,
        channels={
            "email": email,
            "sms": {"configured": settings.sms.configured},
            "vapi": {
                "configured": settings.vapi.configured,
                "outbound": settings.vapi.outbound_enabled,
            },
        },
    )
