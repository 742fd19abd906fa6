"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from agentchannels.api.runtime import ChannelRuntime
from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.infrastructure.dispatch import EchoReplyDispatcher
from agentchannels.infrastructure.settings import Settings, get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    runtime: ChannelRuntime = app.state.runtime
    settings = runtime.settings
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    if isinstance(runtime.dispatcher, EchoReplyDispatcher):
        logger.warning("dispatch_url not set; echo dispatcher active, allowed senders get echoed replies")

    if settings.email.enabled is not False:
        await runtime.start_email_monitors()
        logger.info(f"Email monitors started: {sorted(runtime.email_monitors) or 'none'}")
    if not settings.sms.configured:
        logger.warning("SMS missing account_sid, auth_token, or phone_number; outbound SMS disabled")
    if not settings.vapi.configured:
        logger.warning("VAPI api_key not configured")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down...")
    await runtime.stop_email_monitors()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None, dispatcher: ReplyDispatcher | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Email, SMS and voice channel adapters for an agent runtime",
        lifespan=lifespan,
    )
    app.state.runtime = ChannelRuntime.from_settings(settings, dispatcher)

    # Register routes
    from agentchannels.api.routes import router
    from agentchannels.infrastructure.http.email_inbound import router as email_router
    from agentchannels.infrastructure.http.sms_inbound import router as sms_router
    from agentchannels.infrastructure.http.vapi import router as vapi_router

    app.include_router(router)
    app.include_router(email_router)
    app.include_router(sms_router)
    app.include_router(vapi_router)

    return app
