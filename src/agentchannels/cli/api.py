"""Run the channel adapter API with uvicorn."""

from __future__ import annotations

import uvicorn
from loguru import logger

from agentchannels.api.main import create_app
from agentchannels.infrastructure.logging import configure_logging
from agentchannels.infrastructure.settings import get_settings


def main() -> int:
    """Entry point for the API server."""
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("=" * 60)
    logger.info(settings.app_name)
    logger.info("=" * 60)

    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
