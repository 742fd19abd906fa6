"""Infrastructure layer - provider clients, HTTP endpoints and configuration."""

from agentchannels.infrastructure.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
