"""Exceptions raised by the channel adapters."""

from __future__ import annotations


class AgentChannelsError(Exception):
    """Base class for adapter errors."""


class ConfigurationError(AgentChannelsError):
    """A channel account is missing required settings."""


class GmailApiError(AgentChannelsError):
    """Gmail (or Google OAuth) answered with an error status."""

    def __init__(self, operation: str, status_code: int, detail: str | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        self.detail = detail
        message = f"Gmail {operation} failed with HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MediaTooLargeError(AgentChannelsError):
    """Attachment exceeds the configured media size limit."""

    def __init__(self, size: int, max_bytes: int) -> None:
        self.size = size
        self.max_bytes = max_bytes
        super().__init__(f"Media is {size} bytes, limit is {max_bytes}")
