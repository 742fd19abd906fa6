"""Email, SMS and voice channel adapters for an agent runtime."""

__version__ = "0.1.0"
