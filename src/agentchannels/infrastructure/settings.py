"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentchannels.domain.models import DmPolicy

DEFAULT_ACCOUNT_ID = "default"


def _require_open_allow_from(policy: DmPolicy | None, allow_from: list[str] | None, path: str) -> None:
    if policy is DmPolicy.OPEN and "*" not in (allow_from or []):
        raise ValueError(f'{path}.dm_policy="open" requires {path}.allow_from to include "*"')


class EmailAccountConfig(BaseModel):
    """Settings for one Gmail-backed email account.

    Every field is optional so per-account entries can be merged over the
    channel-level defaults.
    """

    model_config = {"extra": "forbid"}

    name: str | None = None
    enabled: bool | None = None
    gmail_address: str | None = None
    credentials_path: str | None = None
    token_path: str | None = None
    project_id: str | None = None
    pubsub_topic: str | None = None
    pubsub_subscription: str | None = None
    push_token: SecretStr | None = None
    watch_label: str | None = None
    dm_policy: DmPolicy | None = None
    allow_from: list[str] | None = None
    preserve_cc: bool | None = None
    signature: str | None = None
    serve_port: int | None = Field(default=None, gt=0)
    serve_bind: str | None = None
    renew_every_minutes: int | None = Field(default=None, gt=0)
    hook_url: str | None = None
    hook_token: SecretStr | None = None
    poll_interval_seconds: int | None = Field(default=None, gt=0)
    media_max_mb: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _open_policy_needs_wildcard(self) -> "EmailAccountConfig":
        _require_open_allow_from(self.dm_policy, self.allow_from, "email")
        return self


class EmailChannelConfig(EmailAccountConfig):
    """Channel-level email defaults plus optional named accounts."""

    accounts: dict[str, EmailAccountConfig] = Field(default_factory=dict)


class SmsChannelConfig(BaseModel):
    """Twilio SMS channel settings."""

    enabled: bool = True
    account_sid: str = ""
    auth_token: SecretStr | None = None
    phone_number: str = ""
    webhook_url: str | None = None
    inbound_policy: DmPolicy = DmPolicy.ALLOWLIST
    allow_from: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _open_policy_needs_wildcard(self) -> "SmsChannelConfig":
        _require_open_allow_from(self.inbound_policy, self.allow_from, "sms")
        return self

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.phone_number)


class VapiChannelConfig(BaseModel):
    """VAPI voice channel settings."""

    enabled: bool = True
    api_key: SecretStr | None = None
    assistant_id: str | None = None
    phone_number_id: str | None = None
    default_greeting: str = "Hey! How can I help?"
    inbound_policy: DmPolicy = DmPolicy.OPEN
    allow_from: list[str] = Field(default_factory=lambda: ["*"])

    @property
    def configured(self) -> bool:
        return self.api_key is not None and bool(self.api_key.get_secret_value())

    @property
    def outbound_enabled(self) -> bool:
        return bool(self.assistant_id and self.phone_number_id)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Agent Channels"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 18789

    # Port the Gmail watch relay posts notifications back to
    gateway_port: int | None = None

    # Inbound media
    media_dir: str = "./data/media"
    media_max_mb: float = 8.0

    # Host reply dispatcher; echo mode when unset
    dispatch_url: str | None = None
    dispatch_token: SecretStr | None = None
    dispatch_timeout_s: float = 120.0

    # Channels
    email: EmailChannelConfig = Field(default_factory=EmailChannelConfig)
    sms: SmsChannelConfig = Field(default_factory=SmsChannelConfig)
    vapi: VapiChannelConfig = Field(default_factory=VapiChannelConfig)

    @property
    def effective_gateway_port(self) -> int:
        return self.gateway_port or self.api_port

    @property
    def media_max_bytes(self) -> int:
        return int(self.media_max_mb * 1024 * 1024)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
