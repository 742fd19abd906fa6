"""Resolve per-account email settings from the channel config."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from agentchannels.application.policy import normalize_email_allow_entry
from agentchannels.domain.models import DmPolicy
from agentchannels.infrastructure.settings import (
    DEFAULT_ACCOUNT_ID,
    EmailAccountConfig,
    EmailChannelConfig,
)

DEFAULT_GMAIL_SERVE_PORT = 8788
DEFAULT_GMAIL_SERVE_BIND = "127.0.0.1"
DEFAULT_RENEW_MINUTES = 12 * 60
DEFAULT_POLL_SECONDS = 30


def normalize_account_id(account_id: Optional[str]) -> str:
    trimmed = (account_id or "").strip()
    return trimmed or DEFAULT_ACCOUNT_ID


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


@dataclass(frozen=True)
class ResolvedEmailAccount:
    account_id: str
    enabled: bool
    config: EmailAccountConfig
    name: Optional[str] = None
    gmail_address: Optional[str] = None
    credentials_path: Optional[str] = None
    token_path: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def dm_policy(self) -> DmPolicy:
        return self.config.dm_policy or DmPolicy.ALLOWLIST

    @property
    def allow_from(self) -> list[str]:
        return [normalize_email_allow_entry(e) for e in (self.config.allow_from or [])]

    @property
    def preserve_cc(self) -> bool:
        return self.config.preserve_cc is not False

    @property
    def push_enabled(self) -> bool:
        """Push mode needs both a Pub/Sub topic and a push token."""
        push_token = self.config.push_token.get_secret_value() if self.config.push_token else ""
        return bool(self.config.pubsub_topic and push_token)

    @property
    def hook_token(self) -> str:
        return self.config.hook_token.get_secret_value() if self.config.hook_token else ""

    @property
    def poll_interval_seconds(self) -> int:
        return self.config.poll_interval_seconds or DEFAULT_POLL_SECONDS

    @property
    def renew_every_minutes(self) -> int:
        return self.config.renew_every_minutes or DEFAULT_RENEW_MINUTES


def list_email_account_ids(cfg: EmailChannelConfig) -> list[str]:
    ids = [account_id for account_id in cfg.accounts if account_id]
    if not ids:
        return [DEFAULT_ACCOUNT_ID]
    return sorted(ids)


def resolve_default_email_account_id(cfg: EmailChannelConfig) -> str:
    ids = list_email_account_ids(cfg)
    if DEFAULT_ACCOUNT_ID in ids:
        return DEFAULT_ACCOUNT_ID
    return ids[0] if ids else DEFAULT_ACCOUNT_ID


def merge_email_account_config(cfg: EmailChannelConfig, account_id: str) -> EmailAccountConfig:
    """Channel-level fields overlaid with the account's explicitly set fields."""
    base = cfg.model_dump(exclude={"accounts"})
    account = cfg.accounts.get(account_id)
    if account is not None:
        base.update(account.model_dump(exclude_unset=True))
    return EmailAccountConfig.model_validate(base)


def resolve_email_account(cfg: EmailChannelConfig, account_id: Optional[str] = None) -> ResolvedEmailAccount:
    account_id = normalize_account_id(account_id)
    merged = merge_email_account_config(cfg, account_id)
    enabled = cfg.enabled is not False and merged.enabled is not False

    return ResolvedEmailAccount(
        account_id=account_id,
        enabled=enabled,
        config=merged,
        name=_clean(merged.name),
        gmail_address=_clean(merged.gmail_address),
        credentials_path=_clean(merged.credentials_path),
        token_path=_clean(merged.token_path),
        project_id=_clean(merged.project_id),
    )


def list_enabled_email_accounts(cfg: EmailChannelConfig) -> list[ResolvedEmailAccount]:
    accounts = [resolve_email_account(cfg, account_id) for account_id in list_email_account_ids(cfg)]
    return [account for account in accounts if account.enabled]
