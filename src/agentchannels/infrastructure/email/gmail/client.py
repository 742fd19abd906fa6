"""Gmail REST client over httpx with refresh-token based access tokens."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from agentchannels.application.ports.email_source import EmailSource, SendEmailParams, SentEmail
from agentchannels.domain.entities.email_message import InboundEmail
from agentchannels.errors import GmailApiError
from agentchannels.infrastructure.email.gmail.mapper import (
    decode_base64url,
    gmail_payload_to_inbound_email,
)
from agentchannels.infrastructure.email.rfc822 import build_mime_message, encode_raw_message

GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1/users/me"
OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"
UNREAD_QUERY = "is:unread in:inbox"

# Refresh slightly before Google's expiry
_EXPIRY_SKEW = timedelta(seconds=60)


def _format_google_error(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("status")
    if isinstance(error, str):
        return payload.get("error_description") or error
    return None


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.is_error:
        detail = _format_google_error(response)
        logger.error(f"Gmail {operation} failed status={response.status_code} details={detail}")
        raise GmailApiError(operation, response.status_code, detail)


class GmailClient(EmailSource):
    """Mailbox operations for a single Gmail account."""

    def __init__(
        self,
        user_email: str,
        client_id: str,
        client_secret: str,
        refresh_token: str | None,
        access_token: str | None = None,
        token_expires_at: datetime | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.user_email = user_email
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._access_token = access_token
        self._token_expires_at = token_expires_at
        self._http = http_client or httpx.AsyncClient(timeout=30.0)
        self._owns_http = http_client is None

    @classmethod
    def from_files(
        cls,
        credentials_path: str,
        token_path: str,
        user_email: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> "GmailClient":
        """
        Build a client from an OAuth client secrets file and a stored token.

        The credentials file is the JSON downloaded from Google Cloud
        (``installed`` or ``web`` key); the token file holds at least a
        ``refresh_token`` and optionally ``access_token``/``expiry_date`` (ms).
        """
        creds = json.loads(Path(credentials_path).read_text(encoding="utf-8"))
        key = creds.get("installed") or creds.get("web")
        if not key:
            raise ValueError("Invalid credentials file: missing installed or web key")

        token = json.loads(Path(token_path).read_text(encoding="utf-8"))
        expires_at = None
        if token.get("expiry_date"):
            expires_at = datetime.fromtimestamp(int(token["expiry_date"]) / 1000, tz=timezone.utc)

        return cls(
            user_email=user_email,
            client_id=key["client_id"],
            client_secret=key["client_secret"],
            refresh_token=token.get("refresh_token"),
            access_token=token.get("access_token"),
            token_expires_at=expires_at,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def _get_access_token(self) -> str:
        """Get valid OAuth access token (refresh if expired)."""
        now = datetime.now(timezone.utc)
        if self._access_token and (
            self._token_expires_at is None or now < self._token_expires_at - _EXPIRY_SKEW
        ):
            return self._access_token

        if not self._refresh_token:
            raise GmailApiError("token_refresh", 401, "no refresh_token available")

        response = await self._http.post(
            OAUTH_TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": self._refresh_token,
                "grant_type": "refresh_token",
            },
        )
        _raise_for_status(response, "token_refresh")
        token_data = response.json()

        self._access_token = token_data["access_token"]
        expires_in = token_data.get("expires_in", 3600)
        self._token_expires_at = now + timedelta(seconds=expires_in)
        logger.debug(f"Refreshed Gmail access token for {self.user_email} (expires in {expires_in}s)")
        return self._access_token

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> dict[str, Any]:
        token = await self._get_access_token()
        response = await self._http.request(
            method,
            f"{GMAIL_API_BASE}{path}",
            headers={"Authorization": f"Bearer {token}"},
            **kwargs,
        )
        _raise_for_status(response, operation)
        if not response.content:
            return {}
        return response.json()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def get_message(self, message_id: str) -> InboundEmail:
        data = await self._request(
            "GET", f"/messages/{message_id}", "messages.get", params={"format": "full"}
        )
        return gmail_payload_to_inbound_email(data, fallback_id=message_id)

    async def get_attachment(self, message_id: str, attachment_id: str) -> bytes:
        data = await self._request(
            "GET",
            f"/messages/{message_id}/attachments/{attachment_id}",
            "attachments.get",
        )
        return decode_base64url(data.get("data") or "")

    async def get_history(self, start_history_id: str) -> list[str]:
        """Message ids added since ``start_history_id`` (in history order)."""
        data = await self._request(
            "GET",
            "/history",
            "history.list",
            params={"startHistoryId": start_history_id, "historyTypes": "messageAdded"},
        )
        message_ids: list[str] = []
        for record in data.get("history") or []:
            for added in record.get("messagesAdded") or []:
                message_id = (added.get("message") or {}).get("id")
                if message_id:
                    message_ids.append(message_id)
        return message_ids

    async def list_unread_message_ids(self, max_results: int = 50) -> list[str]:
        data = await self._request(
            "GET",
            "/messages",
            "messages.list",
            params={"q": UNREAD_QUERY, "maxResults": max_results},
        )
        return [m["id"] for m in data.get("messages") or [] if m.get("id")]

    async def mark_as_read(self, message_id: str) -> None:
        await self._request(
            "POST",
            f"/messages/{message_id}/modify",
            "messages.modify",
            json={"removeLabelIds": ["UNREAD"]},
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def send_email(self, params: SendEmailParams) -> SentEmail:
        raw = encode_raw_message(build_mime_message(self.user_email, params))
        body: dict[str, Any] = {"raw": raw}
        if params.thread_id:
            body["threadId"] = params.thread_id

        data = await self._request("POST", "/messages/send", "messages.send", json=body)
        return SentEmail(message_id=data.get("id") or "", thread_id=data.get("threadId") or "")

