"""Twilio webhook request signing (X-Twilio-Signature)."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Mapping, Optional

from fastapi import Request


def compute_twilio_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    """HMAC-SHA1 over the URL followed by each sorted key and its value, base64 encoded."""
    data = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def validate_twilio_signature(
    auth_token: str,
    signature: str,
    url: str,
    params: Mapping[str, str],
) -> bool:
    expected = compute_twilio_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


def resolve_webhook_url(config_url: Optional[str], request: Request) -> str:
    """
    Reconstruct the public URL Twilio signed.

    Order: configured ``webhook_url`` base, then ``x-forwarded-proto``/
    ``x-forwarded-host`` from a proxy, then the URL the request arrived on.
    """
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"

    if config_url:
        return f"{config_url.rstrip('/')}{path}"

    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}{path}"
