from __future__ import annotations

import base64
import hashlib
import hmac
from urllib.parse import parse_qs

import httpx
import pytest

from agentchannels.infrastructure.settings import SmsChannelConfig
from agentchannels.infrastructure.sms.providers.twilio import (
    TwilioProvider,
    compute_twilio_signature,
    validate_twilio_signature,
)

URL = "https://example.com/sms/inbound"
PARAMS = {"From": "+15551230000", "Body": "hello", "MessageSid": "SM1"}


def test_signature_matches_reference_algorithm():
    data = URL + "BodyhelloFrom+15551230000MessageSidSM1"
    expected = base64.b64encode(hmac.new(b"token", data.encode(), hashlib.sha1).digest()).decode()
    assert compute_twilio_signature("token", URL, PARAMS) == expected


def test_validate_rejects_tampering():
    signature = compute_twilio_signature("token", URL, PARAMS)
    assert validate_twilio_signature("token", signature, URL, PARAMS)
    assert not validate_twilio_signature("other", signature, URL, PARAMS)
    assert not validate_twilio_signature("token", signature, URL + "?x=1", PARAMS)
    assert not validate_twilio_signature("token", signature, URL, {**PARAMS, "Body": "changed"})


def _provider(handler) -> TwilioProvider:
    return TwilioProvider(
        account_sid="AC1",
        auth_token="secret",
        default_from="+15550000000",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_send_sms_posts_form():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"sid": "SM123"})

    result = await _provider(handler).send_sms("+1 (555) 123-4567", "hi there")

    assert result.success is True
    assert result.sid == "SM123"
    request = seen[0]
    assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
    expected_auth = "Basic " + base64.b64encode(b"AC1:secret").decode()
    assert request.headers["Authorization"] == expected_auth
    form = parse_qs(request.content.decode())
    assert form == {"From": ["+15550000000"], "To": ["+15551234567"], "Body": ["hi there"]}


@pytest.mark.asyncio
async def test_send_sms_api_error_is_result_not_exception():
    result = await _provider(lambda r: httpx.Response(400, text="bad number")).send_sms("+1", "x")
    assert result.success is False
    assert "400" in result.error


@pytest.mark.asyncio
async def test_send_sms_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused")

    result = await _provider(handler).send_sms("+15551234567", "x")
    assert result.success is False
    assert "refused" in result.error


@pytest.mark.asyncio
async def test_unconfigured_provider_does_not_call_out():
    result = await TwilioProvider().send_sms("+15551234567", "x")
    assert result.success is False
    assert "required" in result.error


def test_from_config():
    provider = TwilioProvider.from_config(
        SmsChannelConfig(account_sid="AC1", auth_token="tok", phone_number="+15550000000")
    )
    assert provider.configured
    assert provider.auth_token == "tok"
