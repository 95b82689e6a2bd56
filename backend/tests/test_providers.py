"""
Provider adapter tests.

Each adapter talks to an httpx.MockTransport, so the exact outbound request
(URL, auth, JSON body) can be asserted without any network access.
"""

import base64
import json
import os
from unittest.mock import patch

import httpx
import pytest

from app.models.email import EmailSendRequest
from app.services.providers import (
    PROVIDER_PRIORITY,
    BrevoProvider,
    FailureKind,
    NotificationApiProvider,
    build_providers,
    classify_failure,
    render_html,
    resolve_sender_email,
    resolve_sender_name,
)

NOTIFICATIONAPI_ENV = {
    "NOTIFICATIONAPI_CLIENT_ID": "client-123",
    "NOTIFICATIONAPI_CLIENT_SECRET": "secret-456",
}
BREVO_ENV = {"BREVO_API_KEY": "xkeysib-test"}


def _email(**overrides) -> EmailSendRequest:
    fields = {"to": "user@example.com", "subject": "Hello", "body": "Plain body"}
    fields.update(overrides)
    return EmailSendRequest(**fields)


class Recorder:
    """MockTransport handler that records requests and replies with a fixed response."""

    def __init__(self, status_code: int = 200, json_body=None, exc: Exception = None):
        self.status_code = status_code
        self.json_body = json_body if json_body is not None else {}
        self.exc = exc
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

class TestDefaults:

    def test_html_falls_back_to_paragraph_wrapped_body(self):
        assert render_html(_email()) == "<p>Plain body</p>"

    def test_html_fallback_escapes_markup(self):
        assert render_html(_email(body="1 < 2 & 3")) == "<p>1 &lt; 2 &amp; 3</p>"

    def test_caller_html_is_used_verbatim(self):
        assert render_html(_email(html="<h1>Hi</h1>")) == "<h1>Hi</h1>"

    def test_sender_name_default(self):
        assert resolve_sender_name(_email()) == "Falak Mail Relay"
        assert resolve_sender_name(_email(sender_name="Billing")) == "Billing"

    def test_sender_email_default_and_env_override(self):
        with patch.dict(os.environ, {}, clear=True):
            assert resolve_sender_email(_email()) == "noreply@alerts.falak.me"
        with patch.dict(os.environ, {"DEFAULT_FROM_EMAIL": "relay@falak.me"}):
            assert resolve_sender_email(_email()) == "relay@falak.me"
            assert resolve_sender_email(_email(from_="me@falak.me")) == "me@falak.me"


class TestClassifyFailure:

    @pytest.mark.parametrize("message", [
        "Rate exceeded",
        "Daily LIMIT reached",
        "quota exhausted for account",
    ])
    def test_rate_limit_terms(self, message):
        assert classify_failure(message) == FailureKind.RATE_LIMITED

    def test_http_429(self):
        assert classify_failure("HTTP 429: Too Many Requests", status_code=429) == FailureKind.RATE_LIMITED

    def test_text_match_beats_status_code(self):
        assert classify_failure("HTTP 401: sending limit", status_code=401) == FailureKind.RATE_LIMITED

    def test_auth_failures(self):
        assert classify_failure("HTTP 401: Key not found", status_code=401) == FailureKind.AUTH_FAILED
        assert classify_failure("HTTP 403: forbidden", status_code=403) == FailureKind.AUTH_FAILED

    def test_server_errors_and_network_errors_are_transient(self):
        assert classify_failure("HTTP 502: Bad Gateway", status_code=502) == FailureKind.TRANSIENT
        assert classify_failure("connection refused", network_error=True) == FailureKind.TRANSIENT

    def test_everything_else(self):
        assert classify_failure("HTTP 400: invalid email", status_code=400) == FailureKind.OTHER


# ---------------------------------------------------------------------------
# NotificationAPI
# ---------------------------------------------------------------------------

class TestNotificationApiProvider:

    @pytest.mark.asyncio
    async def test_missing_credentials_skips_network(self):
        recorder = Recorder()
        provider = NotificationApiProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, {}, clear=True):
            result = await provider.send(_email())

        assert result.success is False
        assert result.kind == FailureKind.NOT_CONFIGURED
        assert result.error == "NotificationAPI credentials not configured"
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_successful_send_builds_expected_request(self):
        recorder = Recorder(200, {"success": True})
        provider = NotificationApiProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, NOTIFICATIONAPI_ENV):
            result = await provider.send(_email())

        assert result.success is True
        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.notificationapi.com/client-123/sender"
        expected_auth = base64.b64encode(b"client-123:secret-456").decode()
        assert request.headers["authorization"] == f"Basic {expected_auth}"
        assert recorder.body == {
            "type": "mail_relay",
            "to": {"id": "user@example.com", "email": "user@example.com"},
            "email": {
                "subject": "Hello",
                "html": "<p>Plain body</p>",
                "senderName": "Falak Mail Relay",
                "senderEmail": os.getenv("DEFAULT_FROM_EMAIL") or "noreply@alerts.falak.me",
            },
        }

    @pytest.mark.asyncio
    async def test_base_url_override(self):
        recorder = Recorder()
        provider = NotificationApiProvider(transport=httpx.MockTransport(recorder))

        env = {**NOTIFICATIONAPI_ENV, "NOTIFICATIONAPI_BASE_URL": "https://api.eu.notificationapi.com/"}
        with patch.dict(os.environ, env):
            await provider.send(_email())

        assert str(recorder.requests[0].url) == "https://api.eu.notificationapi.com/client-123/sender"

    @pytest.mark.asyncio
    async def test_rate_limit_response(self):
        recorder = Recorder(429, {"message": "Rate limit exceeded"})
        provider = NotificationApiProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, NOTIFICATIONAPI_ENV):
            result = await provider.send(_email())

        assert result.success is False
        assert result.kind == FailureKind.RATE_LIMITED
        assert result.error == "HTTP 429: Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_network_error_is_caught(self):
        recorder = Recorder(exc=httpx.ConnectError("connection refused"))
        provider = NotificationApiProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, NOTIFICATIONAPI_ENV):
            result = await provider.send(_email())

        assert result.success is False
        assert result.kind == FailureKind.TRANSIENT
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_caught(self):
        recorder = Recorder(exc=httpx.ReadTimeout("timed out"))
        provider = NotificationApiProvider(timeout=0.5, transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, NOTIFICATIONAPI_ENV):
            result = await provider.send(_email())

        assert result.success is False
        assert result.kind == FailureKind.TRANSIENT


# ---------------------------------------------------------------------------
# Brevo
# ---------------------------------------------------------------------------

class TestBrevoProvider:

    @pytest.mark.asyncio
    async def test_missing_api_key_skips_network(self):
        recorder = Recorder()
        provider = BrevoProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, {}, clear=True):
            result = await provider.send(_email())

        assert result.success is False
        assert result.kind == FailureKind.NOT_CONFIGURED
        assert result.error == "Brevo credentials not configured"
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_successful_send_builds_expected_request(self):
        recorder = Recorder(201, {"messageId": "<abc@smtp-relay.brevo.com>"})
        provider = BrevoProvider(transport=httpx.MockTransport(recorder))

        email = _email(
            html="<b>Hi</b>",
            from_="billing@falak.me",
            sender_name="Billing",
            reply_to="support@falak.me",
        )
        with patch.dict(os.environ, BREVO_ENV):
            result = await provider.send(email)

        assert result.success is True
        request = recorder.requests[0]
        assert str(request.url) == "https://api.brevo.com/v3/smtp/email"
        assert request.headers["api-key"] == "xkeysib-test"
        assert recorder.body == {
            "sender": {"name": "Billing", "email": "billing@falak.me"},
            "to": [{"email": "user@example.com"}],
            "subject": "Hello",
            "htmlContent": "<b>Hi</b>",
            "textContent": "Plain body",
            "replyTo": {"email": "support@falak.me"},
        }

    @pytest.mark.asyncio
    async def test_reply_to_omitted_when_absent(self):
        recorder = Recorder(201)
        provider = BrevoProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, BREVO_ENV):
            await provider.send(_email())

        assert "replyTo" not in recorder.body

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        recorder = Recorder(401, {"code": "unauthorized", "message": "Key not found"})
        provider = BrevoProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, BREVO_ENV):
            result = await provider.send(_email())

        assert result.success is False
        assert result.kind == FailureKind.AUTH_FAILED
        assert result.error == "HTTP 401: Key not found"

    @pytest.mark.asyncio
    async def test_quota_message_marks_rate_limited(self):
        recorder = Recorder(400, {"message": "You have exceeded your daily sending quota"})
        provider = BrevoProvider(transport=httpx.MockTransport(recorder))

        with patch.dict(os.environ, BREVO_ENV):
            result = await provider.send(_email())

        assert result.kind == FailureKind.RATE_LIMITED


class TestRegistry:

    def test_priority_order(self):
        providers = build_providers()
        assert [p.provider for p in providers] == list(PROVIDER_PRIORITY)
        assert [p.label for p in providers] == ["NotificationAPI", "Brevo"]

    def test_timeout_from_environment(self):
        with patch.dict(os.environ, {"PROVIDER_TIMEOUT_SECONDS": "3"}):
            assert all(p.timeout == 3.0 for p in build_providers())
