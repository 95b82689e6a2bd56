"""
Outbound email provider adapters.

Each adapter translates the canonical EmailSendRequest into one provider's
REST call and normalizes the outcome to a ProviderResult. Adapters never
raise: credential gaps, HTTP errors, timeouts and unexpected exceptions all
come back as a failed result with a FailureKind.

Supported providers, in priority order:
  - notificationapi  (primary)
  - brevo            (fallback)

NotificationAPI
---------------
  POST {NOTIFICATIONAPI_BASE_URL}/{client_id}/sender
  Authorization: Basic base64(client_id:client_secret)
  {"type": "mail_relay",
   "to": {"id": <to>, "email": <to>},
   "email": {"subject", "html", "senderName", "senderEmail"}}

Brevo
-----
  POST {BREVO_BASE_URL}/v3/smtp/email
  api-key: <BREVO_API_KEY>
  {"sender": {"name", "email"}, "to": [{"email"}], "subject",
   "htmlContent", "textContent", "replyTo"?: {"email"}}

Adding a provider:
  1. Subclass EmailProvider and implement is_configured() and _post().
  2. Add it to Provider and _ADAPTERS.
  3. Place it in PROVIDER_PRIORITY.
"""

import html
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Type

import httpx

from app.models.email import EmailSendRequest, Provider

logger = logging.getLogger(__name__)

DEFAULT_SENDER_NAME = "Falak Mail Relay"
DEFAULT_FROM_EMAIL = "noreply@alerts.falak.me"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Substrings that mark a provider error as a rate-limit / quota rejection.
# Providers do not expose a structured rate-limit error, so this is a
# best-effort match on the error text.
_RATE_LIMIT_TERMS = ("rate", "limit", "quota")


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    TRANSIENT = "transient"
    NOT_CONFIGURED = "not_configured"
    OTHER = "other"


@dataclass
class ProviderResult:
    success: bool
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    @classmethod
    def ok(cls) -> "ProviderResult":
        return cls(success=True)

    @classmethod
    def failure(cls, error: str, kind: FailureKind) -> "ProviderResult":
        return cls(success=False, error=error, kind=kind)

    @property
    def rate_limited(self) -> bool:
        return self.kind == FailureKind.RATE_LIMITED


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def looks_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return any(term in lowered for term in _RATE_LIMIT_TERMS)


def classify_failure(
    message: str,
    status_code: Optional[int] = None,
    network_error: bool = False,
) -> FailureKind:
    """
    Map a provider failure onto a FailureKind.

    The text match on rate/limit/quota takes precedence over everything
    else; HTTP 429 is treated the same way.
    """
    if status_code == 429 or looks_rate_limited(message):
        return FailureKind.RATE_LIMITED
    if status_code in (401, 403):
        return FailureKind.AUTH_FAILED
    if network_error or (status_code is not None and status_code >= 500):
        return FailureKind.TRANSIENT
    return FailureKind.OTHER


def resolve_sender_email(email: EmailSendRequest) -> str:
    return email.from_ or os.getenv("DEFAULT_FROM_EMAIL") or DEFAULT_FROM_EMAIL


def resolve_sender_name(email: EmailSendRequest) -> str:
    return email.sender_name or DEFAULT_SENDER_NAME


def render_html(email: EmailSendRequest) -> str:
    """Caller-supplied HTML, or the plain-text body wrapped in a paragraph."""
    if email.html:
        return email.html
    return f"<p>{html.escape(email.body)}</p>"


def _timeout_from_env() -> float:
    raw = os.getenv("PROVIDER_TIMEOUT_SECONDS", "").strip()
    try:
        value = float(raw) if raw else DEFAULT_TIMEOUT_SECONDS
    except ValueError:
        value = DEFAULT_TIMEOUT_SECONDS
    return value if value > 0 else DEFAULT_TIMEOUT_SECONDS


def _error_detail(response: httpx.Response) -> str:
    """Best human-readable message from a non-2xx provider response."""
    detail = ""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        detail = str(body.get("message") or body.get("error") or body.get("code") or "")
    if not detail:
        detail = response.text.strip()[:300] or response.reason_phrase

    return f"HTTP {response.status_code}: {detail}"


# ---------------------------------------------------------------------------
# Adapter base
# ---------------------------------------------------------------------------

class EmailProvider:
    """
    Base adapter. Subclasses set ``provider`` / ``label`` and implement
    ``is_configured`` and ``_post``.

    Args:
        timeout: Per-request timeout in seconds. Defaults to
                 PROVIDER_TIMEOUT_SECONDS or 10 seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    provider: Provider
    label: str

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else _timeout_from_env()
        self.transport = transport

    @property
    def name(self) -> str:
        return self.provider.value

    def is_configured(self) -> bool:
        raise NotImplementedError

    async def _post(self, client: httpx.AsyncClient, email: EmailSendRequest) -> httpx.Response:
        raise NotImplementedError

    async def send(self, email: EmailSendRequest) -> ProviderResult:
        if not self.is_configured():
            return ProviderResult.failure(
                f"{self.label} credentials not configured",
                FailureKind.NOT_CONFIGURED,
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await self._post(client, email)
        except httpx.TransportError as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error(f"[{self.label}] request failed: {message}")
            return ProviderResult.failure(
                message, classify_failure(message, network_error=True)
            )
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.exception(f"[{self.label}] unexpected error")
            return ProviderResult.failure(message, classify_failure(message))

        if response.is_success:
            return ProviderResult.ok()

        message = _error_detail(response)
        logger.error(f"[{self.label}] {message}")
        return ProviderResult.failure(
            message, classify_failure(message, status_code=response.status_code)
        )


# ---------------------------------------------------------------------------
# NotificationAPI
# ---------------------------------------------------------------------------

class NotificationApiProvider(EmailProvider):
    provider = Provider.NOTIFICATIONAPI
    label = "NotificationAPI"

    def _credentials(self) -> Optional[tuple[str, str]]:
        client_id = os.getenv("NOTIFICATIONAPI_CLIENT_ID")
        client_secret = os.getenv("NOTIFICATIONAPI_CLIENT_SECRET")
        if client_id and client_secret:
            return client_id, client_secret
        return None

    def is_configured(self) -> bool:
        return self._credentials() is not None

    async def _post(self, client: httpx.AsyncClient, email: EmailSendRequest) -> httpx.Response:
        client_id, client_secret = self._credentials()
        base_url = os.getenv("NOTIFICATIONAPI_BASE_URL", "https://api.notificationapi.com").rstrip("/")

        payload = {
            "type": "mail_relay",
            "to": {"id": email.to, "email": email.to},
            "email": {
                "subject": email.subject,
                "html": render_html(email),
                "senderName": resolve_sender_name(email),
                "senderEmail": resolve_sender_email(email),
            },
        }
        return await client.post(
            f"{base_url}/{client_id}/sender",
            json=payload,
            auth=(client_id, client_secret),
        )


# ---------------------------------------------------------------------------
# Brevo
# ---------------------------------------------------------------------------

class BrevoProvider(EmailProvider):
    provider = Provider.BREVO
    label = "Brevo"

    def is_configured(self) -> bool:
        return bool(os.getenv("BREVO_API_KEY"))

    async def _post(self, client: httpx.AsyncClient, email: EmailSendRequest) -> httpx.Response:
        base_url = os.getenv("BREVO_BASE_URL", "https://api.brevo.com").rstrip("/")

        payload = {
            "sender": {
                "name": resolve_sender_name(email),
                "email": resolve_sender_email(email),
            },
            "to": [{"email": email.to}],
            "subject": email.subject,
            "htmlContent": render_html(email),
            "textContent": email.body,
        }
        if email.reply_to:
            payload["replyTo"] = {"email": email.reply_to}

        return await client.post(
            f"{base_url}/v3/smtp/email",
            json=payload,
            headers={"api-key": os.environ["BREVO_API_KEY"], "accept": "application/json"},
        )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_ADAPTERS: Dict[Provider, Type[EmailProvider]] = {
    Provider.NOTIFICATIONAPI: NotificationApiProvider,
    Provider.BREVO: BrevoProvider,
}

PROVIDER_PRIORITY = (Provider.NOTIFICATIONAPI, Provider.BREVO)


def build_providers(transport: Optional[httpx.AsyncBaseTransport] = None) -> List[EmailProvider]:
    """Instantiate the adapters in PROVIDER_PRIORITY order."""
    return [_ADAPTERS[provider](transport=transport) for provider in PROVIDER_PRIORITY]
