"""
Relay API endpoints.

Endpoints:
  POST /send    - deliver one email (auth: relay API key)
  GET  /send    - usage help (no auth)
  GET  /status  - provider backoff state and deliverability (auth: admin session)
"""

import logging
import re
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from app.auth import require_admin, require_api_key
from app.models.api_key import ApiKey
from app.models.email import EmailSendRequest, SendEmailResponse
from app.models.status import RelayStatus
from app.services.api_keys import record_usage
from app.services.email_service import EmailRelay, get_relay
from app.services.relay_status import build_relay_status

logger = logging.getLogger(__name__)

router = APIRouter()

_EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

def _required_string(payload: dict, field: str) -> str:
    value = payload.get(field)
    if not value or not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f'Missing or invalid "{field}" field')
    return value


def _optional_string(payload: dict, field: str) -> Optional[str]:
    value = payload.get(field)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f'Invalid "{field}" field')
    return value


def parse_send_request(payload: Any) -> EmailSendRequest:
    """
    Validate a raw JSON body into an EmailSendRequest.

    ``to``, ``subject`` and ``body`` must be non-empty strings and ``to``
    must look like an email address. Optional fields must be strings when
    present; empty strings are treated as absent.

    Raises:
        HTTPException: 400 naming the first offending field.
    """
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")

    to = _required_string(payload, "to")
    subject = _required_string(payload, "subject")
    body = _required_string(payload, "body")

    if not _EMAIL_PATTERN.fullmatch(to):
        raise HTTPException(status_code=400, detail='Invalid email format for "to" field')

    return EmailSendRequest(
        to=to,
        subject=subject,
        body=body,
        html=_optional_string(payload, "html"),
        from_=_optional_string(payload, "from"),
        sender_name=_optional_string(payload, "senderName"),
        reply_to=_optional_string(payload, "replyTo"),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/send",
    response_model=SendEmailResponse,
    responses={
        200: {
            "description": "Delivered by the primary or the fallback provider",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "message": "Email sent successfully via NotificationAPI",
                        "provider": "notificationapi",
                        "logId": "0b8f6a3e-6c0e-4a57-9a3c-1f2d5f7e9b10",
                    }
                }
            },
        },
        400: {"description": "Missing or malformed field"},
        401: {"description": "Missing, unknown or inactive API key"},
        500: {"description": "Both providers failed"},
    },
)
async def send_mail(
    request: Request,
    api_key: ApiKey = Depends(require_api_key),
    relay: EmailRelay = Depends(get_relay),
):
    """
    Relay one transactional email.

    Body: ``{to, subject, body, html?, from?, senderName?, replyTo?}``.
    Tries NotificationAPI first and falls back to Brevo. The response names
    the provider that delivered; when both fail the status is 500 and the
    message carries both providers' errors.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON")

    email = parse_send_request(payload)

    await run_in_threadpool(record_usage, api_key.id)

    result = await relay.send(email, api_key_id=api_key.id)

    return JSONResponse(
        status_code=200 if result.success else 500,
        content=result.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.get("/send")
async def send_mail_usage():
    return {
        "message": "Falak Mail Relay API",
        "usage": (
            "POST /relay/send with Authorization header and "
            "{ to, subject, body, html?, from?, senderName?, replyTo? }"
        ),
        "auth": "Include header: Authorization: Bearer <your-api-key>",
    }


@router.get(
    "/status",
    response_model=RelayStatus,
    dependencies=[Depends(require_admin)],
)
async def relay_status(
    hours: int = Query(24, ge=1, le=8760),
    relay: EmailRelay = Depends(get_relay),
) -> RelayStatus:
    """
    Provider backoff state plus deliverability over the last ``hours``.

    ``status`` is ``degraded`` (with empty statistics) when the log store
    cannot be read.

    ``rateLimits.<provider>.backoffUntil`` is null for a provider that has
    never been rate limited since startup. Clients that expect the epoch-ms
    value 0 in that case should treat null the same way.
    """
    return build_relay_status(relay.rate_limits, hours)
