"""
Authentication dependencies.

Two independent credentials guard the service:

- Relay API keys (``require_api_key``) authorize POST /relay/send. Every
  failure mode answers the same 401 so callers cannot probe which keys
  exist or are disabled.
- Admin sessions (``require_admin``) guard the dashboard APIs. A session is
  an HS256 JWT ``{"authenticated": true, "exp": ...}`` signed with
  SESSION_SECRET (falling back to SITE_KEY), issued after a SITE_KEY login
  and presented either as the ``falak_admin_session`` cookie or as an
  ``Authorization: Bearer`` header.
"""

import hmac
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Cookie, Header, HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from app.models.api_key import ApiKey
from app.services.api_keys import authenticate

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "falak_admin_session"
SESSION_DURATION = timedelta(hours=24)
_SESSION_ALGORITHM = "HS256"

INVALID_API_KEY_MESSAGE = "Invalid or missing API key. Include Authorization header."


# ---------------------------------------------------------------------------
# Admin sessions
# ---------------------------------------------------------------------------

def _session_secret() -> Optional[str]:
    return os.getenv("SESSION_SECRET") or os.getenv("SITE_KEY") or None


def validate_site_key(candidate: str) -> bool:
    """Constant-time comparison of a login attempt against SITE_KEY."""
    site_key = os.getenv("SITE_KEY")
    if not site_key:
        logger.error("[Auth] SITE_KEY not configured in environment; rejecting login")
        return False
    return hmac.compare_digest(candidate.encode(), site_key.encode())


def create_session_token(now: Optional[datetime] = None) -> str:
    """
    Sign a new admin session valid for SESSION_DURATION.

    Raises:
        RuntimeError: neither SESSION_SECRET nor SITE_KEY is set.
    """
    secret = _session_secret()
    if not secret:
        raise RuntimeError("SESSION_SECRET (or SITE_KEY) must be set to issue sessions")

    now = now or datetime.now(timezone.utc)
    claims = {
        "authenticated": True,
        "exp": int((now + SESSION_DURATION).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=_SESSION_ALGORITHM)


def verify_session_token(token: Optional[str]) -> bool:
    """
    True only for a token with a valid signature, an unexpired ``exp`` and
    ``authenticated: true``.
    """
    secret = _session_secret()
    if not token or not secret:
        return False

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_SESSION_ALGORITHM],
            options={"require_exp": True},
        )
    except ExpiredSignatureError:
        return False
    except JWTError:
        return False

    return payload.get("authenticated") is True


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer":
        return None
    return parts[1]


def is_admin_authenticated(
    authorization: Optional[str] = None,
    session_cookie: Optional[str] = None,
) -> bool:
    """Header token is checked first, then the cookie."""
    header_token = _bearer_token(authorization)
    if header_token and verify_session_token(header_token):
        return True
    return verify_session_token(session_cookie)


async def require_admin(
    authorization: Optional[str] = Header(None),
    session_cookie: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> None:
    """
    Dependency for dashboard endpoints.

    Raises:
        HTTPException: 401 without a valid admin session.
    """
    if not is_admin_authenticated(authorization, session_cookie):
        raise HTTPException(status_code=401, detail="Unauthorized")


# ---------------------------------------------------------------------------
# Relay API keys
# ---------------------------------------------------------------------------

async def require_api_key(authorization: Optional[str] = Header(None)) -> ApiKey:
    """
    Dependency for the relay endpoint.

    Accepts ``Authorization: Bearer <key>`` or a bare key. A lookup failure
    (database down, hashing secret missing) is treated as unauthenticated.

    Returns:
        The authenticated key's metadata.

    Raises:
        HTTPException: 401 for a missing, unknown or inactive key.
    """
    try:
        api_key = authenticate(authorization)
    except Exception as e:
        logger.error(f"[Auth] API key lookup failed: {e}")
        api_key = None

    if api_key is None:
        raise HTTPException(status_code=401, detail=INVALID_API_KEY_MESSAGE)

    return api_key
