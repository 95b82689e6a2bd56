"""
Admin session endpoints.

Endpoints:
  POST /login   - exchange SITE_KEY for a signed session (cookie + token)
  POST /logout  - clear the session cookie
  GET  /check   - whether the caller holds a valid session
"""

import logging
import os
from typing import Optional

from fastapi import APIRouter, Cookie, Header, HTTPException, Response

from app.auth import (
    SESSION_COOKIE_NAME,
    SESSION_DURATION,
    create_session_token,
    is_admin_authenticated,
    validate_site_key,
)
from app.models.api_key import ActionResult
from app.models.session import LoginRequest, LoginResponse, SessionCheck

logger = logging.getLogger(__name__)

router = APIRouter()


def _secure_cookies() -> bool:
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, response: Response) -> LoginResponse:
    """
    Log in with the site key.

    On success the session is set as an HttpOnly cookie and also returned as
    ``token`` for dashboards that send it as a Bearer header.
    """
    if not validate_site_key(body.site_key):
        logger.warning("[Auth] Rejected admin login with invalid site key")
        raise HTTPException(status_code=401, detail="Invalid site key")

    try:
        token = create_session_token()
    except RuntimeError as e:
        logger.error(f"[Auth] Cannot issue session: {e}")
        raise HTTPException(status_code=500, detail="Session signing is not configured")

    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=int(SESSION_DURATION.total_seconds()),
        httponly=True,
        secure=_secure_cookies(),
        samesite="lax",
        path="/",
    )
    return LoginResponse(message="Logged in successfully", token=token)


@router.post("/logout", response_model=ActionResult)
async def logout(response: Response) -> ActionResult:
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return ActionResult(message="Logged out successfully")


@router.get("/check", response_model=SessionCheck)
async def check(
    authorization: Optional[str] = Header(None),
    session_cookie: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> SessionCheck:
    return SessionCheck(authenticated=is_admin_authenticated(authorization, session_cookie))
