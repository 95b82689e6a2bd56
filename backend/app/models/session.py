"""
Pydantic models for admin login / logout / check.
"""

from typing import Optional

from pydantic import Field

from app.models.base import CamelModel


class LoginRequest(CamelModel):
    site_key: str = Field(min_length=1)


class LoginResponse(CamelModel):
    success: bool = True
    message: str
    # Also set as an HttpOnly cookie; returned for clients that send it as a
    # Bearer header instead (cross-origin dashboard deployments).
    token: Optional[str] = None


class SessionCheck(CamelModel):
    authenticated: bool
