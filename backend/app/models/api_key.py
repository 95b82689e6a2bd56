"""
Pydantic models for relay API keys.

The api_keys table stores ``key_hash`` alongside these fields. None of the
response models declare it, so it can never be serialized back to a client.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from app.models.base import CamelModel


class ApiKeyCreate(CamelModel):
    """Request to issue a new key."""
    name: str = Field(min_length=1, max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class ApiKeyRename(ApiKeyCreate):
    """Request to change a key's label."""


class ApiKey(CamelModel):
    """Key metadata as listed in the dashboard."""
    id: str
    name: str
    is_active: bool
    created_at: datetime
    last_used: Optional[datetime] = None
    usage_count: int = Field(default=0, ge=0)


class ApiKeyWithSecret(ApiKey):
    """
    Returned exactly once, from create and rotate.

    ``key`` is the plaintext secret; only its hash is persisted.
    """
    key: str


class ApiKeyIssued(CamelModel):
    success: bool = True
    message: str
    api_key: ApiKeyWithSecret


class ApiKeyList(CamelModel):
    success: bool = True
    api_keys: List[ApiKey]


class ActionResult(CamelModel):
    """Generic acknowledgement for toggle/rename/delete style endpoints."""
    success: bool = True
    message: str


class ApiKeyUpdated(CamelModel):
    success: bool = True
    message: str
    api_key: ApiKey
