"""
Relay API key issuance, hashing, rotation and authentication.

Keys look like ``fmr_<48 hex chars>``. Only HMAC-SHA256(key, secret) is
stored, keyed with API_KEY_HASH_SECRET (falling back to SITE_KEY), so a
leaked api_keys table cannot be brute-forced offline without the server
secret. The plaintext is handed back exactly once, from create or rotate.

Changing the hashing secret invalidates every issued key.
"""

import hashlib
import hmac
import logging
import os
import secrets
from datetime import datetime, timezone
from typing import List, Optional

from app.db import API_KEYS_TABLE, is_valid_id, supabase_admin
from app.models.api_key import ApiKey, ApiKeyWithSecret

logger = logging.getLogger(__name__)

KEY_PREFIX = "fmr_"
_KEY_BYTES = 24

# Columns safe to return to the dashboard (no key_hash)
_METADATA_COLUMNS = "id, name, is_active, created_at, last_used, usage_count"

# Postgres function defined in the init migration
INCREMENT_USAGE_FUNCTION = "increment_api_key_usage"


class ApiKeyNotFound(Exception):
    """No api_keys row with the requested id."""


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------

def generate_key() -> str:
    """Return a new random key: ``fmr_`` + 24 random bytes as hex."""
    return KEY_PREFIX + secrets.token_hex(_KEY_BYTES)


def _hash_secret() -> bytes:
    secret = os.getenv("API_KEY_HASH_SECRET") or os.getenv("SITE_KEY")
    if not secret:
        raise RuntimeError(
            "API_KEY_HASH_SECRET (or SITE_KEY) must be set to hash API keys"
        )
    return secret.encode()


def hash_key(plaintext: str) -> str:
    """Deterministic HMAC-SHA256 of ``plaintext``, hex encoded."""
    return hmac.new(_hash_secret(), plaintext.encode(), hashlib.sha256).hexdigest()


def verify_key(plaintext: str, stored_hash: str) -> bool:
    """Constant-time check of ``plaintext`` against a stored hash."""
    return hmac.compare_digest(hash_key(plaintext), stored_hash)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def create_api_key(name: str) -> ApiKeyWithSecret:
    """
    Issue a new active key.

    Returns:
        The stored metadata plus the plaintext ``key``. The plaintext is not
        recoverable afterwards.

    Raises:
        RuntimeError: if no hashing secret is configured or the insert
                      returned no row.
    """
    plaintext = generate_key()
    result = supabase_admin.table(API_KEYS_TABLE).insert({
        "name": name,
        "key_hash": hash_key(plaintext),
        "is_active": True,
        "usage_count": 0,
        "created_at": _now_iso(),
    }).execute()

    if not result.data:
        raise RuntimeError("Failed to create API key")

    logger.info(f"Created API key {result.data[0]['id']} ({name!r})")
    return ApiKeyWithSecret(**result.data[0], key=plaintext)


def list_api_keys() -> List[ApiKey]:
    """Every key's metadata, newest first."""
    result = (
        supabase_admin.table(API_KEYS_TABLE)
        .select(_METADATA_COLUMNS)
        .order("created_at", desc=True)
        .execute()
    )
    return [ApiKey(**row) for row in (result.data or [])]


def get_api_key(key_id: str) -> ApiKey:
    if not is_valid_id(key_id):
        raise ApiKeyNotFound(key_id)
    result = (
        supabase_admin.table(API_KEYS_TABLE)
        .select(_METADATA_COLUMNS)
        .eq("id", key_id)
        .execute()
    )
    if not result.data:
        raise ApiKeyNotFound(key_id)
    return ApiKey(**result.data[0])


def _update(key_id: str, changes: dict) -> ApiKey:
    if not is_valid_id(key_id):
        raise ApiKeyNotFound(key_id)
    result = (
        supabase_admin.table(API_KEYS_TABLE)
        .update(changes)
        .eq("id", key_id)
        .execute()
    )
    if not result.data:
        raise ApiKeyNotFound(key_id)
    return ApiKey(**result.data[0])


def rotate_api_key(key_id: str) -> ApiKeyWithSecret:
    """
    Replace a key's secret in place.

    id, name, active flag and usage history are untouched. The old plaintext
    stops authenticating as soon as the update lands.
    """
    plaintext = generate_key()
    updated = _update(key_id, {"key_hash": hash_key(plaintext)})
    logger.info(f"Rotated API key {key_id}")
    return ApiKeyWithSecret(**updated.model_dump(), key=plaintext)


def toggle_api_key(key_id: str) -> ApiKey:
    """Flip ``is_active``. An inactive key never authenticates."""
    current = get_api_key(key_id)
    return _update(key_id, {"is_active": not current.is_active})


def rename_api_key(key_id: str, name: str) -> ApiKey:
    return _update(key_id, {"name": name})


def delete_api_key(key_id: str) -> None:
    if not is_valid_id(key_id):
        raise ApiKeyNotFound(key_id)
    result = supabase_admin.table(API_KEYS_TABLE).delete().eq("id", key_id).execute()
    if not result.data:
        raise ApiKeyNotFound(key_id)


def record_usage(key_id: str) -> None:
    """
    Bump ``usage_count`` and stamp ``last_used``.

    The increment happens inside Postgres (``increment_api_key_usage``), so
    concurrent requests from several workers never overwrite each other's
    count. Best effort: a failure here is logged and never affects the
    relay request.
    """
    try:
        supabase_admin.rpc(INCREMENT_USAGE_FUNCTION, {"key_id": key_id}).execute()
    except Exception as e:
        logger.warning(f"Failed to record usage for API key {key_id}: {e}")


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def _extract_secret(authorization: Optional[str]) -> Optional[str]:
    """Accept ``Bearer <key>`` or a bare ``<key>``."""
    if not authorization:
        return None
    token = authorization.strip()
    if token.startswith("Bearer "):
        token = token[len("Bearer "):].strip()
    return token or None


def authenticate(authorization: Optional[str]) -> Optional[ApiKey]:
    """
    Resolve an Authorization header value to an active key.

    Returns None for a missing header, an unknown key, or an inactive key.
    Callers must not tell these cases apart in their response.

    Raises:
        RuntimeError: no hashing secret configured.
        Exception: whatever the Supabase client raises on lookup failure.
    """
    secret = _extract_secret(authorization)
    if secret is None:
        return None

    result = (
        supabase_admin.table(API_KEYS_TABLE)
        .select(f"{_METADATA_COLUMNS}, key_hash")
        .eq("key_hash", hash_key(secret))
        .limit(1)
        .execute()
    )
    if not result.data:
        return None

    row = result.data[0]
    if not row.get("is_active") or not verify_key(secret, row.get("key_hash", "")):
        return None

    return ApiKey(**row)
