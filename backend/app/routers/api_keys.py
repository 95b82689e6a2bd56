"""
API key management endpoints (auth: admin session).

Endpoints:
  GET    /                 - list key metadata (never hashes or plaintext)
  POST   /                 - create a key; plaintext returned once
  POST   /{key_id}/rotate  - new secret for an existing key; plaintext returned once
  POST   /{key_id}/toggle  - enable / disable
  PATCH  /{key_id}         - rename
  DELETE /{key_id}         - delete

Key management fails closed: a persistence error is a 500, never an empty
or partial success.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.auth import require_admin
from app.models.api_key import (
    ActionResult,
    ApiKeyCreate,
    ApiKeyIssued,
    ApiKeyList,
    ApiKeyRename,
    ApiKeyUpdated,
)
from app.services.api_keys import (
    ApiKeyNotFound,
    create_api_key,
    delete_api_key,
    list_api_keys,
    rename_api_key,
    rotate_api_key,
    toggle_api_key,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="API key not found")


@router.get("", response_model=ApiKeyList)
async def get_api_keys() -> ApiKeyList:
    """Every key's metadata, newest first."""
    try:
        keys = list_api_keys()
    except Exception as e:
        logger.error(f"[API keys] Failed to list keys: {e}")
        raise HTTPException(status_code=500, detail="Failed to load API keys")
    return ApiKeyList(api_keys=keys)


@router.post("", response_model=ApiKeyIssued)
async def post_api_key(body: ApiKeyCreate) -> ApiKeyIssued:
    """
    Issue a new key.

    The response carries the plaintext ``key``. It is not stored and cannot
    be retrieved again; clients must copy it now.
    """
    try:
        issued = create_api_key(body.name)
    except Exception as e:
        logger.error(f"[API keys] Failed to create key: {e}")
        raise HTTPException(status_code=500, detail="Failed to create API key")
    return ApiKeyIssued(message="API key created successfully", api_key=issued)


@router.post("/{key_id}/rotate", response_model=ApiKeyIssued)
async def post_rotate_api_key(key_id: str) -> ApiKeyIssued:
    """Replace the secret; the previous plaintext stops working immediately."""
    try:
        issued = rotate_api_key(key_id)
    except ApiKeyNotFound:
        raise _not_found()
    except Exception as e:
        logger.error(f"[API keys] Failed to rotate key {key_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to rotate API key")
    return ApiKeyIssued(message="API key rotated successfully", api_key=issued)


@router.post("/{key_id}/toggle", response_model=ApiKeyUpdated)
async def post_toggle_api_key(key_id: str) -> ApiKeyUpdated:
    try:
        updated = toggle_api_key(key_id)
    except ApiKeyNotFound:
        raise _not_found()
    except Exception as e:
        logger.error(f"[API keys] Failed to toggle key {key_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update API key")
    return ApiKeyUpdated(message="API key status toggled", api_key=updated)


@router.patch("/{key_id}", response_model=ApiKeyUpdated)
async def patch_api_key(key_id: str, body: ApiKeyRename) -> ApiKeyUpdated:
    try:
        updated = rename_api_key(key_id, body.name)
    except ApiKeyNotFound:
        raise _not_found()
    except Exception as e:
        logger.error(f"[API keys] Failed to rename key {key_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update API key")
    return ApiKeyUpdated(message="API key updated successfully", api_key=updated)


@router.delete("/{key_id}", response_model=ActionResult)
async def remove_api_key(key_id: str) -> ActionResult:
    try:
        delete_api_key(key_id)
    except ApiKeyNotFound:
        raise _not_found()
    except Exception as e:
        logger.error(f"[API keys] Failed to delete key {key_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete API key")
    return ActionResult(message="API key deleted successfully")
