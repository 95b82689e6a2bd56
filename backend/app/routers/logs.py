"""
Email log endpoints (auth: admin session).

Endpoints:
  GET    /          - paginated logs, newest first (?limit=50&offset=0)
  DELETE /{log_id}  - delete one log
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.auth import require_admin
from app.models.api_key import ActionResult
from app.models.email import EmailLogList
from app.services.email_logs import delete_email_log, list_email_logs

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])

MAX_PAGE_SIZE = 500


@router.get("", response_model=EmailLogList)
async def get_logs(limit: int = 50, offset: int = 0) -> EmailLogList:
    """
    One page of email logs with an exact ``total``.

    ``limit`` is clamped to 1..500 and ``offset`` to >= 0. If the log store
    is unreachable an empty page is returned with a ``warning``.
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset)

    try:
        logs, total = list_email_logs(limit=limit, offset=offset)
    except Exception as e:
        logger.error(f"[Logs] Database error: {e}")
        return EmailLogList(
            logs=[], total=0, limit=limit, offset=offset, warning="Database unavailable"
        )

    return EmailLogList(logs=logs, total=total, limit=limit, offset=offset)


@router.delete("/{log_id}", response_model=ActionResult)
async def remove_log(log_id: str) -> ActionResult:
    try:
        deleted = delete_email_log(log_id)
    except Exception as e:
        logger.error(f"[Logs] Failed to delete log {log_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete log")

    if not deleted:
        raise HTTPException(status_code=404, detail="Log not found")

    return ActionResult(message="Log deleted successfully")
