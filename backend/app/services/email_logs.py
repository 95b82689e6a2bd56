"""
Email log persistence (Supabase ``email_logs`` table).

Logs are append-only: created once per relay request, listed and counted by
the dashboard, deleted individually by an admin. There is no update path.
"""

from datetime import datetime
from typing import List, Tuple

from app.db import API_KEYS_TABLE, EMAIL_LOGS_TABLE, is_valid_id, supabase_admin
from app.models.email import EmailLog


def create_email_log(log: EmailLog) -> None:
    """
    Insert a log row.

    Raises whatever the Supabase client raises; the orchestrator decides how
    a failed write is handled.
    """
    supabase_admin.table(EMAIL_LOGS_TABLE).insert({
        "id": log.id,
        "timestamp": log.timestamp.isoformat(),
        "recipient": log.recipient,
        "subject": log.subject,
        "sender": log.sender,
        "status": log.status.value,
        "provider": log.provider.value,
        "api_key_id": log.api_key_id,
        "error_message": log.error_message,
    }).execute()


def _attach_key_names(logs: List[EmailLog]) -> List[EmailLog]:
    """
    Fill ``api_key_name`` with one extra query for every key referenced on
    the page. Logs whose key was deleted keep ``api_key_name=None``.
    """
    key_ids = sorted({log.api_key_id for log in logs if log.api_key_id})
    if not key_ids:
        return logs

    result = (
        supabase_admin.table(API_KEYS_TABLE)
        .select("id, name")
        .in_("id", key_ids)
        .execute()
    )
    names = {row["id"]: row["name"] for row in (result.data or [])}
    for log in logs:
        if log.api_key_id:
            log.api_key_name = names.get(log.api_key_id)
    return logs


def list_email_logs(limit: int = 50, offset: int = 0) -> Tuple[List[EmailLog], int]:
    """
    Return one page of logs, newest first, plus the total row count.

    Args:
        limit: Page size (callers clamp it).
        offset: Number of rows to skip.

    Returns:
        (logs, total) tuple.
    """
    result = (
        supabase_admin.table(EMAIL_LOGS_TABLE)
        .select("*", count="exact")
        .order("timestamp", desc=True)
        .range(offset, offset + limit - 1)
        .execute()
    )
    logs = [EmailLog(**row) for row in (result.data or [])]
    total = result.count if result.count is not None else offset + len(logs)
    return _attach_key_names(logs), total


def count_email_logs() -> int:
    result = (
        supabase_admin.table(EMAIL_LOGS_TABLE)
        .select("id", count="exact")
        .limit(1)
        .execute()
    )
    return result.count or 0


def get_logs_since(cutoff: datetime) -> List[dict]:
    """Timestamp and status of every log at or after ``cutoff``."""
    result = (
        supabase_admin.table(EMAIL_LOGS_TABLE)
        .select("timestamp, status")
        .gte("timestamp", cutoff.isoformat())
        .execute()
    )
    return result.data or []


def delete_email_log(log_id: str) -> bool:
    """Delete one log. Returns False when no row had that id."""
    if not is_valid_id(log_id):
        return False
    result = supabase_admin.table(EMAIL_LOGS_TABLE).delete().eq("id", log_id).execute()
    return bool(result.data)
