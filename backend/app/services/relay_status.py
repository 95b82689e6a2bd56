"""
Relay health and deliverability summary for GET /relay/status.

Bucketing of the time series depends on the requested window:
  hours <= 24   hourly   "2026-10-18T14:00"
  hours <= 168  daily    "2026-10-18"
  otherwise     weekly   "Week 41"  (whole weeks since Jan 1, UTC)

``successful`` counts only primary-provider deliveries; fallback deliveries
are counted under ``failed`` and also reported separately as ``fallback``.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from app.models.email import EmailStatus
from app.models.status import (
    Deliverability,
    PeriodStats,
    RelayStatus,
    TimeSeriesPoint,
)
from app.services.email_logs import count_email_logs, get_logs_since
from app.services.rate_limit import RateLimitTracker

logger = logging.getLogger(__name__)

_WEEK = timedelta(days=7)


def success_rate(successful: int, total: int) -> int:
    """Percentage rounded half-up; an empty window counts as 100%."""
    if total == 0:
        return 100
    return math.floor(successful * 100 / total + 0.5)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _bucket(ts: datetime, hours: int) -> tuple[datetime, str]:
    """Return (bucket start, label) for a log timestamp."""
    if hours <= 24:
        start = ts.replace(minute=0, second=0, microsecond=0)
        return start, start.strftime("%Y-%m-%dT%H:00")
    if hours <= 168:
        start = ts.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start.strftime("%Y-%m-%d")

    year_start = datetime(ts.year, 1, 1, tzinfo=timezone.utc)
    week = int((ts - year_start) / _WEEK)
    return year_start + week * _WEEK, f"Week {week}"


def summarize(rows: List[dict], hours: int) -> Deliverability:
    """Aggregate email_logs rows (timestamp, status) into period stats and a time series."""
    buckets: Dict[datetime, TimeSeriesPoint] = {}
    successful = fallback = 0

    for row in rows:
        status = row.get("status")
        start, label = _bucket(_parse_timestamp(row["timestamp"]), hours)
        point = buckets.setdefault(
            start, TimeSeriesPoint(label=label, total=0, successful=0, failed=0)
        )
        point.total += 1
        if status == EmailStatus.SUCCESS.value:
            point.successful += 1
            successful += 1
        else:
            point.failed += 1
            if status == EmailStatus.FALLBACK.value:
                point.fallback += 1
                fallback += 1

    total = len(rows)
    period = PeriodStats(
        total=total,
        successful=successful,
        failed=total - successful,
        fallback=fallback,
        success_rate=success_rate(successful, total),
    )
    time_series = [buckets[start] for start in sorted(buckets)]
    return Deliverability(period=period, time_series=time_series)


def build_relay_status(
    tracker: RateLimitTracker,
    hours: int = 24,
    now: Optional[datetime] = None,
) -> RelayStatus:
    """
    Build the status payload.

    Backoff state always comes from memory. If the log store cannot be read
    the response is marked ``degraded`` with empty statistics instead of
    failing.
    """
    now = now or datetime.now(timezone.utc)
    rate_limits = tracker.snapshot()

    try:
        total_sent = count_email_logs()
        rows = get_logs_since(now - timedelta(hours=hours))
    except Exception as e:
        logger.error(f"[Relay status] Database error: {e}")
        return RelayStatus(
            status="degraded",
            total_emails_sent=0,
            rate_limits=rate_limits,
            deliverability=Deliverability(
                period=PeriodStats(total=0, successful=0, failed=0, success_rate=100),
                time_series=[],
            ),
            timestamp=now,
            warning="Database unavailable",
        )

    return RelayStatus(
        status="healthy",
        total_emails_sent=total_sent,
        rate_limits=rate_limits,
        deliverability=summarize(rows, hours),
        timestamp=now,
    )
