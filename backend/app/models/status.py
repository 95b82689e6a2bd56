"""
Pydantic models for GET /relay/status.
"""

from datetime import datetime
from typing import Dict, List, Optional

from app.models.base import CamelModel


class RateLimitStatus(CamelModel):
    is_limited: bool
    # None (not 0) until the provider has been put into backoff at least once
    backoff_until: Optional[datetime] = None


class PeriodStats(CamelModel):
    total: int
    successful: int
    failed: int
    fallback: int = 0
    success_rate: int


class TimeSeriesPoint(CamelModel):
    label: str
    total: int
    successful: int
    failed: int
    fallback: int = 0


class Deliverability(CamelModel):
    period: PeriodStats
    time_series: List[TimeSeriesPoint]


class RelayStatus(CamelModel):
    success: bool = True
    status: str  # "healthy" | "degraded"
    total_emails_sent: int
    rate_limits: Dict[str, RateLimitStatus]
    deliverability: Deliverability
    timestamp: datetime
    warning: Optional[str] = None
