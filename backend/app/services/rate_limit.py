"""
Per-provider backoff tracking.

State lives in process memory only: a restart clears every backoff window.
A single tracker is shared by all in-flight requests and injected into the
send orchestrator (see ``app.services.email_service``).

Concurrent requests can race on ``mark_limited``; the worst outcome is a
window that ends a few milliseconds early or late, so there is no lock.
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional

from app.models.status import RateLimitStatus

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF_SECONDS = 60.0


def _backoff_seconds_from_env() -> float:
    raw = os.getenv("RATE_LIMIT_BACKOFF_SECONDS", "").strip()
    if not raw:
        return DEFAULT_BACKOFF_SECONDS
    try:
        value = float(raw)
    except ValueError:
        logger.warning(
            "Ignoring non-numeric RATE_LIMIT_BACKOFF_SECONDS=%r; using %ss",
            raw,
            DEFAULT_BACKOFF_SECONDS,
        )
        return DEFAULT_BACKOFF_SECONDS
    return value if value > 0 else DEFAULT_BACKOFF_SECONDS


class RateLimitTracker:
    """
    Tracks a ``backoff_until`` wall-clock timestamp per provider.

    A provider is limited while ``clock() < backoff_until``. Windows are never
    cleared explicitly, they simply lapse.

    Args:
        providers: Provider names reported by ``snapshot()`` even before they
                   have ever been limited.
        backoff_seconds: Window length. Defaults to RATE_LIMIT_BACKOFF_SECONDS
                         or 60 seconds.
        clock: Returns the current time in epoch seconds. Injectable for tests.
    """

    def __init__(
        self,
        providers: Iterable[str] = (),
        backoff_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else _backoff_seconds_from_env()
        )
        self._clock = clock
        self._backoff_until: Dict[str, float] = {name: 0.0 for name in providers}

    def is_limited(self, provider: str) -> bool:
        return self._clock() < self._backoff_until.get(provider, 0.0)

    def mark_limited(self, provider: str) -> float:
        """
        Start (or restart) the backoff window for ``provider``.

        Calling this while already limited pushes the end of the window out
        to ``now + backoff_seconds``. Returns the new ``backoff_until``.
        """
        until = self._clock() + self.backoff_seconds
        self._backoff_until[provider] = until
        logger.warning(
            "Provider %s rate limited; skipping it for %.0fs",
            provider,
            self.backoff_seconds,
        )
        return until

    def status(self, provider: str) -> RateLimitStatus:
        until = self._backoff_until.get(provider, 0.0)
        return RateLimitStatus(
            is_limited=self.is_limited(provider),
            backoff_until=datetime.fromtimestamp(until, tz=timezone.utc) if until else None,
        )

    def snapshot(self) -> Dict[str, RateLimitStatus]:
        """Status of every known provider, keyed by provider name."""
        return {name: self.status(name) for name in self._backoff_until}

    def reset(self) -> None:
        """Forget every window."""
        for name in self._backoff_until:
            self._backoff_until[name] = 0.0
