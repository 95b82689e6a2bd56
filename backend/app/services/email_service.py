"""
Send orchestration: primary provider, then fallback, then one log entry.

Per request:
  1. Skip any provider whose backoff window is open (no network call).
  2. Try NotificationAPI. Success -> log status=success.
  3. On any failure try Brevo. Success -> log status=fallback.
  4. Both failed -> log status=failed, provider pinned to NotificationAPI,
     error_message carries both providers' errors.

A rate-limit failure also opens that provider's backoff window. Providers
are tried strictly in order and each at most once; retrying later is the
caller's job.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from app.models.email import EmailLog, EmailSendRequest, EmailStatus, SendEmailResponse
from app.services.email_logs import create_email_log
from app.services.providers import (
    PROVIDER_PRIORITY,
    EmailProvider,
    FailureKind,
    ProviderResult,
    build_providers,
    resolve_sender_email,
)
from app.services.rate_limit import RateLimitTracker

logger = logging.getLogger(__name__)


class EmailRelay:
    """
    Args:
        providers: Adapters in priority order. The first is the primary; any
                   later one that delivers is recorded as a fallback.
        rate_limits: Shared backoff tracker.
        log_writer: Persists the EmailLog. Runs in the threadpool; failures are
                    logged and ignored.
    """

    def __init__(
        self,
        providers: Sequence[EmailProvider],
        rate_limits: RateLimitTracker,
        log_writer: Callable[[EmailLog], None] = create_email_log,
    ):
        if not providers:
            raise ValueError("EmailRelay needs at least one provider")
        self.providers: List[EmailProvider] = list(providers)
        self.rate_limits = rate_limits
        self._log_writer = log_writer

    async def _attempt(self, provider: EmailProvider, email: EmailSendRequest) -> ProviderResult:
        if self.rate_limits.is_limited(provider.name):
            logger.info(f"[Mail Relay] Skipping {provider.label}: in backoff period")
            return ProviderResult.failure(
                f"{provider.label} rate limited, in backoff period",
                FailureKind.RATE_LIMITED,
            )

        logger.info(f"[Mail Relay] Attempting to send via {provider.label}...")
        result = await provider.send(email)

        if not result.success and result.rate_limited:
            self.rate_limits.mark_limited(provider.name)

        return result

    async def _write_log(self, log: EmailLog) -> None:
        # The Supabase client is synchronous; keep it off the event loop
        try:
            await run_in_threadpool(self._log_writer, log)
        except Exception as e:
            # The send outcome stands even when the log row is lost
            logger.error(f"[Mail Relay] Failed to write email log {log.id}: {e}")

    async def send(self, email: EmailSendRequest, api_key_id: Optional[str] = None) -> SendEmailResponse:
        """
        Deliver ``email`` and record exactly one log entry.

        Never raises for provider failures. Returns success=False only when
        every provider failed.
        """
        log_id = str(uuid.uuid4())
        timestamp = datetime.now(timezone.utc)
        primary = self.providers[0]

        def build_log(status: EmailStatus, provider: EmailProvider, error: Optional[str] = None) -> EmailLog:
            return EmailLog(
                id=log_id,
                timestamp=timestamp,
                recipient=email.to,
                subject=email.subject,
                sender=resolve_sender_email(email),
                status=status,
                provider=provider.provider,
                api_key_id=api_key_id,
                error_message=error,
            )

        errors: List[str] = []
        for index, provider in enumerate(self.providers):
            result = await self._attempt(provider, email)

            if result.success:
                is_fallback = index > 0
                status = EmailStatus.FALLBACK if is_fallback else EmailStatus.SUCCESS
                await self._write_log(build_log(status, provider))

                message = f"Email sent successfully via {provider.label}"
                if is_fallback:
                    message += " (fallback)"
                logger.info(f"[Mail Relay] {message}")

                return SendEmailResponse(
                    success=True,
                    message=message,
                    provider=provider.provider,
                    log_id=log_id,
                )

            errors.append(f"{provider.label}: {result.error}")
            if index + 1 < len(self.providers):
                logger.info(
                    f"[Mail Relay] {provider.label} failed, falling back to "
                    f"{self.providers[index + 1].label}..."
                )

        summary = "; ".join(errors)
        await self._write_log(build_log(EmailStatus.FAILED, primary, summary))
        logger.error(f"[Mail Relay] All providers failed: {summary}")

        return SendEmailResponse(
            success=False,
            message=f"Failed to send email. {summary}",
            log_id=log_id,
        )


# ---------------------------------------------------------------------------
# Process-wide instance
# ---------------------------------------------------------------------------

rate_limits = RateLimitTracker(provider.value for provider in PROVIDER_PRIORITY)

_relay: Optional[EmailRelay] = None


def get_relay() -> EmailRelay:
    """FastAPI dependency returning the shared relay (built on first use)."""
    global _relay
    if _relay is None:
        _relay = EmailRelay(build_providers(), rate_limits)
    return _relay
