"""Fixed-window rate limiting backed by the ``webhook_attempts`` table."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.webhook_attempt import WebhookAttempt
from core.config import config
from core.db.transaction import run_in_transaction
from core.exceptions.payment import PaymentErrorCode, PaymentException
from core.logging import get_logger

logger = get_logger(__name__)

WINDOW = timedelta(minutes=1)
# Windows older than this are purged when a new window opens
RETENTION = timedelta(hours=1)


def get_client_ip(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def window_start(now: datetime) -> datetime:
    return now.replace(second=0, microsecond=0)


async def register_attempt(
    session_factory: async_sessionmaker[AsyncSession],
    key: str,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Count one attempt for ``key`` and enforce the per-minute limit.

    Returns the number of attempts in the current window.

    Raises:
        PaymentException: RATE_LIMIT_EXCEEDED when the limit is passed
    """
    limit = limit or config.WEBHOOK_RATE_LIMIT_PER_MINUTE
    now = now or datetime.now(timezone.utc)
    start = window_start(now)

    async def work(session: AsyncSession) -> int:
        count = await WebhookAttempt.increment(session, key, start)
        if count == 1:
            await WebhookAttempt.purge_before(session, start - RETENTION)
        return count

    count = await run_in_transaction(session_factory, work)

    if count > limit:
        logger.warning(f"Rate limit exceeded for {key}: {count} attempts in window")
        retry_after = int((start + WINDOW - now).total_seconds()) + 1
        raise PaymentException(
            message="Too many requests",
            payment_code=PaymentErrorCode.RATE_LIMIT_EXCEEDED,
            details={"retryAfter": retry_after, "limit": limit},
        )

    return count
