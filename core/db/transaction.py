"""Optimistic transaction runner.

Rows that must not be written concurrently carry a ``version_id`` column, so
a write based on a stale read fails with ``StaleDataError``; unique indexes
turn duplicate inserts into ``IntegrityError``. Both mean another writer
committed first: the unit of work is re-run from scratch in a fresh session
so it re-reads the winner's state.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from core.config import config
from core.exceptions.base import ServiceUnavailableException
from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (StaleDataError, IntegrityError)


class TransactionConflictException(ServiceUnavailableException):
    """Optimistic retries were exhausted."""

    error_code = "TRANSACTION_CONFLICT"
    message = "The operation conflicted with concurrent updates, please retry"


class TransactionTimeoutException(ServiceUnavailableException):
    """The transaction did not finish within its time bound."""

    error_code = "TRANSACTION_TIMEOUT"
    message = "The operation timed out, please retry"


async def _attempt_loop(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    max_attempts: int,
) -> T:
    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        async with session_factory() as session:
            try:
                async with session.begin():
                    return await work(session)
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(
                    f"Transaction conflict on attempt {attempt}/{max_attempts}: "
                    f"{type(e).__name__}"
                )

    raise TransactionConflictException(
        data={"attempts": max_attempts, "reason": type(last_error).__name__}
    )


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: Callable[[AsyncSession], Awaitable[T]],
    max_attempts: Optional[int] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Run ``work`` inside a transaction, retrying on optimistic conflicts.

    ``work`` receives a session with an open transaction; it commits when
    ``work`` returns and rolls back when it raises. Domain exceptions are
    propagated untouched after rollback.

    Raises:
        TransactionConflictException: every attempt hit a conflict
        TransactionTimeoutException: the attempts exceeded ``timeout`` seconds
    """
    max_attempts = max_attempts or config.TRANSACTION_MAX_ATTEMPTS
    timeout = timeout if timeout is not None else config.TRANSACTION_TIMEOUT_SECONDS

    try:
        return await asyncio.wait_for(
            _attempt_loop(session_factory, work, max_attempts), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.error(f"Transaction exceeded {timeout}s bound")
        raise TransactionTimeoutException(data={"timeout_seconds": timeout})
