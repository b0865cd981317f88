"""Shared fixed-window counters for webhook rate limiting."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


class WebhookAttempt(Base):
    """
    Number of callback attempts from one caller in one time window.

    Lives in the database so every application instance sees the same
    counts and they survive restarts.
    """

    __tablename__ = "webhook_attempts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("key", "window_start", name="uq_webhook_attempt_key_window"),
    )

    @classmethod
    async def increment(
        cls, db_session: AsyncSession, key: str, window_start: datetime
    ) -> int:
        """Count one attempt and return the window's new total."""
        result = await db_session.execute(
            update(cls)
            .where(cls.key == key, cls.window_start == window_start)
            .values(count=cls.count + 1)
        )
        if result.rowcount == 0:
            db_session.add(cls(key=key, window_start=window_start, count=1))
            await db_session.flush()

        total = await db_session.execute(
            select(cls.count).where(cls.key == key, cls.window_start == window_start)
        )
        return total.scalar_one()

    @classmethod
    async def purge_before(cls, db_session: AsyncSession, cutoff: datetime) -> int:
        """Drop windows older than ``cutoff``."""
        result = await db_session.execute(delete(cls).where(cls.window_start < cutoff))
        return result.rowcount or 0
