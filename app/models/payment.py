"""Payment records written by the payment callback."""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin, OrganizationMixin

if TYPE_CHECKING:
    from app.models.class_ import Class
    from app.models.user import User


class PaymentStatus(str, enum.Enum):
    """Status of a payment."""

    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Payment(Base, TimestampMixin, OrganizationMixin):
    """
    A payment reported by the gateway.

    Keyed by the gateway's payment id, so each payment is recorded once no
    matter how often the webhook is delivered.
    """

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False, index=True
    )
    class_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("classes.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(
            PaymentStatus,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentStatus.COMPLETED,
        nullable=False,
    )
    payment_method: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_details: Mapped[Dict[str, Any]] = mapped_column(
        JSON, default=lambda: {}, nullable=False
    )  # Masked before storage
    idempotency_key: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    class_: Mapped["Class"] = relationship("Class")
    user: Mapped["User"] = relationship("User")

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["Payment"]:
        """Get payment by gateway payment id."""
        result = await db_session.execute(select(cls).where(cls.id == id))
        return result.scalars().first()

    @classmethod
    async def get_by_user_id(
        cls, db_session: AsyncSession, user_id: str, limit: int = 50
    ) -> Sequence["Payment"]:
        """Get payments for a user."""
        result = await db_session.execute(
            select(cls)
            .where(cls.user_id == user_id)
            .order_by(cls.processed_at.desc())
            .limit(limit)
        )
        return result.scalars().all()

    @classmethod
    async def total_revenue(cls, db_session: AsyncSession) -> Decimal:
        """Sum of completed payments."""
        result = await db_session.execute(
            select(func.coalesce(func.sum(cls.amount), 0)).where(
                cls.status == PaymentStatus.COMPLETED
            )
        )
        return Decimal(str(result.scalar() or 0))

    @classmethod
    async def completed_since(
        cls, db_session: AsyncSession, since: datetime
    ) -> List[Tuple[datetime, Decimal]]:
        """(processed_at, amount) of completed payments since a point in time."""
        result = await db_session.execute(
            select(cls.processed_at, cls.amount).where(
                cls.status == PaymentStatus.COMPLETED,
                cls.processed_at >= since,
            )
        )
        return [(row.processed_at, row.amount) for row in result.all()]
