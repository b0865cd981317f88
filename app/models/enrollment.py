"""Enrollment model linking a student to a paid class."""

import enum
import hashlib
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Sequence

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    select,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from core.db import Base, TimestampMixin, OrganizationMixin

if TYPE_CHECKING:
    from app.models.class_ import Class
    from app.models.user import User


class EnrollmentStatus(str, enum.Enum):
    """Status of an enrollment."""

    ACTIVE = "active"  # Paid and enrolled
    CANCELLED = "cancelled"  # Seat released
    COMPLETED = "completed"  # Class finished


ACTIVE_ONLY = text("status = 'active'")


def build_idempotency_key(user_id: str, class_id: str, payment_id: str) -> str:
    """Deterministic key of one paid enrollment attempt."""
    return hashlib.sha256(f"{user_id}_{class_id}_{payment_id}".encode("utf-8")).hexdigest()


class Enrollment(Base, TimestampMixin, OrganizationMixin):
    """
    A student's seat in a class, created by the payment callback.

    The primary key is the idempotency key, so a redelivered callback can
    never insert a second row for the same payment.
    """

    __tablename__ = "enrollments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False, index=True
    )
    class_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("classes.id"), nullable=False, index=True
    )
    payment_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[EnrollmentStatus] = mapped_column(
        Enum(
            EnrollmentStatus,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=EnrollmentStatus.ACTIVE,
        nullable=False,
    )
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # At most one active seat per student and class
        Index(
            "uq_enrollments_active_user_class",
            "user_id",
            "class_id",
            unique=True,
            sqlite_where=ACTIVE_ONLY,
            postgresql_where=ACTIVE_ONLY,
        ),
    )

    class_: Mapped["Class"] = relationship("Class")
    user: Mapped["User"] = relationship("User")

    @property
    def idempotency_key(self) -> str:
        return self.id

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["Enrollment"]:
        """Get enrollment by ID."""
        result = await db_session.execute(
            select(cls).options(selectinload(cls.class_)).where(cls.id == id)
        )
        return result.scalars().first()

    @classmethod
    async def get_active(
        cls, db_session: AsyncSession, user_id: str, class_id: str
    ) -> Optional["Enrollment"]:
        """The active enrollment of a student in a class, if any."""
        result = await db_session.execute(
            select(cls).where(
                cls.user_id == user_id,
                cls.class_id == class_id,
                cls.status == EnrollmentStatus.ACTIVE,
            )
        )
        return result.scalars().first()

    @classmethod
    async def get_by_user_id(
        cls,
        db_session: AsyncSession,
        user_id: str,
        status: Optional[EnrollmentStatus] = None,
    ) -> Sequence["Enrollment"]:
        """Get all enrollments for a user."""
        conditions = [cls.user_id == user_id]
        if status:
            conditions.append(cls.status == status)

        result = await db_session.execute(
            select(cls)
            .options(selectinload(cls.class_))
            .where(*conditions)
            .order_by(cls.enrolled_at.desc())
        )
        return result.scalars().all()

    @classmethod
    async def get_active_by_class(
        cls, db_session: AsyncSession, class_id: str
    ) -> Sequence["Enrollment"]:
        """Get all active enrollments for a class (roster)."""
        result = await db_session.execute(
            select(cls)
            .options(selectinload(cls.user))
            .where(cls.class_id == class_id, cls.status == EnrollmentStatus.ACTIVE)
            .order_by(cls.enrolled_at)
        )
        return result.scalars().all()

    @classmethod
    async def count_active(cls, db_session: AsyncSession) -> int:
        result = await db_session.execute(
            select(func.count(cls.id)).where(cls.status == EnrollmentStatus.ACTIVE)
        )
        return result.scalar() or 0

    def cancel(self, reason: Optional[str] = None) -> None:
        """Mark the enrollment cancelled; the caller frees the class seat."""
        if self.status != EnrollmentStatus.ACTIVE:
            raise ValueError("Only active enrollments can be cancelled")
        self.status = EnrollmentStatus.CANCELLED
        self.cancelled_at = datetime.now(timezone.utc)
        self.cancellation_reason = reason
