"""Studio rental bookings and the half-hour slots they hold."""

import enum
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Time,
    delete,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base, TimestampMixin, OrganizationMixin


class RentalStatus(str, enum.Enum):
    """Status of a studio rental."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def slot_starts(start: time, end: time, slot_minutes: int) -> List[time]:
    """Start times of the slots covering ``[start, end)``."""
    day = date.min
    current = datetime.combine(day, start)
    stop = datetime.combine(day, end)
    starts = []
    while current < stop:
        starts.append(current.time())
        current += timedelta(minutes=slot_minutes)
    return starts


class StudioRental(Base, TimestampMixin, OrganizationMixin):
    """A user's booking of a studio for part of one day."""

    __tablename__ = "studio_rentals"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False, index=True
    )
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False)
    rental_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    purpose: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[RentalStatus] = mapped_column(
        Enum(
            RentalStatus,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        default=RentalStatus.CONFIRMED,
        nullable=False,
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("idx_studio_rentals_studio_date", "studio_id", "rental_date"),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == RentalStatus.CONFIRMED

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["StudioRental"]:
        return await db_session.get(cls, id)

    @classmethod
    async def get_for_day(
        cls,
        db_session: AsyncSession,
        studio_id: str,
        rental_date: date,
        status: Optional[RentalStatus] = None,
    ) -> Sequence["StudioRental"]:
        conditions = [cls.studio_id == studio_id, cls.rental_date == rental_date]
        if status:
            conditions.append(cls.status == status)
        result = await db_session.execute(
            select(cls).where(*conditions).order_by(cls.start_time)
        )
        return result.scalars().all()

    @classmethod
    async def get_by_user(
        cls, db_session: AsyncSession, user_id: str
    ) -> Sequence["StudioRental"]:
        result = await db_session.execute(
            select(cls)
            .where(cls.user_id == user_id)
            .order_by(cls.rental_date.desc(), cls.start_time)
        )
        return result.scalars().all()

    @classmethod
    async def find_overlapping(
        cls,
        db_session: AsyncSession,
        studio_id: str,
        rental_date: date,
        start: time,
        end: time,
    ) -> Optional["StudioRental"]:
        """A confirmed rental sharing any part of ``[start, end)``."""
        result = await db_session.execute(
            select(cls).where(
                cls.studio_id == studio_id,
                cls.rental_date == rental_date,
                cls.status == RentalStatus.CONFIRMED,
                cls.start_time < end,
                cls.end_time > start,
            )
        )
        return result.scalars().first()

    def hold_slots(self, slot_minutes: int) -> List["StudioRentalSlot"]:
        return [
            StudioRentalSlot(
                studio_id=self.studio_id,
                rental_date=self.rental_date,
                slot_start=start,
                rental_id=self.id,
            )
            for start in slot_starts(self.start_time, self.end_time, slot_minutes)
        ]

    async def release_slots(self, db_session: AsyncSession) -> None:
        await db_session.execute(
            delete(StudioRentalSlot).where(StudioRentalSlot.rental_id == self.id)
        )

    def __repr__(self) -> str:
        return (
            f"StudioRental(id={self.id}, date={self.rental_date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})"
        )


class StudioRentalSlot(Base):
    """
    One half-hour of a studio held by a confirmed rental.

    The primary key makes two confirmed rentals of the same studio slot
    impossible even when both pass the overlap query concurrently.
    """

    __tablename__ = "studio_rental_slots"

    studio_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rental_date: Mapped[date] = mapped_column(Date, primary_key=True)
    slot_start: Mapped[time] = mapped_column(Time, primary_key=True)
    rental_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("studio_rentals.id"), nullable=False, index=True
    )
