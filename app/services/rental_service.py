"""Studio rental booking and cancellation."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.studio_rental import RentalStatus, StudioRental
from app.models.user import Role, User
from app.schemas.studio_rental import RentalCreate
from core.config import config
from core.db.transaction import run_in_transaction
from core.exceptions.base import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
)
from core.logging import get_logger

logger = get_logger(__name__)


async def book_rental(
    session_factory: async_sessionmaker[AsyncSession],
    user: User,
    data: RentalCreate,
    studio_id: Optional[str] = None,
) -> StudioRental:
    """
    Book a studio for ``data``'s time range, rejecting overlaps.

    The overlap query gives the caller a precise conflict; the slot rows
    inserted with the rental are what actually serialize two concurrent
    bookings. The loser's insert fails, the runner re-runs it, and the
    re-run reports the winner's booking as the conflict.

    Raises:
        BadRequestException: RENTAL_DATE_IN_PAST
        ConflictException: RENTAL_SLOT_TAKEN
    """
    studio_id = studio_id or config.DEFAULT_STUDIO_ID
    if data.rental_date < datetime.now(timezone.utc).date():
        raise BadRequestException(
            message="Rentals cannot be booked in the past",
            error_code="RENTAL_DATE_IN_PAST",
        )

    async def work(db_session: AsyncSession) -> StudioRental:
        taken = await StudioRental.find_overlapping(
            db_session, studio_id, data.rental_date, data.start_time, data.end_time
        )
        if taken:
            raise ConflictException(
                message="This time slot is already booked",
                error_code="RENTAL_SLOT_TAKEN",
                data={
                    "rentalId": taken.id,
                    "startTime": taken.start_time.strftime("%H:%M"),
                    "endTime": taken.end_time.strftime("%H:%M"),
                },
            )

        rental = StudioRental(
            id=str(uuid4()),
            user_id=user.id,
            studio_id=studio_id,
            rental_date=data.rental_date,
            start_time=data.start_time,
            end_time=data.end_time,
            purpose=data.purpose,
            status=RentalStatus.CONFIRMED,
            organization_id=user.organization_id,
        )
        db_session.add(rental)
        await db_session.flush()

        db_session.add_all(rental.hold_slots(config.RENTAL_SLOT_MINUTES))
        await db_session.flush()
        return rental

    rental = await run_in_transaction(session_factory, work)
    logger.info(
        f"User {user.id} booked {studio_id} on {rental.rental_date} "
        f"{rental.start_time:%H:%M}-{rental.end_time:%H:%M} (rental {rental.id})"
    )
    return rental


async def cancel_rental(
    session_factory: async_sessionmaker[AsyncSession],
    rental_id: str,
    requested_by: User,
) -> StudioRental:
    """Cancel a confirmed rental and free its slots. Owners and admins only."""

    async def work(db_session: AsyncSession) -> StudioRental:
        rental = await StudioRental.get_by_id(db_session, rental_id)
        if not rental:
            raise NotFoundException(message="Rental not found")

        if requested_by.role != Role.ADMIN and rental.user_id != requested_by.id:
            raise ForbiddenException(message="Not allowed to cancel this rental")

        if not rental.is_confirmed:
            raise BadRequestException(
                message="Only confirmed rentals can be cancelled",
                error_code="RENTAL_NOT_ACTIVE",
            )

        rental.status = RentalStatus.CANCELLED
        rental.cancelled_at = datetime.now(timezone.utc)
        await rental.release_slots(db_session)
        await db_session.flush()
        return rental

    rental = await run_in_transaction(session_factory, work)
    logger.info(f"Cancelled rental {rental_id} by user {requested_by.id}")
    return rental
