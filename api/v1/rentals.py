"""Studio rental API endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.deps import get_current_user
from app.models.studio_rental import RentalStatus, StudioRental
from app.models.user import User
from app.schemas.studio_rental import RentalCreate, RentalListResponse, RentalResponse
from app.services import rental_service
from core.config import config
from core.db import get_db, get_session_factory

router = APIRouter(prefix="/rentals", tags=["Studio Rentals"])


@router.post("", response_model=RentalResponse, status_code=status.HTTP_201_CREATED)
async def book_rental(
    data: RentalCreate,
    current_user: User = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RentalResponse:
    """Book the studio. Overlapping a confirmed booking gives 409 RENTAL_SLOT_TAKEN."""
    rental = await rental_service.book_rental(session_factory, current_user, data)
    return RentalResponse.model_validate(rental)


@router.get("", response_model=RentalListResponse)
async def list_day_rentals(
    rental_date: date = Query(..., alias="date"),
    rental_status: Optional[RentalStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> RentalListResponse:
    """Bookings of the studio on one day, by start time."""
    rentals = await StudioRental.get_for_day(
        db_session, config.DEFAULT_STUDIO_ID, rental_date, status=rental_status
    )
    return RentalListResponse(
        items=[RentalResponse.model_validate(r) for r in rentals],
        total=len(rentals),
    )


@router.get("/my", response_model=RentalListResponse)
async def get_my_rentals(
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> RentalListResponse:
    rentals = await StudioRental.get_by_user(db_session, current_user.id)
    return RentalListResponse(
        items=[RentalResponse.model_validate(r) for r in rentals],
        total=len(rentals),
    )


@router.post("/{rental_id}/cancel", response_model=RentalResponse)
async def cancel_rental(
    rental_id: str,
    current_user: User = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> RentalResponse:
    rental = await rental_service.cancel_rental(session_factory, rental_id, current_user)
    return RentalResponse.model_validate(rental)
