"""Enrollment API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.deps import get_current_user
from app.models.enrollment import Enrollment, EnrollmentStatus
from app.models.user import Role, User
from app.schemas.enrollment import EnrollmentCancel, EnrollmentListResponse, EnrollmentResponse
from app.services import enrollment_service
from core.db import get_db, get_session_factory
from core.exceptions.base import ForbiddenException, NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


def enrollment_to_response(enrollment: Enrollment) -> EnrollmentResponse:
    """Convert Enrollment model to response with the class name."""
    response = EnrollmentResponse.model_validate(enrollment)
    if enrollment.class_ is not None:
        response.class_name = enrollment.class_.name
    return response


@router.get("/my", response_model=EnrollmentListResponse)
async def get_my_enrollments(
    status: Optional[EnrollmentStatus] = None,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> EnrollmentListResponse:
    """Get the current user's enrollments, newest first."""
    enrollments = await Enrollment.get_by_user_id(db_session, current_user.id, status=status)
    return EnrollmentListResponse(
        items=[enrollment_to_response(e) for e in enrollments],
        total=len(enrollments),
    )


@router.get("/{enrollment_id}", response_model=EnrollmentResponse)
async def get_enrollment(
    enrollment_id: str,
    current_user: User = Depends(get_current_user),
    db_session: AsyncSession = Depends(get_db),
) -> EnrollmentResponse:
    """Get enrollment by ID. Students see their own; the class teacher and admins see all."""
    enrollment = await Enrollment.get_by_id(db_session, enrollment_id)
    if not enrollment:
        raise NotFoundException(message="Enrollment not found")

    if (
        current_user.role != Role.ADMIN
        and enrollment.user_id != current_user.id
        and not enrollment.class_.is_taught_by(current_user.id)
    ):
        raise ForbiddenException(message="Not authorized to view this enrollment")

    return enrollment_to_response(enrollment)


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentResponse)
async def cancel_enrollment(
    enrollment_id: str,
    data: Optional[EnrollmentCancel] = None,
    current_user: User = Depends(get_current_user),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> EnrollmentResponse:
    """
    Cancel an active enrollment and free the seat.

    The payment is not refunded here; refunds are issued at the gateway.
    """
    logger.info(f"Cancel enrollment {enrollment_id} requested by {current_user.id}")
    enrollment = await enrollment_service.cancel_enrollment(
        session_factory,
        enrollment_id,
        requested_by=current_user,
        reason=data.reason if data else None,
    )
    return enrollment_to_response(enrollment)
