"""Enrollment-related schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from app.schemas.base import BaseSchema


class EnrollmentResponse(BaseSchema):
    """Enrollment response."""

    id: str
    user_id: str
    class_id: str
    payment_id: str
    amount: Decimal
    status: str
    enrolled_at: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    class_name: Optional[str] = None


class EnrollmentListResponse(BaseSchema):
    """List of enrollments."""

    items: list[EnrollmentResponse]
    total: int


class EnrollmentCancel(BaseSchema):
    """Cancel enrollment request."""

    reason: Optional[str] = Field(None, max_length=500)
