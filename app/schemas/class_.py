from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from app.models.class_ import ClassLevel, DanceStyle
from app.schemas.base import BaseSchema


def _validate_price(v: Optional[Decimal]) -> Optional[Decimal]:
    if v is not None and v.normalize().as_tuple().exponent < -2:
        raise ValueError("Price can have at most 2 decimal places")
    return v


class ClassCreate(BaseSchema):
    """Schema for creating a new class."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    style: DanceStyle
    level: ClassLevel = ClassLevel.BEGINNER
    teacher_id: Optional[str] = None  # Admins only; teachers always teach their own classes
    schedule: str = Field("", max_length=255)
    location: str = Field("", max_length=255)
    starts_at: Optional[datetime] = None
    duration_minutes: int = Field(60, gt=0, le=600)
    capacity: int = Field(..., gt=0)
    price: Decimal = Field(..., gt=0)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Decimal) -> Decimal:
        return _validate_price(v)


class ClassUpdate(BaseSchema):
    """Schema for updating a class. Enrollment counters are not writable."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    style: Optional[DanceStyle] = None
    level: Optional[ClassLevel] = None
    teacher_id: Optional[str] = None
    schedule: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(None, gt=0, le=600)
    capacity: Optional[int] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, gt=0)
    is_active: Optional[bool] = None

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return _validate_price(v)


class ClassResponse(BaseSchema):
    """Class details."""

    id: str
    name: str
    description: str
    style: DanceStyle
    level: ClassLevel
    teacher_id: Optional[str] = None
    schedule: str
    location: str
    starts_at: Optional[datetime] = None
    duration_minutes: int
    capacity: int
    enrolled: int
    available_spots: int
    price: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ClassListResponse(BaseSchema):
    """Paginated list of classes."""

    items: List[ClassResponse]
    total: int
    skip: int
    limit: int


class RosterEntry(BaseSchema):
    enrollment_id: str
    user_id: str
    name: str
    email: str
    enrolled_at: datetime


class RosterResponse(BaseSchema):
    class_id: str
    class_name: str
    capacity: int
    enrolled: int
    students: List[RosterEntry]
