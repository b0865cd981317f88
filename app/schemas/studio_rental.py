"""Studio rental schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import Field, field_serializer, field_validator, model_validator

from app.schemas.base import BaseSchema
from core.config import config


class RentalCreate(BaseSchema):
    """
    Booking request for one studio on one day.

    Times are ``HH:MM`` on the half-hour grid within opening hours; the end
    time is exclusive, so 18:00-19:00 and 19:00-20:00 do not overlap.
    """

    rental_date: date
    start_time: time
    end_time: time
    purpose: str = Field(..., min_length=1, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_on_grid(cls, v: time) -> time:
        if v.second or v.microsecond or v.minute % config.RENTAL_SLOT_MINUTES:
            raise ValueError(
                f"Times must fall on {config.RENTAL_SLOT_MINUTES} minute boundaries"
            )
        return v

    @model_validator(mode="after")
    def validate_hours(self) -> "RentalCreate":
        if self.start_time >= self.end_time:
            raise ValueError("End time must be after start time")
        if (
            self.start_time < time(config.STUDIO_OPEN_HOUR)
            or self.end_time > time(config.STUDIO_CLOSE_HOUR)
        ):
            raise ValueError(
                f"Studio is open {config.STUDIO_OPEN_HOUR:02d}:00-{config.STUDIO_CLOSE_HOUR:02d}:00"
            )
        return self


class RentalResponse(BaseSchema):
    id: str
    user_id: str
    studio_id: str
    rental_date: date
    start_time: time
    end_time: time
    purpose: str
    status: str
    cancelled_at: Optional[datetime] = None

    @field_serializer("start_time", "end_time")
    def serialize_time(self, v: time) -> str:
        return v.strftime("%H:%M")


class RentalListResponse(BaseSchema):
    items: List[RentalResponse]
    total: int
