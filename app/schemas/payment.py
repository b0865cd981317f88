"""Payment callback schemas."""

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from app.schemas.base import BaseSchema, CamelSchema


class PaymentCallbackPayload(CamelSchema):
    """Body of a payment-completed webhook."""

    external_id: str = Field(..., min_length=1, max_length=64, description="Class id")
    user_id: str = Field(..., min_length=1, max_length=128)
    payment_id: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1, max_length=100)
    timestamp: int = Field(..., description="Milliseconds since the epoch")
    signature: str = Field(..., min_length=1)
    transaction_details: Optional[Dict[str, Any]] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Validate amount has at most 2 decimal places."""
        if v.normalize().as_tuple().exponent < -2:
            raise ValueError("Amount can have at most 2 decimal places")
        return v


class ClassDetails(CamelSchema):
    """Class snapshot returned to the gateway after enrolling."""

    id: str
    name: str
    style: str
    level: str
    schedule: str
    capacity: int
    enrolled: int
    price: Decimal


class PaymentCallbackResult(CamelSchema):
    """``data`` of a successful callback response."""

    transaction_id: str
    enrollment_id: str
    amount: Decimal
    class_details: ClassDetails
    duplicate: bool = False


class PaymentCallbackResponse(CamelSchema):
    """Successful callback envelope."""

    success: bool = True
    message: str = "Payment processed successfully"
    data: PaymentCallbackResult


class PaymentErrorBody(BaseSchema):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class PaymentErrorResponse(BaseSchema):
    """Failed callback envelope."""

    success: bool = False
    error: PaymentErrorBody
