"""Error taxonomy for the payment callback."""

import enum
from typing import Any, Dict, Optional

from core.exceptions.base import CustomException


class PaymentErrorCode(str, enum.Enum):
    """Stable error codes returned to the payment gateway."""

    INVALID_PAYLOAD = "payment/invalid-payload"
    INVALID_EXTERNAL_ID = "payment/invalid-external-id"
    CLASS_NOT_FOUND = "payment/class-not-found"
    CLASS_FULL = "payment/class-full"
    ALREADY_ENROLLED = "payment/already-enrolled"
    TRANSACTION_FAILED = "payment/transaction-failed"
    DATABASE_ERROR = "payment/database-error"
    USER_NOT_FOUND = "payment/user-not-found"
    INVALID_AMOUNT = "payment/invalid-amount"
    INVALID_SIGNATURE = "payment/invalid-signature"
    INVALID_TIMESTAMP = "payment/invalid-timestamp"
    RATE_LIMIT_EXCEEDED = "payment/rate-limit-exceeded"


# Codes that are not plain 400 client errors
STATUS_OVERRIDES = {
    PaymentErrorCode.RATE_LIMIT_EXCEEDED: 429,
    PaymentErrorCode.TRANSACTION_FAILED: 503,
    PaymentErrorCode.DATABASE_ERROR: 503,
}


class PaymentException(CustomException):
    """A payment callback failure with a taxonomy code."""

    code = 400
    error_code = PaymentErrorCode.TRANSACTION_FAILED.value
    message = "Payment processing failed"

    def __init__(
        self,
        message: str,
        payment_code: PaymentErrorCode,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.payment_code = payment_code
        super().__init__(
            message=message,
            code=status_code or STATUS_OVERRIDES.get(payment_code, 400),
            error_code=payment_code.value,
            data=details,
        )

    @property
    def details(self) -> Dict[str, Any]:
        return self.data

    def to_error(self) -> Dict[str, Any]:
        """Error body used in the webhook response envelope."""
        error = {"code": self.error_code, "message": self.message}
        if self.data:
            error["details"] = self.data
        return error
