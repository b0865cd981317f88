"""Payment gateway callback that enrolls the paying student."""

from typing import Any, Dict
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.schemas.payment import (
    PaymentCallbackPayload,
    PaymentCallbackResponse,
    PaymentErrorResponse,
)
from app.services import enrollment_service, rate_limit_service
from app.services.enrollment_service import CallbackOutcome
from app.services.webhook_signature import is_timestamp_fresh, verify_signature
from app.tasks.email_tasks import send_class_enrollment_email, send_payment_confirmation_email
from core.db import get_session_factory
from core.db.transaction import TransactionConflictException, TransactionTimeoutException
from core.exceptions.payment import PaymentErrorCode, PaymentException
from core.logging import get_logger, mask_sensitive_data

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def _validation_details(exc: ValidationError) -> Dict[str, Any]:
    return {
        "errors": [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
    }


async def _read_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise PaymentException(
            message="Request body is not valid JSON",
            payment_code=PaymentErrorCode.INVALID_PAYLOAD,
        )
    if not isinstance(body, dict):
        raise PaymentException(
            message="Request body must be a JSON object",
            payment_code=PaymentErrorCode.INVALID_PAYLOAD,
        )
    return body


def _queue_notifications(outcome: CallbackOutcome) -> None:
    """Best effort: a failed enqueue never affects the committed enrollment."""
    try:
        send_payment_confirmation_email.delay(
            user_email=outcome.user_email,
            user_name=outcome.user_name,
            class_name=outcome.class_name,
            amount=str(outcome.result.amount),
            payment_id=outcome.result.transaction_id,
            payment_method=outcome.payment_method,
        )
        send_class_enrollment_email.delay(
            user_email=outcome.user_email,
            user_name=outcome.user_name,
            class_name=outcome.class_name,
            schedule=outcome.class_schedule,
            location=outcome.class_location,
        )
    except Exception as e:
        logger.error(
            f"Failed to queue notifications for payment {outcome.result.transaction_id}: {str(e)}"
        )


@router.post(
    "/callback",
    response_model=PaymentCallbackResponse,
    response_model_by_alias=True,
    responses={
        400: {"model": PaymentErrorResponse},
        429: {"model": PaymentErrorResponse},
        500: {"model": PaymentErrorResponse},
        503: {"model": PaymentErrorResponse},
    },
)
async def payment_callback(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> PaymentCallbackResponse:
    """
    Handle a payment-completed callback from the gateway.

    Checks, in order: caller rate limit, body schema, HMAC signature and
    timestamp freshness. Then seats the student, records the payment and
    enrollment in one transaction and queues the confirmation emails.
    Redelivered callbacks get the original result with ``duplicate: true``.
    """
    client_ip = rate_limit_service.get_client_ip(request)

    try:
        await rate_limit_service.register_attempt(
            session_factory, f"payment-callback:{client_ip}"
        )

        body = await _read_body(request)
        logger.info(f"Payment callback received from {client_ip}: {mask_sensitive_data(body)}")

        try:
            payload = PaymentCallbackPayload.model_validate(body)
        except ValidationError as e:
            raise PaymentException(
                message="Invalid payment payload",
                payment_code=PaymentErrorCode.INVALID_PAYLOAD,
                details=_validation_details(e),
            )

        if not verify_signature(body):
            logger.warning(f"Invalid signature on payment callback {payload.payment_id}")
            raise PaymentException(
                message="Invalid signature",
                payment_code=PaymentErrorCode.INVALID_SIGNATURE,
            )

        if not is_timestamp_fresh(payload.timestamp):
            logger.warning(f"Stale timestamp on payment callback {payload.payment_id}")
            raise PaymentException(
                message="Request timestamp is outside the accepted window",
                payment_code=PaymentErrorCode.INVALID_TIMESTAMP,
            )

        outcome = await enrollment_service.process_payment_callback(session_factory, payload)

    except PaymentException:
        raise
    except (TransactionConflictException, TransactionTimeoutException) as e:
        raise enrollment_service.transaction_failure(e)
    except Exception as e:
        error_id = str(uuid4())
        logger.exception(f"Unexpected payment callback error [{error_id}]: {type(e).__name__}")
        raise PaymentException(
            message="Internal server error",
            payment_code=PaymentErrorCode.TRANSACTION_FAILED,
            details={"errorId": error_id},
            status_code=500,
        )

    if outcome.duplicate:
        return PaymentCallbackResponse(
            message="Payment already processed", data=outcome.result
        )

    _queue_notifications(outcome)
    return PaymentCallbackResponse(data=outcome.result)
