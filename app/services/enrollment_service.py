"""Enrollment transactions: the payment callback seat grant and unenroll."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.class_ import Class
from app.models.enrollment import Enrollment, EnrollmentStatus, build_idempotency_key
from app.models.payment import Payment, PaymentStatus
from app.models.user import Role, User
from app.schemas.payment import ClassDetails, PaymentCallbackPayload, PaymentCallbackResult
from core.config import config
from core.db.transaction import (
    TransactionConflictException,
    TransactionTimeoutException,
    run_in_transaction,
)
from core.exceptions.base import BadRequestException, ForbiddenException, NotFoundException
from core.exceptions.payment import PaymentErrorCode, PaymentException
from core.logging import get_logger, mask_sensitive_data

logger = get_logger(__name__)

CENTS = Decimal("0.01")


@dataclass
class CallbackOutcome:
    """Result of a processed callback plus what the notifications need."""

    result: PaymentCallbackResult
    user_email: Optional[str]
    user_name: Optional[str]
    class_name: str
    class_schedule: str
    class_location: str
    payment_method: str

    @property
    def duplicate(self) -> bool:
        return self.result.duplicate


def class_details(class_: Class) -> ClassDetails:
    return ClassDetails(
        id=class_.id,
        name=class_.name,
        style=class_.style.value,
        level=class_.level.value,
        schedule=class_.schedule,
        capacity=class_.capacity,
        enrolled=class_.enrolled,
        price=class_.price,
    )


def transaction_failure(
    exc: Exception, details: Optional[Dict[str, Any]] = None
) -> PaymentException:
    """Map a timed out or conflicted transaction to the retryable callback error."""
    reason = "timeout" if isinstance(exc, TransactionTimeoutException) else "conflict"
    return PaymentException(
        message="Transaction failed, please retry",
        payment_code=PaymentErrorCode.TRANSACTION_FAILED,
        details={**(details or {}), "retryable": True, "reason": reason},
        status_code=503,
    )


def _outcome(
    enrollment: Enrollment,
    payment: Payment,
    class_: Class,
    user: Optional[User],
    duplicate: bool,
) -> CallbackOutcome:
    return CallbackOutcome(
        result=PaymentCallbackResult(
            transaction_id=payment.id,
            enrollment_id=enrollment.id,
            amount=enrollment.amount,
            class_details=class_details(class_),
            duplicate=duplicate,
        ),
        user_email=user.email if user else None,
        user_name=user.name if user else None,
        class_name=class_.name,
        class_schedule=class_.schedule,
        class_location=class_.location,
        payment_method=payment.payment_method,
    )


async def _replay(
    db_session: AsyncSession, payment: Payment, idempotency_key: str
) -> CallbackOutcome:
    """Stored result of an already processed payment."""
    if payment.idempotency_key != idempotency_key:
        raise PaymentException(
            message="Payment was already recorded for a different enrollment",
            payment_code=PaymentErrorCode.INVALID_PAYLOAD,
            details={"paymentId": payment.id},
        )

    enrollment = await Enrollment.get_by_id(db_session, idempotency_key)
    if not enrollment:
        raise PaymentException(
            message="Payment is recorded without its enrollment",
            payment_code=PaymentErrorCode.DATABASE_ERROR,
            details={"paymentId": payment.id},
        )

    # Replays send no notifications, so a since removed user is not an error
    user = await db_session.get(User, enrollment.user_id)
    return _outcome(enrollment, payment, enrollment.class_, user, duplicate=True)


async def _replay_if_recorded(
    db_session: AsyncSession, payment_id: str, idempotency_key: str
) -> Optional[CallbackOutcome]:
    """
    Replay a payment committed by a concurrent delivery of the same callback.

    The payment and its seat commit together, so a seat or enrollment that
    became visible after the first lookup may belong to this very payment.
    """
    payment = await Payment.get_by_id(db_session, payment_id)
    if payment is None:
        return None
    logger.info(f"Payment {payment_id} committed by a concurrent delivery, replaying result")
    return await _replay(db_session, payment, idempotency_key)


async def _enroll(
    db_session: AsyncSession, payload: PaymentCallbackPayload
) -> CallbackOutcome:
    """One attempt of the callback transaction. Raises PaymentException on business errors."""
    idempotency_key = build_idempotency_key(
        payload.user_id, payload.external_id, payload.payment_id
    )

    existing_payment = await Payment.get_by_id(db_session, payload.payment_id)
    if existing_payment:
        logger.info(f"Payment {payload.payment_id} already processed, replaying result")
        return await _replay(db_session, existing_payment, idempotency_key)

    class_ = await Class.get_by_id(db_session, payload.external_id)
    if not class_ or not class_.is_active:
        raise PaymentException(
            message="Class not found",
            payment_code=PaymentErrorCode.CLASS_NOT_FOUND,
            details={"classId": payload.external_id},
        )

    user = await User.get_by_id(db_session, payload.user_id)
    if not user or not user.is_active:
        raise PaymentException(
            message="User not found",
            payment_code=PaymentErrorCode.USER_NOT_FOUND,
            details={"userId": payload.user_id},
        )

    if not class_.has_capacity:
        replay = await _replay_if_recorded(db_session, payload.payment_id, idempotency_key)
        if replay:
            return replay
        raise PaymentException(
            message="Class is full",
            payment_code=PaymentErrorCode.CLASS_FULL,
            details={"capacity": class_.capacity, "enrolled": class_.enrolled},
        )

    active = await Enrollment.get_active(db_session, user.id, class_.id)
    if active or class_.has_student(user.id):
        replay = await _replay_if_recorded(db_session, payload.payment_id, idempotency_key)
        if replay:
            return replay
        raise PaymentException(
            message="User is already enrolled in this class",
            payment_code=PaymentErrorCode.ALREADY_ENROLLED,
            details={"classId": class_.id},
        )

    if payload.amount != class_.price:
        raise PaymentException(
            message="Payment amount does not match class price",
            payment_code=PaymentErrorCode.INVALID_AMOUNT,
            details={"expected": str(class_.price), "received": str(payload.amount)},
        )

    amount = payload.amount.quantize(CENTS)
    class_.add_student(user.id)

    enrollment = Enrollment(
        id=idempotency_key,
        user_id=user.id,
        class_id=class_.id,
        payment_id=payload.payment_id,
        amount=amount,
        status=EnrollmentStatus.ACTIVE,
        organization_id=class_.organization_id,
    )
    payment = Payment(
        id=payload.payment_id,
        user_id=user.id,
        class_id=class_.id,
        amount=amount,
        currency=config.PAYMENT_CURRENCY,
        status=PaymentStatus.COMPLETED,
        payment_method=payload.payment_method,
        transaction_details=mask_sensitive_data(payload.transaction_details or {}),
        idempotency_key=idempotency_key,
        organization_id=class_.organization_id,
    )
    db_session.add_all([enrollment, payment])

    # Version check and unique indexes fire here; conflicts are retried by the runner
    await db_session.flush()

    return _outcome(enrollment, payment, class_, user, duplicate=False)


async def process_payment_callback(
    session_factory: async_sessionmaker[AsyncSession],
    payload: PaymentCallbackPayload,
) -> CallbackOutcome:
    """
    Enroll the paying student in the class, exactly once.

    The capacity check, the seat increment and the enrollment and payment
    inserts commit together. A redelivered callback returns the stored
    result with ``duplicate`` set and changes nothing.

    Raises:
        PaymentException: business rule failures, or TRANSACTION_FAILED
            (503, retryable) on timeout or exhausted conflict retries
    """
    try:
        outcome = await run_in_transaction(
            session_factory, lambda session: _enroll(session, payload)
        )
    except (TransactionConflictException, TransactionTimeoutException) as e:
        logger.error(
            f"Enrollment transaction failed for payment {payload.payment_id}: {e.error_code}"
        )
        raise transaction_failure(e, {"paymentId": payload.payment_id})

    if not outcome.duplicate:
        logger.info(
            f"Enrolled user {payload.user_id} in class {payload.external_id} "
            f"(payment {payload.payment_id})"
        )
    return outcome


async def cancel_enrollment(
    session_factory: async_sessionmaker[AsyncSession],
    enrollment_id: str,
    requested_by: User,
    reason: Optional[str] = None,
) -> Enrollment:
    """
    Cancel an active enrollment and free its seat in the same transaction.

    Students may cancel their own enrollments; teachers those of their
    classes; admins any.
    """

    async def work(db_session: AsyncSession) -> Enrollment:
        enrollment = await Enrollment.get_by_id(db_session, enrollment_id)
        if not enrollment:
            raise NotFoundException(message="Enrollment not found")

        class_ = enrollment.class_
        if not (
            requested_by.role == Role.ADMIN
            or enrollment.user_id == requested_by.id
            or class_.is_taught_by(requested_by.id)
        ):
            raise ForbiddenException(message="Not allowed to cancel this enrollment")

        if enrollment.status != EnrollmentStatus.ACTIVE:
            raise BadRequestException(
                message="Only active enrollments can be cancelled",
                error_code="ENROLLMENT_NOT_ACTIVE",
            )

        enrollment.cancel(reason)
        if class_.has_student(enrollment.user_id):
            class_.remove_student(enrollment.user_id)
        await db_session.flush()
        return enrollment

    enrollment = await run_in_transaction(session_factory, work)
    logger.info(f"Cancelled enrollment {enrollment_id} by user {requested_by.id}")
    return enrollment
