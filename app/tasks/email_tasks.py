"""Celery tasks for email notifications."""

import asyncio
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict

from app.models.class_ import Class
from app.models.user import User
from app.services.email_service import email_service
from app.tasks.celery_app import celery_app
from core.config import config
from core.db.session import async_session_factory
from core.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(bind=True, name="send_payment_confirmation_email")
def send_payment_confirmation_email(
    self,
    user_email: str,
    user_name: str,
    class_name: str,
    amount: str,
    payment_id: str,
    payment_method: str,
) -> bool:
    """Send a payment receipt.

    Args:
        user_email: Recipient email
        user_name: Student's name
        class_name: Class paid for
        amount: Amount (as string)
        payment_id: Gateway payment id
        payment_method: Payment method
    """
    try:
        success = email_service.send_payment_confirmation(
            to_email=user_email,
            user_name=user_name,
            class_name=class_name,
            amount=Decimal(amount),
            payment_id=payment_id,
            payment_method=payment_method,
        )

        if success:
            logger.info(f"Payment confirmation email sent to {user_email} for payment {payment_id}")
        else:
            logger.warning(f"Failed to send payment confirmation email to {user_email}")

        return success

    except Exception as e:
        logger.error(f"Error sending payment confirmation email: {str(e)}")
        # Retry up to 3 times with exponential backoff
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries), max_retries=3)


@celery_app.task(bind=True, name="send_class_enrollment_email")
def send_class_enrollment_email(
    self,
    user_email: str,
    user_name: str,
    class_name: str,
    schedule: str,
    location: str,
) -> bool:
    """Send enrollment confirmation email."""
    try:
        success = email_service.send_class_enrollment(
            to_email=user_email,
            user_name=user_name,
            class_name=class_name,
            schedule=schedule,
            location=location,
        )

        if success:
            logger.info(f"Enrollment email sent to {user_email} for class {class_name}")
        else:
            logger.warning(f"Failed to send enrollment email to {user_email}")

        return success

    except Exception as e:
        logger.error(f"Error sending enrollment email: {str(e)}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries), max_retries=3)


@celery_app.task(bind=True, name="send_attendance_update_email")
def send_attendance_update_email(
    self,
    user_email: str,
    user_name: str,
    class_name: str,
    session_date: str,
    status: str,
) -> bool:
    """Send attendance update email.

    Args:
        session_date: ISO date of the session
        status: "present" or "absent"
    """
    try:
        success = email_service.send_attendance_update(
            to_email=user_email,
            user_name=user_name,
            class_name=class_name,
            session_date=date.fromisoformat(session_date),
            status=status,
        )

        if not success:
            logger.warning(f"Failed to send attendance update email to {user_email}")

        return success

    except Exception as e:
        logger.error(f"Error sending attendance update email: {str(e)}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries), max_retries=3)


@celery_app.task(bind=True, name="send_class_reminder_email")
def send_class_reminder_email(
    self,
    user_email: str,
    user_name: str,
    class_name: str,
    starts_at: str,
    location: str,
) -> bool:
    """Send a reminder for an upcoming class."""
    try:
        return email_service.send_class_reminder(
            to_email=user_email,
            user_name=user_name,
            class_name=class_name,
            starts_at=datetime.fromisoformat(starts_at),
            location=location,
        )

    except Exception as e:
        logger.error(f"Error sending class reminder email: {str(e)}")
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries), max_retries=3)


@celery_app.task(name="send_class_reminders")
def send_class_reminders() -> Dict[str, Any]:
    """Periodic task to remind students of upcoming classes.

    Runs daily via Celery Beat.
    Sends reminders for classes starting within CLASS_REMINDER_HOURS.
    """
    logger.info("Starting class reminders task")

    try:
        return asyncio.run(_send_class_reminders_async())

    except Exception as e:
        logger.error(f"Error in send_class_reminders: {str(e)}")
        return {"success": False, "error": str(e)}


async def _send_class_reminders_async(session_factory=None) -> Dict[str, Any]:
    """Async implementation of class reminders."""
    session_factory = session_factory or async_session_factory
    now = datetime.now(timezone.utc)
    window_end = now + timedelta(hours=config.CLASS_REMINDER_HOURS)

    async with session_factory() as db:
        classes = await Class.get_starting_between(db, now, window_end)

        sent_count = 0
        failed_count = 0

        for class_ in classes:
            students = await User.get_by_ids(db, class_.enrolled_students or [])
            for student in students:
                try:
                    send_class_reminder_email.delay(
                        user_email=student.email,
                        user_name=student.name,
                        class_name=class_.name,
                        starts_at=class_.starts_at.isoformat(),
                        location=class_.location,
                    )
                    sent_count += 1

                except Exception as e:
                    logger.error(
                        f"Error queueing reminder for class {class_.id} to {student.id}: {str(e)}"
                    )
                    failed_count += 1

    logger.info(f"Class reminders task completed: {sent_count} sent, {failed_count} failed")

    return {"success": True, "classes": len(classes), "sent": sent_count, "failed": failed_count}
