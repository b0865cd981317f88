"""Email service for sending transactional emails."""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from core.config import config
from core.logging import get_logger

logger = get_logger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

# Initialize Jinja2 template environment
template_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


class EmailService:
    """Service for sending transactional emails using SendGrid."""

    def __init__(self, api_key: Optional[str] = None, from_email: Optional[str] = None):
        """Initialize email service."""
        api_key = api_key if api_key is not None else config.SENDGRID_API_KEY
        self.client = SendGridAPIClient(api_key) if api_key else None
        self.from_email = from_email or config.SENDGRID_FROM_EMAIL

    def _render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        """Render email template with context."""
        template = template_env.get_template(template_name)
        return template.render(studio_name=config.APP_NAME, frontend_url=config.FRONTEND_URL, **context)

    def _send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """Send email using SendGrid."""
        if not self.client:
            logger.warning(
                f"SendGrid not configured. Would send email to {to_email} with subject: {subject}"
            )
            return False

        try:
            message = Mail(
                from_email=self.from_email,
                to_emails=to_email,
                subject=subject,
                html_content=html_content,
            )
            response = self.client.send(message)
            logger.info(f"Email sent to {to_email}: {subject} (Status: {response.status_code})")
            return response.status_code in [200, 201, 202]

        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            return False

    def send_payment_confirmation(
        self,
        to_email: str,
        user_name: str,
        class_name: str,
        amount: Decimal,
        payment_id: str,
        payment_method: str,
        paid_at: Optional[datetime] = None,
    ) -> bool:
        """Send a receipt for a class payment.

        Args:
            to_email: Recipient email address
            user_name: Student's name
            class_name: Class paid for
            amount: Amount charged
            payment_id: Gateway payment id
            payment_method: How the student paid
            paid_at: Time of payment, defaults to now
        """
        context = {
            "user_name": user_name,
            "class_name": class_name,
            "amount": f"${amount:.2f}",
            "payment_id": payment_id,
            "payment_method": payment_method,
            "paid_at": (paid_at or datetime.now()).strftime("%B %d, %Y"),
        }

        html_content = self._render_template("payment_confirmation.html", context)
        return self._send_email(
            to_email=to_email,
            subject=f"Payment Confirmation - {class_name}",
            html_content=html_content,
        )

    def send_class_enrollment(
        self,
        to_email: str,
        user_name: str,
        class_name: str,
        schedule: str,
        location: str,
    ) -> bool:
        """Send enrollment confirmation email."""
        context = {
            "user_name": user_name,
            "class_name": class_name,
            "schedule": schedule,
            "location": location,
        }

        html_content = self._render_template("class_enrollment.html", context)
        return self._send_email(
            to_email=to_email,
            subject=f"You're enrolled: {class_name}",
            html_content=html_content,
        )

    def send_class_reminder(
        self,
        to_email: str,
        user_name: str,
        class_name: str,
        starts_at: datetime,
        location: str,
    ) -> bool:
        context = {
            "user_name": user_name,
            "class_name": class_name,
            "starts_at": starts_at.strftime("%A, %B %d at %I:%M %p"),
            "location": location,
        }

        html_content = self._render_template("class_reminder.html", context)
        return self._send_email(
            to_email=to_email,
            subject=f"Reminder: {class_name} is coming up",
            html_content=html_content,
        )

    def send_attendance_update(
        self,
        to_email: str,
        user_name: str,
        class_name: str,
        session_date: date,
        status: str,
    ) -> bool:
        """Tell a student how their attendance was recorded for a session."""
        context = {
            "user_name": user_name,
            "class_name": class_name,
            "session_date": session_date.strftime("%B %d, %Y"),
            "status": status,
        }

        html_content = self._render_template("attendance_update.html", context)
        return self._send_email(
            to_email=to_email,
            subject=f"Attendance recorded: {class_name}",
            html_content=html_content,
        )


# Singleton instance
email_service = EmailService()
