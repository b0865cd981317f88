from app.models.attendance import Attendance, AttendanceStatus
from app.models.class_ import Class, ClassLevel, DanceStyle
from app.models.enrollment import Enrollment, EnrollmentStatus, build_idempotency_key
from app.models.organization import Organization
from app.models.payment import Payment, PaymentStatus
from app.models.studio_rental import RentalStatus, StudioRental, StudioRentalSlot
from app.models.user import Role, User
from app.models.webhook_attempt import WebhookAttempt

__all__ = [
    # User
    "User",
    "Role",
    # Organization
    "Organization",
    # Class
    "Class",
    "ClassLevel",
    "DanceStyle",
    # Enrollment
    "Enrollment",
    "EnrollmentStatus",
    "build_idempotency_key",
    # Payment
    "Payment",
    "PaymentStatus",
    # Attendance
    "Attendance",
    "AttendanceStatus",
    # Studio rental
    "StudioRental",
    "StudioRentalSlot",
    "RentalStatus",
    # Rate limiting
    "WebhookAttempt",
]
