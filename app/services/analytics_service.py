"""Aggregates for the admin analytics dashboard."""

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.attendance import Attendance
from app.models.class_ import Class
from app.models.enrollment import Enrollment
from app.models.payment import Payment
from app.models.user import Role, User
from app.schemas.analytics import AnalyticsResponse, ClassStats, MonthlyRevenue, TeacherStats


def month_keys(months: int, now: datetime) -> List[str]:
    """``YYYY-MM`` keys of the last ``months`` months, oldest first, current month included."""
    keys = []
    year, month = now.year, now.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def bucket_revenue(
    payments: List[Tuple[datetime, Decimal]], keys: List[str]
) -> List[MonthlyRevenue]:
    revenue: Dict[str, Decimal] = {key: Decimal("0") for key in keys}
    counts: Dict[str, int] = {key: 0 for key in keys}
    for processed_at, amount in payments:
        key = processed_at.strftime("%Y-%m")
        if key in revenue:
            revenue[key] += Decimal(str(amount))
            counts[key] += 1
    return [MonthlyRevenue(month=key, revenue=revenue[key], payments=counts[key]) for key in keys]


async def get_dashboard(db_session: AsyncSession, months: int = 6) -> AnalyticsResponse:
    """Studio-wide totals, per-class and per-teacher stats, monthly revenue."""
    now = datetime.now(timezone.utc)

    result = await db_session.execute(
        select(Class)
        .where(Class.not_deleted())
        .order_by(Class.name)
    )
    classes = result.scalars().all()
    active_classes = [c for c in classes if c.is_active]

    attendance_rates = await Attendance.rate_by_class(db_session)
    class_stats = [
        ClassStats(
            class_id=c.id,
            name=c.name,
            style=c.style.value,
            capacity=c.capacity,
            enrolled=c.enrolled,
            fill_rate=c.fill_rate,
            attendance_rate=attendance_rates.get(c.id, 0.0),
        )
        for c in active_classes
    ]
    average_fill_rate = (
        round(sum(s.fill_rate for s in class_stats) / len(class_stats), 2)
        if class_stats
        else 0.0
    )

    by_teacher: Dict[str, List[Class]] = defaultdict(list)
    for c in active_classes:
        if c.teacher_id:
            by_teacher[c.teacher_id].append(c)
    teachers = await User.get_by_ids(db_session, list(by_teacher))
    teacher_stats = [
        TeacherStats(
            teacher_id=t.id,
            name=t.name,
            class_count=len(by_teacher[t.id]),
            total_students=sum(c.enrolled for c in by_teacher[t.id]),
        )
        for t in sorted(teachers, key=lambda t: t.name)
        if t.role == Role.TEACHER or t.role == Role.ADMIN
    ]

    keys = month_keys(months, now)
    first_month = datetime.strptime(keys[0], "%Y-%m").replace(tzinfo=timezone.utc)
    payments = await Payment.completed_since(db_session, first_month)

    return AnalyticsResponse(
        users_by_role=await User.count_by_role(db_session),
        active_classes=len(active_classes),
        active_enrollments=await Enrollment.count_active(db_session),
        total_revenue=await Payment.total_revenue(db_session),
        average_fill_rate=average_fill_rate,
        classes=class_stats,
        teachers=teacher_stats,
        monthly_revenue=bucket_revenue(payments, keys),
    )
