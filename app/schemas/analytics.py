"""Admin analytics schemas."""

from decimal import Decimal
from typing import Dict, List

from app.schemas.base import BaseSchema


class ClassStats(BaseSchema):
    class_id: str
    name: str
    style: str
    capacity: int
    enrolled: int
    fill_rate: float
    attendance_rate: float


class TeacherStats(BaseSchema):
    teacher_id: str
    name: str
    class_count: int
    total_students: int


class MonthlyRevenue(BaseSchema):
    month: str  # YYYY-MM
    revenue: Decimal
    payments: int


class AnalyticsResponse(BaseSchema):
    users_by_role: Dict[str, int]
    active_classes: int
    active_enrollments: int
    total_revenue: Decimal
    average_fill_rate: float
    classes: List[ClassStats]
    teachers: List[TeacherStats]
    monthly_revenue: List[MonthlyRevenue]
