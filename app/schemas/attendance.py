"""Attendance schemas."""

from datetime import date
from typing import List

from pydantic import Field

from app.schemas.base import BaseSchema


class AttendanceMark(BaseSchema):
    """Attendance for one session: everyone not listed is absent."""

    session_date: date
    present_student_ids: List[str] = Field(default_factory=list)


class SessionAttendance(BaseSchema):
    session_date: date
    present: List[str]
    absent: List[str]


class ClassAttendanceResponse(BaseSchema):
    class_id: str
    sessions: List[SessionAttendance]


class MarkAttendanceResponse(BaseSchema):
    class_id: str
    session_date: date
    present: List[str]
    absent: List[str]
    changed: List[str]  # Students whose status was created or changed


class AttendanceRecordResponse(BaseSchema):
    class_id: str
    session_date: date
    status: str


class MyAttendanceResponse(BaseSchema):
    user_id: str
    total_sessions: int
    sessions_attended: int
    attendance_rate: float
    records: List[AttendanceRecordResponse]
