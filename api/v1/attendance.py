"""Attendance API endpoints for tracking student attendance."""

from collections import defaultdict
from typing import Dict, List

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_staff, get_current_user
from api.v1.classes import ensure_can_manage
from app.models.attendance import Attendance, AttendanceStatus
from app.models.class_ import Class
from app.models.user import User
from app.schemas.attendance import (
    AttendanceMark,
    AttendanceRecordResponse,
    ClassAttendanceResponse,
    MarkAttendanceResponse,
    MyAttendanceResponse,
    SessionAttendance,
)
from app.tasks.email_tasks import send_attendance_update_email
from core.db import get_db
from core.exceptions.base import BadRequestException, ConflictException, NotFoundException
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/attendance", tags=["Attendance"])


async def get_managed_class(db_session: AsyncSession, class_id: str, current_user: User) -> Class:
    class_obj = await Class.get_by_id(db_session, class_id)
    if not class_obj:
        raise NotFoundException(message="Class not found")
    ensure_can_manage(class_obj, current_user)
    return class_obj


@router.post(
    "/classes/{class_id}",
    response_model=MarkAttendanceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def mark_attendance(
    class_id: str,
    data: AttendanceMark,
    db_session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff),
) -> MarkAttendanceResponse:
    """
    Record one session's attendance. Teacher of the class or admin only.

    Every enrolled student not listed as present is marked absent.
    Students whose status changed are notified by email.
    """
    class_obj = await get_managed_class(db_session, class_id, current_user)
    enrolled = list(class_obj.enrolled_students or [])

    unknown = sorted(set(data.present_student_ids) - set(enrolled))
    if unknown:
        raise BadRequestException(
            message="Some students are not enrolled in this class",
            error_code="STUDENT_NOT_ENROLLED",
            data={"student_ids": unknown},
        )

    present = set(data.present_student_ids)
    statuses = {
        user_id: AttendanceStatus.PRESENT if user_id in present else AttendanceStatus.ABSENT
        for user_id in enrolled
    }

    logger.info(
        f"Marking attendance for {len(statuses)} students in class {class_id} "
        f"on {data.session_date}"
    )

    try:
        changed = await Attendance.mark_session(
            db_session,
            class_id=class_id,
            session_date=data.session_date,
            statuses=statuses,
            marked_by=current_user.id,
            organization_id=class_obj.organization_id,
        )
        await db_session.commit()
    except IntegrityError:
        await db_session.rollback()
        raise ConflictException(message="Attendance for this session was updated concurrently")

    students = await User.get_by_ids(db_session, changed)
    for student in students:
        try:
            send_attendance_update_email.delay(
                user_email=student.email,
                user_name=student.name,
                class_name=class_obj.name,
                session_date=data.session_date.isoformat(),
                status=statuses[student.id].value,
            )
        except Exception as e:
            logger.error(f"Failed to queue attendance email for {student.id}: {str(e)}")

    return MarkAttendanceResponse(
        class_id=class_id,
        session_date=data.session_date,
        present=sorted(u for u, s in statuses.items() if s == AttendanceStatus.PRESENT),
        absent=sorted(u for u, s in statuses.items() if s == AttendanceStatus.ABSENT),
        changed=sorted(changed),
    )


@router.get("/classes/{class_id}", response_model=ClassAttendanceResponse)
async def get_class_attendance(
    class_id: str,
    db_session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_staff),
) -> ClassAttendanceResponse:
    """Attendance of a class grouped by session date, newest first."""
    await get_managed_class(db_session, class_id, current_user)
    records = await Attendance.get_by_class(db_session, class_id)

    by_date: Dict = defaultdict(lambda: {"present": [], "absent": []})
    for record in records:
        by_date[record.session_date][record.status.value].append(record.user_id)

    sessions: List[SessionAttendance] = [
        SessionAttendance(session_date=session_date, **groups)
        for session_date, groups in sorted(by_date.items(), reverse=True)
    ]
    return ClassAttendanceResponse(class_id=class_id, sessions=sessions)


@router.get("/my", response_model=MyAttendanceResponse)
async def get_my_attendance(
    db_session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MyAttendanceResponse:
    """The current user's attendance records and overall rate."""
    records = await Attendance.get_by_user(db_session, current_user.id)
    attended = sum(1 for r in records if r.status == AttendanceStatus.PRESENT)

    return MyAttendanceResponse(
        user_id=current_user.id,
        total_sessions=len(records),
        sessions_attended=attended,
        attendance_rate=round(attended / len(records) * 100, 2) if records else 0.0,
        records=[
            AttendanceRecordResponse(
                class_id=r.class_id, session_date=r.session_date, status=r.status.value
            )
            for r in records
        ],
    )
