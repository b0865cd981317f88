"""Tests for attendance API endpoints."""

from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.attendance import Attendance, AttendanceStatus
from app.models.class_ import Class
from app.models.user import User
from app.tasks import email_tasks

pytestmark = pytest.mark.asyncio

SESSION_DATE = date(2026, 3, 2)


@pytest.fixture
async def two_students(create_test_user, test_class: Class, enroll_student):
    """Two students seated in ``test_class``."""
    students = []
    for name in ("Ana", "Ben"):
        student = await create_test_user(f"{name.lower()}@example.com", name)
        await enroll_student(test_class, student)
        students.append(student)
    return students


@pytest.fixture
def attendance_emails(monkeypatch):
    calls = []
    monkeypatch.setattr(
        email_tasks.send_attendance_update_email,
        "delay",
        lambda **kwargs: calls.append(kwargs),
    )
    return calls


class TestMarkAttendance:
    """Tests for POST /api/v1/attendance/classes/{class_id} endpoint."""

    async def test_unlisted_students_marked_absent(
        self,
        client: AsyncClient,
        test_class: Class,
        two_students,
        teacher_headers: dict,
        attendance_emails,
    ):
        ana, ben = two_students

        response = await client.post(
            f"/api/v1/attendance/classes/{test_class.id}",
            json={"session_date": SESSION_DATE.isoformat(), "present_student_ids": [ana.id]},
            headers=teacher_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["present"] == [ana.id]
        assert data["absent"] == [ben.id]
        assert sorted(data["changed"]) == sorted([ana.id, ben.id])
        assert {c["status"] for c in attendance_emails} == {"present", "absent"}

    async def test_remark_only_notifies_changes(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        test_class: Class,
        two_students,
        teacher_headers: dict,
        attendance_emails,
    ):
        """Test that re-marking a session updates records in place."""
        ana, ben = two_students
        url = f"/api/v1/attendance/classes/{test_class.id}"

        await client.post(
            url,
            json={"session_date": SESSION_DATE.isoformat(), "present_student_ids": [ana.id]},
            headers=teacher_headers,
        )
        attendance_emails.clear()
        response = await client.post(
            url,
            json={
                "session_date": SESSION_DATE.isoformat(),
                "present_student_ids": [ana.id, ben.id],
            },
            headers=teacher_headers,
        )

        assert response.status_code == 201
        assert response.json()["changed"] == [ben.id]
        assert [c["user_email"] for c in attendance_emails] == [ben.email]

        records = await Attendance.get_for_session(db_session, test_class.id, SESSION_DATE)
        assert len(records) == 2
        assert records[ben.id].status == AttendanceStatus.PRESENT

    async def test_unknown_student_rejected(
        self,
        client: AsyncClient,
        test_class: Class,
        two_students,
        student_user: User,
        teacher_headers: dict,
    ):
        response = await client.post(
            f"/api/v1/attendance/classes/{test_class.id}",
            json={
                "session_date": SESSION_DATE.isoformat(),
                "present_student_ids": [student_user.id],
            },
            headers=teacher_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "STUDENT_NOT_ENROLLED"
        assert response.json()["data"] == {"student_ids": [student_user.id]}

    async def test_student_cannot_mark(
        self, client: AsyncClient, test_class: Class, student_headers: dict
    ):
        response = await client.post(
            f"/api/v1/attendance/classes/{test_class.id}",
            json={"session_date": SESSION_DATE.isoformat(), "present_student_ids": []},
            headers=student_headers,
        )

        assert response.status_code == 403

    async def test_admin_marks_any_class(
        self,
        client: AsyncClient,
        test_class: Class,
        two_students,
        admin_headers: dict,
        attendance_emails,
    ):
        response = await client.post(
            f"/api/v1/attendance/classes/{test_class.id}",
            json={"session_date": SESSION_DATE.isoformat()},
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["present"] == []
        assert len(response.json()["absent"]) == 2


class TestAttendanceQueries:
    """Tests for attendance read endpoints."""

    async def test_class_attendance_grouped_by_session(
        self,
        client: AsyncClient,
        test_class: Class,
        two_students,
        teacher_headers: dict,
        attendance_emails,
    ):
        ana, ben = two_students
        url = f"/api/v1/attendance/classes/{test_class.id}"
        for day, present in ((date(2026, 3, 2), [ana.id]), (date(2026, 3, 9), [ben.id])):
            await client.post(
                url,
                json={"session_date": day.isoformat(), "present_student_ids": present},
                headers=teacher_headers,
            )

        response = await client.get(url, headers=teacher_headers)

        assert response.status_code == 200
        sessions = response.json()["sessions"]
        assert [s["session_date"] for s in sessions] == ["2026-03-09", "2026-03-02"]
        assert sessions[0] == {
            "session_date": "2026-03-09",
            "present": [ben.id],
            "absent": [ana.id],
        }

    async def test_my_attendance_rate(
        self,
        client: AsyncClient,
        test_class: Class,
        two_students,
        teacher_headers: dict,
        headers_for,
        attendance_emails,
    ):
        ana, _ = two_students
        url = f"/api/v1/attendance/classes/{test_class.id}"
        for day, present in (
            (date(2026, 3, 2), [ana.id]),
            (date(2026, 3, 9), []),
            (date(2026, 3, 16), [ana.id]),
            (date(2026, 3, 23), [ana.id]),
        ):
            await client.post(
                url,
                json={"session_date": day.isoformat(), "present_student_ids": present},
                headers=teacher_headers,
            )

        response = await client.get("/api/v1/attendance/my", headers=headers_for(ana))

        assert response.status_code == 200
        data = response.json()
        assert data["total_sessions"] == 4
        assert data["sessions_attended"] == 3
        assert data["attendance_rate"] == 75.0
        assert data["records"][0]["session_date"] == "2026-03-23"

    async def test_my_attendance_empty(self, client: AsyncClient, student_headers: dict):
        response = await client.get("/api/v1/attendance/my", headers=student_headers)

        assert response.json()["attendance_rate"] == 0.0
        assert response.json()["records"] == []
