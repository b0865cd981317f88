"""Tests for the admin analytics endpoint."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from httpx import AsyncClient

from app.models.class_ import Class
from app.models.user import User
from app.services.analytics_service import bucket_revenue, month_keys

pytestmark = pytest.mark.asyncio


class TestAnalyticsHelpers:
    """Tests for revenue bucketing."""

    async def test_month_keys_cross_year(self):
        now = datetime(2026, 2, 10, tzinfo=timezone.utc)

        assert month_keys(4, now) == ["2025-11", "2025-12", "2026-01", "2026-02"]

    async def test_bucket_revenue(self):
        keys = ["2026-01", "2026-02"]
        payments = [
            (datetime(2026, 1, 5), Decimal("50.00")),
            (datetime(2026, 1, 20), Decimal("25.50")),
            (datetime(2025, 12, 31), Decimal("99.00")),
        ]

        buckets = bucket_revenue(payments, keys)

        assert [(b.month, b.revenue, b.payments) for b in buckets] == [
            ("2026-01", Decimal("75.50"), 2),
            ("2026-02", Decimal("0"), 0),
        ]


class TestGetAnalytics:
    """Tests for GET /api/v1/admin/analytics endpoint."""

    async def test_dashboard_totals(
        self,
        client: AsyncClient,
        create_test_class,
        create_test_user,
        enroll_student,
        admin_headers: dict,
        teacher_user: User,
    ):
        ballet = await create_test_class(capacity=4)
        await create_test_class(name="Tap Time", capacity=10, price=Decimal("30.00"))
        for i in range(2):
            student = await create_test_user(f"d{i}@example.com", f"Dancer {i}")
            await enroll_student(ballet, student)

        response = await client.get("/api/v1/admin/analytics", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["users_by_role"] == {"admin": 1, "teacher": 1, "student": 2}
        assert data["active_classes"] == 2
        assert data["active_enrollments"] == 2
        assert Decimal(data["total_revenue"]) == Decimal("100.00")
        assert data["average_fill_rate"] == 25.0
        assert data["teachers"] == [
            {
                "teacher_id": teacher_user.id,
                "name": "Maria Lopez",
                "class_count": 2,
                "total_students": 2,
            }
        ]
        assert len(data["monthly_revenue"]) == 6
        assert Decimal(data["monthly_revenue"][-1]["revenue"]) == Decimal("100.00")

    async def test_months_parameter(self, client: AsyncClient, admin_headers: dict):
        response = await client.get(
            "/api/v1/admin/analytics", params={"months": 12}, headers=admin_headers
        )

        assert len(response.json()["monthly_revenue"]) == 12

    async def test_months_out_of_range(self, client: AsyncClient, admin_headers: dict):
        response = await client.get(
            "/api/v1/admin/analytics", params={"months": 0}, headers=admin_headers
        )

        assert response.status_code == 422

    async def test_teacher_forbidden(
        self, client: AsyncClient, test_class: Class, teacher_headers: dict
    ):
        response = await client.get("/api/v1/admin/analytics", headers=teacher_headers)

        assert response.status_code == 403
