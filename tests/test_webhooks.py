"""Tests for the payment gateway callback endpoint."""

import asyncio
import time
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.class_ import Class
from app.models.enrollment import Enrollment, EnrollmentStatus, build_idempotency_key
from app.models.payment import Payment
from app.models.user import Role, User
from app.services import enrollment_service
from app.tasks import email_tasks
from core.config import config
from core.logging import MASK

pytestmark = pytest.mark.asyncio

CALLBACK_URL = "/api/v1/payments/callback"


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


async def load_class(session_factory, class_id: str) -> Class:
    async with session_factory() as session:
        return await session.get(Class, class_id)


@pytest.fixture
def queued_emails(monkeypatch):
    """Record notification enqueues instead of running the tasks."""
    calls = []
    monkeypatch.setattr(
        email_tasks.send_payment_confirmation_email,
        "delay",
        lambda **kwargs: calls.append(("payment_confirmation", kwargs)),
    )
    monkeypatch.setattr(
        email_tasks.send_class_enrollment_email,
        "delay",
        lambda **kwargs: calls.append(("class_enrollment", kwargs)),
    )
    return calls


class TestPaymentCallbackSuccess:
    """Tests for a successful payment callback."""

    async def test_enrolls_student(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that a valid callback seats the student and records both rows."""
        body = callback_body(test_class.id, student_user.id, payment_id="pay_001")

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        data = payload["data"]
        assert data["transactionId"] == "pay_001"
        assert data["enrollmentId"] == build_idempotency_key(
            student_user.id, test_class.id, "pay_001"
        )
        assert data["duplicate"] is False
        assert Decimal(data["amount"]) == Decimal("50")
        assert data["classDetails"]["id"] == test_class.id
        assert data["classDetails"]["enrolled"] == 1

        class_obj = await load_class(session_factory, test_class.id)
        assert class_obj.enrolled == 1
        assert class_obj.enrolled_students == [student_user.id]
        assert class_obj.version_id == test_class.version_id + 1

        async with session_factory() as session:
            enrollment = await session.get(Enrollment, data["enrollmentId"])
            payment = await session.get(Payment, "pay_001")
        assert enrollment.status == EnrollmentStatus.ACTIVE
        assert enrollment.payment_id == "pay_001"
        assert payment.amount == Decimal("50.00")
        assert payment.idempotency_key == enrollment.id
        assert payment.currency == config.PAYMENT_CURRENCY

    async def test_queues_notifications_after_commit(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that confirmation and enrollment emails are queued once."""
        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id)
        )

        assert response.status_code == 200
        kinds = [kind for kind, _ in queued_emails]
        assert kinds == ["payment_confirmation", "class_enrollment"]
        assert queued_emails[0][1]["user_email"] == student_user.email
        assert queued_emails[1][1]["class_name"] == test_class.name

    async def test_enqueue_failure_does_not_fail_callback(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        monkeypatch,
    ):
        """Test that a broker outage does not roll back the enrollment."""

        def broken_delay(**kwargs):
            raise ConnectionError("broker unavailable")

        monkeypatch.setattr(email_tasks.send_payment_confirmation_email, "delay", broken_delay)

        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id)
        )

        assert response.status_code == 200
        assert (await load_class(session_factory, test_class.id)).enrolled == 1

    async def test_masks_transaction_details(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that card data is masked before the payment is stored."""
        body = callback_body(
            test_class.id,
            student_user.id,
            payment_id="pay_card",
            transactionDetails={"cardNumber": "4111111111111111", "last4": "1111"},
        )

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 200
        async with session_factory() as session:
            payment = await session.get(Payment, "pay_card")
        assert payment.transaction_details["cardNumber"] == MASK
        assert payment.transaction_details["last4"] == "1111"


class TestPaymentCallbackIdempotency:
    """Tests for redelivered callbacks."""

    async def test_replay_returns_stored_result(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that a redelivered callback changes nothing and reports a duplicate."""
        body = callback_body(test_class.id, student_user.id, payment_id="pay_replay")

        first = await client.post(CALLBACK_URL, json=body)
        second = await client.post(CALLBACK_URL, json=body)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["data"]["duplicate"] is True
        assert second.json()["data"]["enrollmentId"] == first.json()["data"]["enrollmentId"]
        assert second.json()["data"]["amount"] == first.json()["data"]["amount"]

        assert (await load_class(session_factory, test_class.id)).enrolled == 1
        assert await count_rows(session_factory, Payment) == 1
        assert await count_rows(session_factory, Enrollment) == 1
        # Notifications only for the first delivery
        assert len(queued_emails) == 2

    @pytest.mark.parametrize("capacity", [1, 20], ids=["class_full", "already_enrolled"])
    async def test_late_redelivery_replays_instead_of_rejecting(
        self,
        client: AsyncClient,
        session_factory,
        create_test_class,
        student_user: User,
        callback_body,
        queued_emails,
        monkeypatch,
        capacity,
    ):
        """Test a redelivery that looked up the payment before a concurrent delivery committed it."""
        class_obj = await create_test_class(capacity=capacity)
        body = callback_body(class_obj.id, student_user.id, payment_id="pay_late")
        first = await client.post(CALLBACK_URL, json=body)
        assert first.status_code == 200

        real_get_by_id = Payment.get_by_id
        lookups = []

        async def not_yet_committed(db_session, id):
            lookups.append(id)
            if len(lookups) == 1:
                return None
            return await real_get_by_id(db_session, id)

        monkeypatch.setattr(Payment, "get_by_id", not_yet_committed)

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 200
        assert response.json()["data"]["duplicate"] is True
        assert response.json()["data"]["enrollmentId"] == first.json()["data"]["enrollmentId"]
        assert len(lookups) == 2
        assert (await load_class(session_factory, class_obj.id)).enrolled == 1
        assert await count_rows(session_factory, Enrollment) == 1
        assert len(queued_emails) == 2

    async def test_second_payment_for_full_class_still_rejected(
        self,
        client: AsyncClient,
        create_test_class,
        create_test_user,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that the replay recheck does not hide a real capacity rejection."""
        class_obj = await create_test_class(capacity=1)
        other = await create_test_user(email="other@example.com", role=Role.STUDENT)

        await client.post(
            CALLBACK_URL, json=callback_body(class_obj.id, student_user.id, payment_id="pay_a")
        )
        response = await client.post(
            CALLBACK_URL, json=callback_body(class_obj.id, other.id, payment_id="pay_b")
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/class-full"

    async def test_replay_after_user_removed(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
        monkeypatch,
    ):
        """Test that a redelivery still replays when the paying user can no longer be loaded."""
        body = callback_body(test_class.id, student_user.id, payment_id="pay_gone")
        first = await client.post(CALLBACK_URL, json=body)

        real_get = AsyncSession.get

        async def without_users(self, entity, ident, **kwargs):
            if entity is User:
                return None
            return await real_get(self, entity, ident, **kwargs)

        monkeypatch.setattr(AsyncSession, "get", without_users)

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 200
        assert response.json()["data"]["duplicate"] is True
        assert response.json()["data"]["transactionId"] == first.json()["data"]["transactionId"]

    async def test_payment_id_reused_for_other_class(
        self,
        client: AsyncClient,
        session_factory,
        create_test_class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that a payment id cannot be replayed against a different class."""
        first_class = await create_test_class()
        second_class = await create_test_class(name="Hip Hop Fundamentals")

        await client.post(
            CALLBACK_URL, json=callback_body(first_class.id, student_user.id, payment_id="pay_x")
        )
        response = await client.post(
            CALLBACK_URL, json=callback_body(second_class.id, student_user.id, payment_id="pay_x")
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/invalid-payload"
        assert (await load_class(session_factory, second_class.id)).enrolled == 0


class TestPaymentCallbackValidation:
    """Tests for rejected callbacks."""

    async def test_tampered_body_rejected(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
    ):
        """Test that changing any signed field invalidates the signature."""
        body = callback_body(test_class.id, student_user.id)
        body["paymentMethod"] = "cash"

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": {"code": "payment/invalid-signature", "message": "Invalid signature"},
        }
        assert await count_rows(session_factory, Payment) == 0

    async def test_missing_secret_fails_closed(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
        monkeypatch,
    ):
        """Test that callbacks are rejected while no webhook secret is configured."""
        body = callback_body(test_class.id, student_user.id)
        monkeypatch.setattr(config, "PAYMENT_WEBHOOK_SECRET", "")

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/invalid-signature"

    @pytest.mark.parametrize("offset_ms", [-6 * 60 * 1000, 6 * 60 * 1000])
    async def test_stale_timestamp_rejected(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
        offset_ms: int,
    ):
        """Test that timestamps more than five minutes off are rejected."""
        body = callback_body(
            test_class.id, student_user.id, timestamp=int(time.time() * 1000) + offset_ms
        )

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/invalid-timestamp"

    async def test_missing_field_rejected(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
    ):
        """Test that a body without userId fails schema validation."""
        body = callback_body(test_class.id, student_user.id)
        del body["userId"]

        response = await client.post(CALLBACK_URL, json=body)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "payment/invalid-payload"
        assert any(e["field"] == "userId" for e in error["details"]["errors"])

    async def test_negative_amount_rejected(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
    ):
        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id, amount=-5)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/invalid-payload"

    async def test_non_json_body_rejected(self, client: AsyncClient):
        response = await client.post(
            CALLBACK_URL,
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/invalid-payload"


class TestPaymentCallbackBusinessRules:
    """Tests for callbacks refused by the enrollment rules."""

    async def test_class_not_found(
        self, client: AsyncClient, student_user: User, callback_body
    ):
        response = await client.post(
            CALLBACK_URL, json=callback_body("no-such-class", student_user.id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/class-not-found"

    async def test_inactive_class_not_found(
        self,
        client: AsyncClient,
        create_test_class,
        student_user: User,
        callback_body,
    ):
        class_obj = await create_test_class(is_active=False)

        response = await client.post(
            CALLBACK_URL, json=callback_body(class_obj.id, student_user.id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/class-not-found"

    async def test_user_not_found(
        self, client: AsyncClient, test_class: Class, callback_body
    ):
        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, "no-such-user")
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "payment/user-not-found"

    async def test_class_full(
        self,
        client: AsyncClient,
        session_factory,
        create_test_class,
        student_user: User,
        callback_body,
    ):
        """Test that a full class refuses the enrollment and records nothing."""
        class_obj = await create_test_class(
            capacity=1, enrolled=1, enrolled_students=["someone-else"]
        )

        response = await client.post(
            CALLBACK_URL, json=callback_body(class_obj.id, student_user.id)
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "payment/class-full"
        assert error["details"] == {"capacity": 1, "enrolled": 1}
        assert await count_rows(session_factory, Payment) == 0

    async def test_already_enrolled(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that a second payment for the same class is refused."""
        first = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id, payment_id="pay_1")
        )
        second = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id, payment_id="pay_2")
        )

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["error"]["code"] == "payment/already-enrolled"
        assert (await load_class(session_factory, test_class.id)).enrolled == 1
        assert await count_rows(session_factory, Payment) == 1

    async def test_amount_mismatch_mutates_nothing(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
    ):
        """Test that an underpayment leaves class, enrollments and payments untouched."""
        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id, amount=40)
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "payment/invalid-amount"
        assert error["details"] == {"expected": "50.00", "received": "40"}

        class_obj = await load_class(session_factory, test_class.id)
        assert class_obj.enrolled == 0
        assert class_obj.enrolled_students == []
        assert class_obj.version_id == test_class.version_id
        assert await count_rows(session_factory, Enrollment) == 0
        assert await count_rows(session_factory, Payment) == 0


class TestPaymentCallbackConcurrency:
    """Tests for simultaneous callbacks competing for seats."""

    async def test_capacity_never_exceeded(
        self,
        client: AsyncClient,
        session_factory,
        create_test_class,
        create_test_user,
        callback_body,
        queued_emails,
    ):
        """Test that with capacity 2 and 5 concurrent payers exactly 2 are seated."""
        class_obj = await create_test_class(capacity=2)
        students = [
            await create_test_user(f"dancer{i}@example.com", f"Dancer {i}", Role.STUDENT)
            for i in range(5)
        ]

        responses = await asyncio.gather(
            *[
                client.post(
                    CALLBACK_URL,
                    json=callback_body(class_obj.id, s.id, payment_id=f"pay_race_{i}"),
                )
                for i, s in enumerate(students)
            ]
        )

        succeeded = [r for r in responses if r.status_code == 200]
        refused = [r for r in responses if r.status_code != 200]
        assert len(succeeded) == 2
        assert all(r.json()["error"]["code"] == "payment/class-full" for r in refused)

        class_after = await load_class(session_factory, class_obj.id)
        assert class_after.enrolled == 2
        assert len(class_after.enrolled_students) == 2
        assert len(set(class_after.enrolled_students)) == 2
        assert await count_rows(session_factory, Enrollment) == 2
        assert await count_rows(session_factory, Payment) == 2

    async def test_concurrent_redelivery_enrolls_once(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        queued_emails,
    ):
        """Test that the same callback delivered three times at once seats the student once."""
        body = callback_body(test_class.id, student_user.id, payment_id="pay_dup")

        responses = await asyncio.gather(
            *[client.post(CALLBACK_URL, json=body) for _ in range(3)]
        )

        assert all(r.status_code == 200 for r in responses)
        duplicates = [r.json()["data"]["duplicate"] for r in responses]
        assert duplicates.count(False) == 1
        assert (await load_class(session_factory, test_class.id)).enrolled == 1
        assert await count_rows(session_factory, Payment) == 1


class TestPaymentCallbackFailures:
    """Tests for rate limiting and infrastructure failures."""

    async def test_rate_limited(self, client: AsyncClient, monkeypatch):
        """Test that callers beyond the per-minute limit get 429."""
        monkeypatch.setattr(config, "WEBHOOK_RATE_LIMIT_PER_MINUTE", 2)

        responses = [await client.post(CALLBACK_URL, json={}) for _ in range(5)]

        limited = [r for r in responses if r.status_code == 429]
        assert limited
        assert limited[0].json()["error"]["code"] == "payment/rate-limit-exceeded"

    async def test_rate_limit_keyed_by_forwarded_ip(self, client: AsyncClient, monkeypatch):
        """Test that different forwarded clients have separate budgets."""
        monkeypatch.setattr(config, "WEBHOOK_RATE_LIMIT_PER_MINUTE", 1)

        first = await client.post(
            CALLBACK_URL, json={}, headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}
        )
        second = await client.post(
            CALLBACK_URL, json={}, headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"}
        )

        assert first.status_code == 400
        assert second.status_code == 400

    async def test_timeout_is_retryable(
        self,
        client: AsyncClient,
        session_factory,
        test_class: Class,
        student_user: User,
        callback_body,
        monkeypatch,
    ):
        """Test that a transaction exceeding its bound maps to a retryable 503."""

        async def slow_get_by_id(db_session, id, with_teacher=False):
            await asyncio.sleep(5)

        monkeypatch.setattr(config, "TRANSACTION_TIMEOUT_SECONDS", 0.5)
        monkeypatch.setattr(Class, "get_by_id", slow_get_by_id)

        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id)
        )

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "payment/transaction-failed"
        assert error["details"]["retryable"] is True
        assert await count_rows(session_factory, Payment) == 0

    async def test_unexpected_error_returns_error_id(
        self,
        client: AsyncClient,
        test_class: Class,
        student_user: User,
        callback_body,
        monkeypatch,
    ):
        """Test that unexpected failures answer 500 with an opaque correlation id."""

        async def broken_enroll(db_session, payload):
            raise RuntimeError("database exploded")

        monkeypatch.setattr(enrollment_service, "_enroll", broken_enroll)

        response = await client.post(
            CALLBACK_URL, json=callback_body(test_class.id, student_user.id)
        )

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "payment/transaction-failed"
        assert len(error["details"]["errorId"]) == 36
        assert "exploded" not in response.text
