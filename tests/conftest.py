import os
import time
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Ensure critical settings exist before the app/config modules import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-change-me-please")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("TRANSACTION_TIMEOUT_SECONDS", "20")
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["SENDGRID_API_KEY"] = ""

from app.models.class_ import Class, ClassLevel, DanceStyle
from app.models.enrollment import Enrollment, EnrollmentStatus, build_idempotency_key
from app.models.payment import Payment, PaymentStatus
from app.models.user import Role, User
from app.services.webhook_signature import sign_payload
from app.utils.security import create_access_token
from core.config import config
from core.db import get_db, get_session_factory
from core.db.base import Base
from core.db.session import build_engine, build_session_factory
from main import app

# Use SQLite for testing
TEST_DATABASE_URL = config.DATABASE_URL

engine = build_engine(TEST_DATABASE_URL)
TestSessionLocal = build_session_factory(engine)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create and drop all tables for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for testing."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    """Factory for fresh sessions, e.g. to read state after a request."""
    return TestSessionLocal


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def create_test_user(db_session: AsyncSession):
    """Factory fixture to create users of any role."""

    async def _create_user(
        email: str, name: str = "Test User", role: Role = Role.STUDENT
    ) -> User:
        user = User(email=email, name=name, role=role, is_active=True)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest.fixture
async def admin_user(create_test_user) -> User:
    """Create an admin test user."""
    return await create_test_user("admin@example.com", "Admin User", Role.ADMIN)


@pytest.fixture
async def teacher_user(create_test_user) -> User:
    """Create a teacher test user."""
    return await create_test_user("teacher@example.com", "Maria Lopez", Role.TEACHER)


@pytest.fixture
async def student_user(create_test_user) -> User:
    """Create a student test user."""
    return await create_test_user("student@example.com", "Sam Student", Role.STUDENT)


def auth_headers_for(user: User) -> dict:
    """Bearer headers as issued by the identity provider."""
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value)}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    return auth_headers_for(admin_user)


@pytest.fixture
def teacher_headers(teacher_user: User) -> dict:
    return auth_headers_for(teacher_user)


@pytest.fixture
def student_headers(student_user: User) -> dict:
    return auth_headers_for(student_user)


@pytest.fixture
async def create_test_class(db_session: AsyncSession, teacher_user: User):
    """Factory fixture to create classes taught by ``teacher_user``."""

    async def _create_class(**overrides) -> Class:
        data = {
            "name": "Introduction to Ballet",
            "description": "Learn basic positions and movements.",
            "style": DanceStyle.BALLET,
            "level": ClassLevel.BEGINNER,
            "schedule": "Monday and Wednesday, 9:00 AM - 10:30 AM",
            "location": "Studio A",
            "capacity": 15,
            "price": Decimal("50.00"),
            "teacher_id": teacher_user.id,
            "enrolled": 0,
            "enrolled_students": [],
        }
        data.update(overrides)
        class_obj = Class(**data)
        db_session.add(class_obj)
        await db_session.commit()
        await db_session.refresh(class_obj)
        return class_obj

    return _create_class


@pytest.fixture
async def test_class(create_test_class) -> Class:
    """Create a test class."""
    return await create_test_class()


def now_ms() -> int:
    return int(time.time() * 1000)


@pytest.fixture
def callback_body():
    """Factory for signed payment callback bodies."""

    def _callback_body(
        class_id: str,
        user_id: str,
        payment_id: str = "pay_123",
        amount=50,
        sign: bool = True,
        **extra,
    ) -> dict:
        body = {
            "externalId": class_id,
            "userId": user_id,
            "paymentId": payment_id,
            "amount": amount,
            "paymentMethod": "card",
            "timestamp": now_ms(),
            **extra,
        }
        return sign_payload(body) if sign else body

    return _callback_body


@pytest.fixture
def enroll_student(db_session: AsyncSession):
    """Factory fixture that seats a student directly, as a processed callback would."""

    async def _enroll(class_obj: Class, user: User, payment_id: Optional[str] = None) -> Enrollment:
        payment_id = payment_id or f"pay_{user.id[:8]}"
        key = build_idempotency_key(user.id, class_obj.id, payment_id)
        class_obj.add_student(user.id)
        enrollment = Enrollment(
            id=key,
            user_id=user.id,
            class_id=class_obj.id,
            payment_id=payment_id,
            amount=class_obj.price,
            status=EnrollmentStatus.ACTIVE,
        )
        payment = Payment(
            id=payment_id,
            user_id=user.id,
            class_id=class_obj.id,
            amount=class_obj.price,
            currency="USD",
            status=PaymentStatus.COMPLETED,
            payment_method="card",
            transaction_details={},
            idempotency_key=key,
        )
        db_session.add_all([enrollment, payment])
        await db_session.commit()
        await db_session.refresh(class_obj)
        await db_session.refresh(enrollment)
        return enrollment

    return _enroll


@pytest.fixture
def headers_for():
    """Bearer headers for any user created inside a test."""
    return auth_headers_for
