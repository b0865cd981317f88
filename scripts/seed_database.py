"""
Database seeding script to populate tables with sample studio data.

Usage:
    python scripts/seed_database.py
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.attendance import Attendance
from app.models.class_ import Class, ClassLevel, DanceStyle
from app.models.enrollment import Enrollment
from app.models.organization import Organization
from app.models.payment import Payment
from app.models.studio_rental import StudioRental, StudioRentalSlot
from app.models.user import Role, User
from app.models.webhook_attempt import WebhookAttempt
from core.db import async_session_factory
from core.logging import get_logger, setup_logging

logger = get_logger(__name__)

STUDIO_SLUG = "dance-studio"

SAMPLE_CLASSES = [
    {
        "name": "Introduction to Ballet",
        "description": "Perfect for beginners looking to start their ballet journey. Learn basic positions and movements.",
        "style": DanceStyle.BALLET,
        "level": ClassLevel.BEGINNER,
        "schedule": "Monday and Wednesday, 9:00 AM - 10:30 AM",
        "capacity": 15,
        "price": Decimal("50.00"),
    },
    {
        "name": "Advanced Contemporary",
        "description": "Advanced level contemporary dance class for experienced dancers. Explore complex choreography and expression.",
        "style": DanceStyle.CONTEMPORARY,
        "level": ClassLevel.ADVANCED,
        "schedule": "Tuesday and Thursday, 5:00 PM - 6:30 PM",
        "capacity": 12,
        "price": Decimal("45.00"),
    },
    {
        "name": "Hip Hop Fundamentals",
        "description": "Learn the basics of hip hop dance, including popping, locking, and basic footwork.",
        "style": DanceStyle.HIP_HOP,
        "level": ClassLevel.BEGINNER,
        "schedule": "Monday and Friday, 6:00 PM - 7:00 PM",
        "capacity": 20,
        "price": Decimal("40.00"),
    },
    {
        "name": "Intermediate Jazz",
        "description": "Build upon your jazz dance foundation with more complex combinations and techniques.",
        "style": DanceStyle.JAZZ,
        "level": ClassLevel.INTERMEDIATE,
        "schedule": "Wednesday and Friday, 4:00 PM - 5:30 PM",
        "capacity": 15,
        "price": Decimal("45.00"),
    },
    {
        "name": "Ballroom Dance",
        "description": "Learn classic ballroom dances including waltz, foxtrot, and tango.",
        "style": DanceStyle.BALLROOM,
        "level": ClassLevel.BEGINNER,
        "schedule": "Saturday, 2:00 PM - 4:00 PM",
        "capacity": 24,
        "price": Decimal("55.00"),
    },
    {
        "name": "Salsa Social Dancing",
        "description": "Master the art of salsa dancing with emphasis on social dancing skills.",
        "style": DanceStyle.SALSA,
        "level": ClassLevel.INTERMEDIATE,
        "schedule": "Friday, 7:00 PM - 8:30 PM",
        "capacity": 30,
        "price": Decimal("45.00"),
    },
    {
        "name": "Advanced Tap Workshop",
        "description": "Advanced tap dancing techniques and complex rhythm combinations.",
        "style": DanceStyle.TAP,
        "level": ClassLevel.ADVANCED,
        "schedule": "Thursday, 6:00 PM - 7:30 PM",
        "capacity": 12,
        "price": Decimal("40.00"),
    },
    {
        "name": "Breakdancing Basics",
        "description": "Introduction to breakdancing fundamentals and basic power moves.",
        "style": DanceStyle.BREAKDANCING,
        "level": ClassLevel.BEGINNER,
        "schedule": "Saturday, 11:00 AM - 12:30 PM",
        "capacity": 15,
        "price": Decimal("45.00"),
    },
]


class DatabaseSeeder:
    """Database seeding utility."""

    def __init__(self):
        self.organization = None
        self.teachers = []
        self.students = []
        self.classes = []

    async def clear_database(self, session: AsyncSession):
        """Clear studio data in reverse dependency order; the studio row itself is kept."""
        logger.info("Clearing existing data...")

        for model in (
            WebhookAttempt,
            StudioRentalSlot,
            StudioRental,
            Attendance,
            Payment,
            Enrollment,
            Class,
            User,
        ):
            await session.execute(delete(model))
        await session.commit()

        logger.info("Database cleared successfully")

    async def seed_all(self):
        """Seed all tables with sample data."""
        async with async_session_factory() as session:
            logger.info("Starting database seeding...")

            await self.clear_database(session)

            await self.seed_organization(session)
            await self.seed_users(session)
            await self.seed_classes(session)

            await session.commit()
            logger.info("Database seeding completed successfully!")

    async def seed_organization(self, session: AsyncSession):
        logger.info("Seeding organization...")
        existing = await Organization.get_by_slug(session, STUDIO_SLUG)
        if existing:
            self.organization = existing
            return

        self.organization = Organization(
            id=str(uuid4()),
            name="Dance Studio",
            slug=STUDIO_SLUG,
            email="hello@dancestudio.com",
        )
        session.add(self.organization)
        await session.flush()

    async def seed_users(self, session: AsyncSession):
        """Seed users with different roles."""
        logger.info("Seeding users...")
        org_id = self.organization.id

        session.add(
            User(
                id=str(uuid4()),
                email="admin@dancestudio.com",
                name="Studio Admin",
                role=Role.ADMIN,
                organization_id=org_id,
            )
        )

        for name in ("Maria Lopez", "James Carter"):
            teacher = User(
                id=str(uuid4()),
                email=f"{name.split()[0].lower()}@dancestudio.com",
                name=name,
                role=Role.TEACHER,
                organization_id=org_id,
            )
            self.teachers.append(teacher)
            session.add(teacher)

        for i in range(1, 11):
            student = User(
                id=str(uuid4()),
                email=f"student{i}@example.com",
                name=f"Student {i}",
                role=Role.STUDENT,
                organization_id=org_id,
            )
            self.students.append(student)
            session.add(student)

        await session.flush()
        logger.info(f"Created {1 + len(self.teachers) + len(self.students)} users")

    async def seed_classes(self, session: AsyncSession):
        """Seed the sample dance classes, alternating teachers."""
        logger.info("Seeding classes...")
        first_session = datetime.now(timezone.utc).replace(
            hour=18, minute=0, second=0, microsecond=0
        ) + timedelta(days=1)

        for i, data in enumerate(SAMPLE_CLASSES):
            class_ = Class(
                id=str(uuid4()),
                teacher_id=self.teachers[i % len(self.teachers)].id,
                location=f"Studio {chr(ord('A') + i % 3)}",
                starts_at=first_session + timedelta(days=i),
                duration_minutes=90,
                enrolled=0,
                enrolled_students=[],
                organization_id=self.organization.id,
                **data,
            )
            self.classes.append(class_)
            session.add(class_)

        await session.flush()
        logger.info(f"Created {len(self.classes)} classes")


async def main():
    """Main entry point for seeding."""
    setup_logging()
    seeder = DatabaseSeeder()
    await seeder.seed_all()


if __name__ == "__main__":
    asyncio.run(main())
