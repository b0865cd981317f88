import enum
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    and_,
    func,
    or_,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship, selectinload

from core.db import Base, TimestampMixin, SoftDeleteMixin, OrganizationMixin

if TYPE_CHECKING:
    from app.models.user import User


class DanceStyle(str, enum.Enum):
    """Dance styles offered by the studio."""

    BALLET = "Ballet"
    CONTEMPORARY = "Contemporary"
    HIP_HOP = "Hip Hop"
    JAZZ = "Jazz"
    BALLROOM = "Ballroom"
    SALSA = "Salsa"
    TAP = "Tap"
    BREAKDANCING = "Breakdancing"


class ClassLevel(str, enum.Enum):
    """Skill level of a class."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Class(Base, TimestampMixin, SoftDeleteMixin, OrganizationMixin):
    """
    A dance class students pay to join.

    ``enrolled`` always equals ``len(enrolled_students)`` and never exceeds
    ``capacity``. Both are changed only through ``add_student`` and
    ``remove_student`` inside a transaction; ``version_id`` makes
    concurrent writers based on the same read fail instead of overwrite.
    """

    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    style: Mapped[DanceStyle] = mapped_column(
        Enum(DanceStyle, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    level: Mapped[ClassLevel] = mapped_column(
        Enum(ClassLevel, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        default=ClassLevel.BEGINNER,
        nullable=False,
    )
    teacher_id: Mapped[Optional[str]] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=True, index=True
    )

    # Schedule
    schedule: Mapped[str] = mapped_column(String(255), nullable=False, default="")  # "Monday and Wednesday, 9:00 AM"
    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    starts_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)

    # Capacity
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    enrolled: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    enrolled_students: Mapped[List[str]] = mapped_column(
        JSON, default=lambda: [], nullable=False
    )

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    teacher: Mapped[Optional["User"]] = relationship("User", foreign_keys=[teacher_id])

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        CheckConstraint("capacity > 0", name="capacity_positive"),
        CheckConstraint("price > 0", name="price_positive"),
        CheckConstraint(
            "enrolled >= 0 AND enrolled <= capacity", name="enrolled_within_capacity"
        ),
    )

    @property
    def has_capacity(self) -> bool:
        """Check if class has available spots."""
        return self.enrolled < self.capacity

    @property
    def available_spots(self) -> int:
        """Get number of available spots."""
        return max(0, self.capacity - self.enrolled)

    @property
    def fill_rate(self) -> float:
        return round(self.enrolled / self.capacity * 100, 2) if self.capacity else 0.0

    def is_taught_by(self, user_id: str) -> bool:
        return self.teacher_id is not None and self.teacher_id == user_id

    def has_student(self, user_id: str) -> bool:
        return user_id in (self.enrolled_students or [])

    def add_student(self, user_id: str) -> None:
        """Seat a student. Callers check capacity and duplicates first."""
        if not self.has_capacity:
            raise ValueError("Class is already full")
        if self.has_student(user_id):
            raise ValueError("Student is already in this class")
        # Reassign so the JSON column is flagged dirty
        self.enrolled_students = [*(self.enrolled_students or []), user_id]
        self.enrolled = len(self.enrolled_students)

    def remove_student(self, user_id: str) -> None:
        """Free a student's seat."""
        if not self.has_student(user_id):
            raise ValueError("Student is not in this class")
        self.enrolled_students = [s for s in self.enrolled_students if s != user_id]
        self.enrolled = len(self.enrolled_students)

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str, with_teacher: bool = False
    ) -> Optional["Class"]:
        """Get a non-deleted class by ID."""
        stmt = select(cls).where(cls.id == id, cls.not_deleted())
        if with_teacher:
            stmt = stmt.options(selectinload(cls.teacher))
        result = await db_session.execute(stmt)
        return result.scalars().first()

    @classmethod
    async def get_filtered(
        cls,
        db_session: AsyncSession,
        style: Optional[DanceStyle] = None,
        level: Optional[ClassLevel] = None,
        teacher_id: Optional[str] = None,
        has_capacity: Optional[bool] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[Sequence["Class"], int]:
        """Get active classes with optional filters and pagination."""
        conditions = [cls.is_active == True, cls.not_deleted()]  # noqa: E712

        if style:
            conditions.append(cls.style == style)
        if level:
            conditions.append(cls.level == level)
        if teacher_id:
            conditions.append(cls.teacher_id == teacher_id)
        if has_capacity is True:
            conditions.append(cls.enrolled < cls.capacity)
        elif has_capacity is False:
            conditions.append(cls.enrolled >= cls.capacity)
        if search:
            search_pattern = f"%{search}%"
            conditions.append(
                or_(
                    cls.name.ilike(search_pattern),
                    cls.description.ilike(search_pattern),
                )
            )

        count_result = await db_session.execute(
            select(func.count(cls.id)).where(and_(*conditions))
        )
        total = count_result.scalar() or 0

        result = await db_session.execute(
            select(cls)
            .where(and_(*conditions))
            .order_by(cls.starts_at, cls.name)
            .offset(skip)
            .limit(limit)
        )

        return result.scalars().all(), total

    @classmethod
    async def get_starting_between(
        cls, db_session: AsyncSession, start: datetime, end: datetime
    ) -> Sequence["Class"]:
        """Active classes whose next session falls in [start, end)."""
        result = await db_session.execute(
            select(cls).where(
                cls.is_active == True,  # noqa: E712
                cls.not_deleted(),
                cls.starts_at >= start,
                cls.starts_at < end,
            )
        )
        return result.scalars().all()
