"""Attendance records per class session."""

import enum
from datetime import date
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Date,
    Enum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    case,
    func,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin, OrganizationMixin

if TYPE_CHECKING:
    from app.models.class_ import Class
    from app.models.user import User


class AttendanceStatus(str, enum.Enum):
    """Status of attendance."""

    PRESENT = "present"
    ABSENT = "absent"


class Attendance(Base, TimestampMixin, OrganizationMixin):
    """Whether a student attended one session of a class."""

    __tablename__ = "attendances"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    class_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("classes.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False, index=True
    )
    session_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[AttendanceStatus] = mapped_column(
        Enum(
            AttendanceStatus,
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    marked_by: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id"), nullable=False
    )

    class_: Mapped["Class"] = relationship("Class")
    student: Mapped["User"] = relationship("User", foreign_keys=[user_id])

    __table_args__ = (
        UniqueConstraint(
            "class_id",
            "user_id",
            "session_date",
            name="uq_attendance_class_user_date",
        ),
        Index("idx_attendance_class_date", "class_id", "session_date"),
    )

    @classmethod
    async def get_for_session(
        cls, db_session: AsyncSession, class_id: str, session_date: date
    ) -> Dict[str, "Attendance"]:
        """Existing records of one session, keyed by student id."""
        result = await db_session.execute(
            select(cls).where(cls.class_id == class_id, cls.session_date == session_date)
        )
        return {record.user_id: record for record in result.scalars().all()}

    @classmethod
    async def get_by_class(
        cls, db_session: AsyncSession, class_id: str, session_date: Optional[date] = None
    ) -> Sequence["Attendance"]:
        """Get all attendance for a class, optionally filtered by date."""
        conditions = [cls.class_id == class_id]
        if session_date:
            conditions.append(cls.session_date == session_date)

        result = await db_session.execute(
            select(cls).where(*conditions).order_by(cls.session_date.desc(), cls.user_id)
        )
        return result.scalars().all()

    @classmethod
    async def get_by_user(
        cls, db_session: AsyncSession, user_id: str
    ) -> Sequence["Attendance"]:
        result = await db_session.execute(
            select(cls).where(cls.user_id == user_id).order_by(cls.session_date.desc())
        )
        return result.scalars().all()

    @classmethod
    async def rate_by_class(cls, db_session: AsyncSession) -> Dict[str, float]:
        """Percentage of present records per class id."""
        present = func.sum(case((cls.status == AttendanceStatus.PRESENT, 1), else_=0))
        result = await db_session.execute(
            select(cls.class_id, present, func.count(cls.id)).group_by(cls.class_id)
        )
        return {
            class_id: round((present_count or 0) / total * 100, 2)
            for class_id, present_count, total in result.all()
            if total
        }

    @classmethod
    async def mark_session(
        cls,
        db_session: AsyncSession,
        class_id: str,
        session_date: date,
        statuses: Dict[str, AttendanceStatus],
        marked_by: str,
        organization_id: Optional[str] = None,
    ) -> List[str]:
        """
        Upsert one record per student for a session.

        Returns the ids of students whose record was created or changed.
        """
        existing = await cls.get_for_session(db_session, class_id, session_date)
        changed = []

        for user_id, status in statuses.items():
            record = existing.get(user_id)
            if record is None:
                db_session.add(
                    cls(
                        class_id=class_id,
                        user_id=user_id,
                        session_date=session_date,
                        status=status,
                        marked_by=marked_by,
                        organization_id=organization_id,
                    )
                )
                changed.append(user_id)
            elif record.status != status:
                record.status = status
                record.marked_by = marked_by
                changed.append(user_id)

        await db_session.flush()
        return changed
