import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Sequence
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Enum, Index, String, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base, TimestampMixin, SoftDeleteMixin, OrganizationMixin

if TYPE_CHECKING:
    from app.models.organization import Organization


class Role(str, enum.Enum):
    """User roles in the studio."""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class User(Base, TimestampMixin, SoftDeleteMixin, OrganizationMixin):
    """
    Studio user.

    Identities are issued by the external identity provider; this row keeps
    the id from its token, the role claim and the contact email.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(128), primary_key=True, default=lambda: str(uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[Role] = mapped_column(
        Enum(Role, native_enum=False, values_callable=lambda x: [e.value for e in x]),
        default=Role.STUDENT,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_active: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization", back_populates="users"
    )

    __table_args__ = (
        Index(
            "ix_users_organization_email",
            "organization_id",
            "email",
            unique=True,
        ),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.TEACHER)

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalize emails so uniqueness checks are case-insensitive."""
        return email.strip().lower()

    @classmethod
    async def get_by_id(
        cls, db_session: AsyncSession, id: str
    ) -> Optional["User"]:
        """Get user by ID."""
        result = await db_session.execute(
            select(cls).where(cls.id == id, cls.not_deleted())
        )
        return result.scalars().first()

    @classmethod
    async def get_by_ids(
        cls, db_session: AsyncSession, ids: Sequence[str]
    ) -> Sequence["User"]:
        """Get several users at once (roster, attendance)."""
        if not ids:
            return []
        result = await db_session.execute(select(cls).where(cls.id.in_(list(ids))))
        return result.scalars().all()

    @classmethod
    async def count_by_role(cls, db_session: AsyncSession) -> dict[str, int]:
        """Number of non-deleted users per role."""
        result = await db_session.execute(
            select(cls.role, func.count(cls.id))
            .where(cls.not_deleted())
            .group_by(cls.role)
        )
        counts = {role.value: 0 for role in Role}
        for role, count in result.all():
            counts[Role(role).value] = count
        return counts
