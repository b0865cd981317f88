from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, ColumnElement, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

if TYPE_CHECKING:
    from app.models.organization import Organization


class TimestampMixin:
    """created_at / updated_at, filled in by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class SoftDeleteMixin:
    """
    Rows are flagged instead of removed.

    Classes with enrollment history and users referenced by payments must
    stay in the table; queries exclude them with ``not_deleted()``.
    """

    @declared_attr.directive
    def is_deleted(cls) -> Mapped[bool]:  # type: ignore[override]
        return mapped_column(
            Boolean,
            default=False,
            server_default="false",
            nullable=False,
            index=True,
        )

    @declared_attr.directive
    def deleted_at(cls) -> Mapped[Optional[datetime]]:  # type: ignore[override]
        return mapped_column(DateTime(timezone=True), nullable=True)

    @classmethod
    def not_deleted(cls) -> ColumnElement[bool]:
        """WHERE criterion for live rows."""
        return cls.is_deleted.is_(False)

    def soft_delete(self) -> None:
        self.is_deleted = True
        self.deleted_at = datetime.now(timezone.utc)


class OrganizationMixin:
    """Optional studio (tenant) the row belongs to; single-studio installs leave it empty."""

    @declared_attr.directive
    def organization_id(cls) -> Mapped[Optional[str]]:  # type: ignore[override]
        return mapped_column(
            String(36), ForeignKey("organizations.id"), nullable=True, index=True
        )

    @declared_attr.directive
    def organization(cls) -> Mapped[Optional["Organization"]]:  # type: ignore[override]
        return relationship("Organization")


__all__ = ["TimestampMixin", "SoftDeleteMixin", "OrganizationMixin"]
