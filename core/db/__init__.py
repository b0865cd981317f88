from core.db.base import Base
from core.db.mixins import TimestampMixin, SoftDeleteMixin, OrganizationMixin
from core.db.session import async_session_factory, engine, get_db, get_session_factory
from core.db.transaction import run_in_transaction

__all__ = [
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "OrganizationMixin",
    "async_session_factory",
    "engine",
    "get_db",
    "get_session_factory",
    "run_in_transaction",
]
