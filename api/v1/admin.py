"""Admin API endpoints for the analytics dashboard."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_admin
from app.models.user import User
from app.schemas.analytics import AnalyticsResponse
from app.services import analytics_service
from core.db import get_db
from core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/analytics", response_model=AnalyticsResponse)
async def get_analytics(
    months: int = Query(6, ge=1, le=24, description="Months of revenue history"),
    db_session: AsyncSession = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
) -> AnalyticsResponse:
    """Get studio analytics.

    Returns:
    - Users per role, active classes and enrollments
    - Revenue from completed payments, total and per month
    - Fill and attendance rate per class, students per teacher
    """
    logger.info(f"Analytics requested by admin {current_admin.id} for {months} months")
    return await analytics_service.get_dashboard(db_session, months=months)
