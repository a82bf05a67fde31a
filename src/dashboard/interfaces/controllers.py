"""
Dashboard Controllers (API Routes)
==================================

Dashboard metrics for technicians and administrators.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config import STAFF_ROLES
from dashboard.application import DEFAULT_WINDOW_DAYS, DashboardResponse, MetricsAggregator
from dashboard.infrastructure import SQLAlchemyMetricsRepository
from infrastructure.database import get_session
from users.domain import User
from users.interfaces.dependencies import require_roles

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


async def get_metrics_aggregator(
    session: AsyncSession = Depends(get_session)
) -> MetricsAggregator:
    """Get metrics aggregator instance."""
    return MetricsAggregator(SQLAlchemyMetricsRepository(session))


@router.get(
    "",
    response_model=DashboardResponse,
    summary="Get dashboard metrics",
    description="""
    Business metrics for the support dashboard.

    **Query Parameters:**
    - `days`: Window for ticket metrics, by creation time (default: 30)

    **Response includes:**
    - `tickets`: totals by status, category, priority and day (windowed)
    - `users`: counts by role, active/inactive, top 5 assignees
    - `sla`: overdue tickets, resolved within/outside SLA, per-priority overdue ratio
    - `performance`: resolution hours per priority, first-response hours

    Deleted tickets are excluded.
    """
)
async def get_dashboard(
    days: int = Query(DEFAULT_WINDOW_DAYS, ge=1, le=3650, description="Ticket metrics window in days"),
    _: User = Depends(require_roles(*STAFF_ROLES)),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator)
):
    return await aggregator.dashboard(days=days)
