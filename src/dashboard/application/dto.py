"""
Dashboard Application DTOs
==========================

Response models for dashboard and summary metrics.
"""

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel, Field


class PeriodResponse(BaseModel):
    """Creation-time window the ticket metrics cover."""
    start: datetime
    end: datetime
    days: int


class TicketMetrics(BaseModel):
    total: int = Field(..., description="Tickets created in the period")
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    by_priority: Dict[str, int]
    by_day: Dict[str, int] = Field(..., description="Tickets per creation day (YYYY-MM-DD, UTC), ascending")


class PrioritySLA(BaseModel):
    total: int
    overdue: int
    within_sla: int
    percent_overdue: float


class SLAMetrics(BaseModel):
    overdue: int = Field(..., description="Open or in-progress tickets past their deadline")
    resolved_within_sla: int
    resolved_outside_sla: int
    by_priority: Dict[str, PrioritySLA] = Field(
        ..., description="Open and in-progress tickets per priority"
    )


class DurationStats(BaseModel):
    """Hours, rounded to two decimals. All zero when there is no data."""
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0


class PerformanceMetrics(BaseModel):
    resolution_by_priority: Dict[str, DurationStats]
    first_response: DurationStats


class AssigneeWorkloadResponse(BaseModel):
    user_id: str
    name: str
    count: int


class UserMetrics(BaseModel):
    by_role: Dict[str, int]
    active: int
    inactive: int
    technician_workload: List[AssigneeWorkloadResponse]


class DashboardResponse(BaseModel):
    """Full dashboard payload."""
    period: PeriodResponse
    tickets: TicketMetrics
    users: UserMetrics
    sla: SLAMetrics
    performance: PerformanceMetrics


class MetricsSummaryResponse(BaseModel):
    """Headline numbers for the ticket list view."""
    total_tickets: int
    open_tickets: int
    in_progress_tickets: int
    resolved_tickets: int
    closed_tickets: int
    overdue_sla: int
    avg_resolution_hours: float
