"""
Dashboard Application Layer
===========================

Contains:
- MetricsAggregator: ticket, SLA, performance and user metrics
- DTOs: Response models for dashboard and summary
"""

from dashboard.application.dto import (
    DashboardResponse,
    DurationStats,
    MetricsSummaryResponse,
    PerformanceMetrics,
    PrioritySLA,
    SLAMetrics,
    TicketMetrics,
    UserMetrics,
)
from dashboard.application.services import (
    DEFAULT_WINDOW_DAYS,
    IMetricsRepository,
    MetricsAggregator,
    duration_stats,
)

__all__ = [
    "DashboardResponse",
    "DurationStats",
    "MetricsSummaryResponse",
    "PerformanceMetrics",
    "PrioritySLA",
    "SLAMetrics",
    "TicketMetrics",
    "UserMetrics",
    "MetricsAggregator",
    "IMetricsRepository",
    "DEFAULT_WINDOW_DAYS",
    "duration_stats",
]
