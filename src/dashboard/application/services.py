"""
Dashboard Application Services
==============================

The metrics aggregator: read-only, computed on every request, never cached.
Soft-deleted tickets are left out of every figure.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from config import Priority, TicketCategory, TicketStatus, UserRole
from dashboard.application.dto import (
    AssigneeWorkloadResponse, DashboardResponse, DurationStats, MetricsSummaryResponse,
    PerformanceMetrics, PeriodResponse, PrioritySLA, SLAMetrics, TicketMetrics, UserMetrics
)
from shared.infrastructure.logging import get_logger, log_latency
from tickets.domain import SLACalculator

logger = get_logger(__name__)

DEFAULT_WINDOW_DAYS = 30
DEFAULT_TOP_ASSIGNEES = 5


# ========== Query rows ==========

@dataclass(frozen=True)
class SLARow:
    priority: str
    sla_deadline: datetime


@dataclass(frozen=True)
class ResolvedRow:
    priority: str
    created_at: datetime
    resolved_at: datetime
    sla_deadline: Optional[datetime]


@dataclass(frozen=True)
class FirstResponseRow:
    created_at: datetime
    responded_at: datetime


@dataclass(frozen=True)
class AssigneeWorkload:
    user_id: str
    name: str
    count: int


# ========== Repository Interfaces (Dependency Inversion) ==========

class IMetricsRepository(ABC):
    """Interface for the aggregation queries."""

    @abstractmethod
    async def count_tickets(self) -> int:
        """Count of all non-deleted tickets."""

    @abstractmethod
    async def count_tickets_by(
        self,
        field: str,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Counts grouped by a ticket column, optionally within a creation window."""

    @abstractmethod
    async def creation_times(self, created_from: datetime, created_to: datetime) -> List[datetime]:
        """Creation timestamps within a window."""

    @abstractmethod
    async def count_overdue(self, now: datetime) -> int:
        """Open/in-progress tickets whose deadline is strictly before ``now``."""

    @abstractmethod
    async def active_sla_rows(self) -> List[SLARow]:
        """Open/in-progress tickets that have a deadline."""

    @abstractmethod
    async def resolved_rows(self) -> List[ResolvedRow]:
        """Tickets with a resolution timestamp."""

    @abstractmethod
    async def first_response_rows(self) -> List[FirstResponseRow]:
        """Tickets with at least two history entries."""

    @abstractmethod
    async def count_users_by_role(self) -> Dict[str, int]:
        """User counts per role."""

    @abstractmethod
    async def count_users_by_active(self) -> Tuple[int, int]:
        """(active, inactive) user counts."""

    @abstractmethod
    async def assignee_workload(self, limit: int) -> List[AssigneeWorkload]:
        """Top assignees by ticket count."""


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def duration_stats(hours: Iterable[float]) -> DurationStats:
    """avg/min/max rounded to two decimals; zeros for no data."""
    values = list(hours)
    if not values:
        return DurationStats()
    return DurationStats(
        avg=round(sum(values) / len(values), 2),
        min=round(min(values), 2),
        max=round(max(values), 2),
    )


def _with_zeros(counts: Dict[str, int], keys: Iterable[str]) -> Dict[str, int]:
    filled = {key: 0 for key in keys}
    filled.update(counts)
    return filled


# ========== Application Services ==========

class MetricsAggregator:
    """
    Computes dashboard metrics.

    Only the ticket metrics are restricted to the ``days`` window; SLA,
    performance and user metrics cover every non-deleted record.
    """

    def __init__(
        self,
        metrics_repository: IMetricsRepository,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._repo = metrics_repository
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def ticket_metrics(self, start: datetime, end: datetime) -> TicketMetrics:
        by_status = await self._repo.count_tickets_by("status", start, end)
        by_category = await self._repo.count_tickets_by("category", start, end)
        by_priority = await self._repo.count_tickets_by("priority", start, end)

        by_day: Dict[str, int] = {}
        for created_at in sorted(await self._repo.creation_times(start, end)):
            day = created_at.astimezone(timezone.utc).strftime("%Y-%m-%d")
            by_day[day] = by_day.get(day, 0) + 1

        return TicketMetrics(
            total=sum(by_status.values()),
            by_status=_with_zeros(by_status, (s.value for s in TicketStatus)),
            by_category=_with_zeros(by_category, (c.value for c in TicketCategory)),
            by_priority=_with_zeros(by_priority, (p.value for p in Priority)),
            by_day=by_day,
        )

    async def sla_metrics(self, now: Optional[datetime] = None) -> SLAMetrics:
        now = now or self._clock()

        by_priority: Dict[str, PrioritySLA] = {
            priority.value: PrioritySLA(total=0, overdue=0, within_sla=0, percent_overdue=0.0)
            for priority in Priority
        }
        grouped: Dict[str, List[bool]] = {}
        for row in await self._repo.active_sla_rows():
            grouped.setdefault(row.priority, []).append(
                SLACalculator.is_overdue(row.sla_deadline, now)
            )
        for priority, flags in grouped.items():
            overdue = sum(flags)
            by_priority[priority] = PrioritySLA(
                total=len(flags),
                overdue=overdue,
                within_sla=len(flags) - overdue,
                percent_overdue=round(overdue / len(flags) * 100, 2),
            )

        within = outside = 0
        for row in await self._repo.resolved_rows():
            met = SLACalculator.resolved_within(row.sla_deadline, row.resolved_at)
            if met is True:
                within += 1
            elif met is False:
                outside += 1

        return SLAMetrics(
            overdue=sum(item.overdue for item in by_priority.values()),
            resolved_within_sla=within,
            resolved_outside_sla=outside,
            by_priority=by_priority,
        )

    async def performance_metrics(self) -> PerformanceMetrics:
        resolution: Dict[str, List[float]] = {}
        for row in await self._repo.resolved_rows():
            resolution.setdefault(row.priority, []).append(_hours(row.resolved_at - row.created_at))

        first_response = [
            _hours(row.responded_at - row.created_at)
            for row in await self._repo.first_response_rows()
        ]

        return PerformanceMetrics(
            resolution_by_priority={
                priority: duration_stats(hours) for priority, hours in resolution.items()
            },
            first_response=duration_stats(first_response),
        )

    async def user_metrics(self, top_n: int = DEFAULT_TOP_ASSIGNEES) -> UserMetrics:
        by_role = await self._repo.count_users_by_role()
        active, inactive = await self._repo.count_users_by_active()
        workload = await self._repo.assignee_workload(top_n)

        return UserMetrics(
            by_role=_with_zeros(by_role, (r.value for r in UserRole)),
            active=active,
            inactive=inactive,
            technician_workload=[
                AssigneeWorkloadResponse(user_id=w.user_id, name=w.name, count=w.count)
                for w in workload
            ],
        )

    async def dashboard(self, days: int = DEFAULT_WINDOW_DAYS) -> DashboardResponse:
        """All dashboard sections, with ticket metrics over the last ``days`` days."""
        now = self._clock()
        start = now - timedelta(days=days)

        with log_latency(logger, "dashboard_metrics", days=days):
            tickets = await self.ticket_metrics(start, now)
            users = await self.user_metrics()
            sla = await self.sla_metrics(now)
            performance = await self.performance_metrics()

        return DashboardResponse(
            period=PeriodResponse(start=start, end=now, days=days),
            tickets=tickets,
            users=users,
            sla=sla,
            performance=performance,
        )

    async def summary(self) -> MetricsSummaryResponse:
        """Headline counts over all non-deleted tickets."""
        now = self._clock()
        by_status = await self._repo.count_tickets_by("status")
        resolution = [
            _hours(row.resolved_at - row.created_at)
            for row in await self._repo.resolved_rows()
        ]

        return MetricsSummaryResponse(
            total_tickets=await self._repo.count_tickets(),
            open_tickets=by_status.get(TicketStatus.OPEN.value, 0),
            in_progress_tickets=by_status.get(TicketStatus.IN_PROGRESS.value, 0),
            resolved_tickets=by_status.get(TicketStatus.RESOLVED.value, 0),
            closed_tickets=by_status.get(TicketStatus.CLOSED.value, 0),
            overdue_sla=await self._repo.count_overdue(now),
            avg_resolution_hours=duration_stats(resolution).avg,
        )
