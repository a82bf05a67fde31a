"""
Dashboard Infrastructure Repositories
=====================================

Read-only SQLAlchemy queries feeding the metrics aggregator.

Grouped counts run in the database; anything that needs timestamp
arithmetic is returned as rows and computed in Python so SQLite and
PostgreSQL behave the same.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import ACTIVE_STATUSES
from dashboard.application.services import (
    IMetricsRepository, AssigneeWorkload, FirstResponseRow, ResolvedRow, SLARow
)
from tickets.infrastructure.models import TicketHistoryModel, TicketModel
from users.infrastructure.models import UserModel


class SQLAlchemyMetricsRepository(IMetricsRepository):
    """Aggregation queries over tickets, ticket history and users."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def count_tickets(self) -> int:
        stmt = select(func.count(TicketModel.id)).where(TicketModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def count_tickets_by(
        self,
        field: str,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None
    ) -> Dict[str, int]:
        """Ticket counts grouped by ``field`` (status, priority or category)."""
        column = getattr(TicketModel, field)
        conditions = [TicketModel.is_active.is_(True)]
        if created_from is not None:
            conditions.append(TicketModel.created_at >= created_from)
        if created_to is not None:
            conditions.append(TicketModel.created_at <= created_to)

        stmt = (
            select(column, func.count(TicketModel.id))
            .where(and_(*conditions))
            .group_by(column)
        )
        result = await self._session.execute(stmt)
        return {value: count for value, count in result.all()}

    async def creation_times(self, created_from: datetime, created_to: datetime) -> List[datetime]:
        stmt = select(TicketModel.created_at).where(
            TicketModel.is_active.is_(True),
            TicketModel.created_at >= created_from,
            TicketModel.created_at <= created_to,
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_overdue(self, now: datetime) -> int:
        stmt = select(func.count(TicketModel.id)).where(
            TicketModel.is_active.is_(True),
            TicketModel.status.in_(ACTIVE_STATUSES),
            TicketModel.sla_deadline.is_not(None),
            TicketModel.sla_deadline < now,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def active_sla_rows(self) -> List[SLARow]:
        """Priority and deadline of every active-status ticket that has a deadline."""
        stmt = select(TicketModel.priority, TicketModel.sla_deadline).where(
            TicketModel.is_active.is_(True),
            TicketModel.status.in_(ACTIVE_STATUSES),
            TicketModel.sla_deadline.is_not(None),
        )
        result = await self._session.execute(stmt)
        return [SLARow(priority=p, sla_deadline=d) for p, d in result.all()]

    async def resolved_rows(self) -> List[ResolvedRow]:
        """Tickets that have been resolved at least once."""
        stmt = select(
            TicketModel.priority,
            TicketModel.created_at,
            TicketModel.resolved_at,
            TicketModel.sla_deadline,
        ).where(
            TicketModel.is_active.is_(True),
            TicketModel.resolved_at.is_not(None),
        )
        result = await self._session.execute(stmt)
        return [
            ResolvedRow(priority=p, created_at=c, resolved_at=r, sla_deadline=d)
            for p, c, r, d in result.all()
        ]

    async def first_response_rows(self) -> List[FirstResponseRow]:
        """Creation time and second history entry time of each ticket that has one."""
        stmt = (
            select(TicketModel.created_at, TicketHistoryModel.timestamp)
            .join(TicketHistoryModel, TicketHistoryModel.ticket_pk == TicketModel.id)
            .where(
                TicketModel.is_active.is_(True),
                TicketHistoryModel.position == 1,
            )
        )
        result = await self._session.execute(stmt)
        return [FirstResponseRow(created_at=c, responded_at=t) for c, t in result.all()]

    async def count_users_by_role(self) -> Dict[str, int]:
        stmt = select(UserModel.role, func.count(UserModel.id)).group_by(UserModel.role)
        result = await self._session.execute(stmt)
        return {role: count for role, count in result.all()}

    async def count_users_by_active(self) -> Tuple[int, int]:
        stmt = select(UserModel.is_active, func.count(UserModel.id)).group_by(UserModel.is_active)
        result = await self._session.execute(stmt)
        counts = {bool(flag): count for flag, count in result.all()}
        return counts.get(True, 0), counts.get(False, 0)

    async def assignee_workload(self, limit: int) -> List[AssigneeWorkload]:
        """Users with the most assigned tickets; ties by name, then id."""
        assigned = func.count(TicketModel.id).label("assigned")
        stmt = (
            select(UserModel.id, UserModel.name, assigned)
            .join(TicketModel, TicketModel.assignee_id == UserModel.id)
            .where(TicketModel.is_active.is_(True))
            .group_by(UserModel.id, UserModel.name)
            .order_by(assigned.desc(), UserModel.name.asc(), UserModel.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [
            AssigneeWorkload(user_id=str(user_id), name=name, count=count)
            for user_id, name, count in result.all()
        ]
