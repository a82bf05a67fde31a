"""
Ticket Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import STAFF_ROLES
from core import RepositoryException
from tickets.application import IAssigneeDirectory, ITicketCounter, ITicketRepository
from tickets.domain import GeoLocation, HistoryEntry, Ticket
from tickets.infrastructure.models import TicketCounterModel, TicketHistoryModel, TicketModel

_LOCATION_FIELDS = ("country", "region", "city", "isp", "lat", "lon")


def _as_uuid(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        raise RepositoryException(f"Invalid UUID: {value}")


def _history_model(entry: HistoryEntry, position: int) -> TicketHistoryModel:
    return TicketHistoryModel(
        id=uuid4(),
        position=position,
        status=entry.status,
        comment=entry.comment,
        actor_id=_as_uuid(entry.actor_id),
        timestamp=entry.timestamp,
    )


def _to_domain(model: TicketModel) -> Ticket:
    location = None
    if model.client_location:
        location = GeoLocation(**{
            key: model.client_location.get(key) for key in _LOCATION_FIELDS
        })

    return Ticket(
        id=str(model.id),
        ticket_id=model.ticket_id,
        title=model.title,
        description=model.description,
        category=model.category,
        priority=model.priority,
        status=model.status,
        requester_id=str(model.requester_id),
        assignee_id=str(model.assignee_id) if model.assignee_id else None,
        client_ip=model.client_ip,
        location=location,
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
        resolved_at=model.resolved_at,
        sla_deadline=model.sla_deadline,
        history=[
            HistoryEntry(
                status=row.status,
                comment=row.comment,
                actor_id=str(row.actor_id) if row.actor_id else None,
                timestamp=row.timestamp,
            )
            for row in model.history
        ],
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    History rows are insert-only: saving a ticket appends the entries that
    are not yet stored and never rewrites existing ones.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, identifier: str) -> Optional[TicketModel]:
        try:
            stmt = select(TicketModel).where(TicketModel.id == UUID(identifier))
        except ValueError:
            stmt = select(TicketModel).where(TicketModel.ticket_id == identifier)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, identifier: str) -> Optional[Ticket]:
        """Get ticket by internal UUID or TK identifier."""
        model = await self._get_model(identifier)
        return _to_domain(model) if model else None

    async def add(self, ticket: Ticket) -> Ticket:
        """Create new ticket together with its history rows."""
        if ticket.ticket_id is None:
            raise RepositoryException("Ticket must have an identifier before it is stored")

        model = TicketModel(
            id=_as_uuid(ticket.id) or uuid4(),
            ticket_id=ticket.ticket_id,
            title=ticket.title,
            description=ticket.description,
            category=ticket.category,
            status=ticket.status,
            priority=ticket.priority,
            is_active=ticket.is_active,
            requester_id=_as_uuid(ticket.requester_id),
            assignee_id=_as_uuid(ticket.assignee_id),
            client_ip=ticket.client_ip,
            client_location=ticket.location.to_dict() if ticket.location else None,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            resolved_at=ticket.resolved_at,
            sla_deadline=ticket.sla_deadline,
            history=[
                _history_model(entry, position)
                for position, entry in enumerate(ticket.history)
            ],
        )

        self._session.add(model)
        await self._session.flush()

        ticket.id = str(model.id)
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        """Update mutable fields and append history entries not yet stored."""
        model = await self._get_model(ticket.id) if ticket.id else None
        if model is None:
            raise RepositoryException(f"Ticket {ticket.ticket_id} not found")

        stored = len(model.history)
        if len(ticket.history) < stored:
            raise RepositoryException(
                f"History of ticket {ticket.ticket_id} is shorter than the stored log"
            )

        model.status = ticket.status
        model.priority = ticket.priority
        model.is_active = ticket.is_active
        model.assignee_id = _as_uuid(ticket.assignee_id)
        model.updated_at = ticket.updated_at
        model.resolved_at = ticket.resolved_at
        model.sla_deadline = ticket.sla_deadline

        for position in range(stored, len(ticket.history)):
            model.history.append(_history_model(ticket.history[position], position))

        await self._session.flush()
        return ticket

    async def list(
        self,
        filters: dict,
        include_deleted: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets with filters, newest first."""
        stmt = select(TicketModel)

        conditions = []
        if not include_deleted:
            conditions.append(TicketModel.is_active.is_(True))
        for key in ("status", "priority", "category"):
            if key in filters:
                conditions.append(getattr(TicketModel, key) == filters[key])
        for key in ("assignee_id", "requester_id"):
            if key in filters:
                try:
                    user_id = UUID(str(filters[key]))
                except ValueError:
                    return []
                conditions.append(getattr(TicketModel, key) == user_id)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketModel.created_at.desc(), TicketModel.ticket_id.desc())
        stmt = stmt.limit(limit).offset(offset)

        result = await self._session.execute(stmt)
        return [_to_domain(model) for model in result.scalars().all()]


class SQLAlchemyTicketCounter(ITicketCounter):
    """
    Per-year ticket sequence backed by the 'ticket_counters' table.

    The row is created on first use and incremented with a single
    UPDATE .. RETURNING, so concurrent callers never receive the same value.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def _insert(self):
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise RepositoryException(f"Unsupported database dialect for ticket counter: {dialect}")
        return insert(TicketCounterModel)

    async def next_value(self, year: int) -> int:
        await self._session.execute(
            self._insert()
            .values(year=year, value=0)
            .on_conflict_do_nothing(index_elements=["year"])
        )
        result = await self._session.execute(
            update(TicketCounterModel)
            .where(TicketCounterModel.year == year)
            .values(value=TicketCounterModel.value + 1)
            .returning(TicketCounterModel.value)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one()


class SQLAlchemyAssigneeDirectory(IAssigneeDirectory):
    """Checks assignees against the users table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_assignable(self, user_id: str) -> bool:
        from users.infrastructure.models import UserModel

        try:
            user_uuid = UUID(str(user_id))
        except ValueError:
            return False

        stmt = select(UserModel.id).where(
            UserModel.id == user_uuid,
            UserModel.is_active.is_(True),
            UserModel.role.in_(STAFF_ROLES),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None
