"""
Ticket Application Services
===========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from config import TicketStatus
from core import (
    AuthorizationException, DomainException, ResourceNotFoundException, ValidationException
)
from shared.infrastructure.logging import get_logger
from shared.infrastructure.metrics import MetricsRegistry
from tickets.application.dto import TicketCreateRequest, TicketListQuery, TicketUpdateRequest
from tickets.domain import GeoLocation, SLAPolicy, Ticket, TicketIdentifier

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, identifier: str) -> Optional[Ticket]:
        """Get ticket by internal UUID or TK identifier."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket with its history."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Persist changes to an existing ticket, appending new history entries."""

    @abstractmethod
    async def list(
        self,
        filters: dict,
        include_deleted: bool = False,
        limit: int = 100,
        offset: int = 0
    ) -> List[Ticket]:
        """List tickets matching filters, newest first."""


class ITicketCounter(ABC):
    """Interface for the per-year ticket sequence."""

    @abstractmethod
    async def next_value(self, year: int) -> int:
        """Atomically increment and return the sequence for ``year``."""


class ISLAPolicyProvider(ABC):
    """Interface for SLA policy access."""

    @abstractmethod
    def get_policy(self) -> SLAPolicy:
        """Get the current SLA policy."""


class IAssigneeDirectory(ABC):
    """Interface for checking who may be assigned a ticket."""

    @abstractmethod
    async def is_assignable(self, user_id: str) -> bool:
        """True for an existing, active technician or admin."""


@dataclass(frozen=True)
class GeoLookupResult:
    """Client address and location resolved for a new ticket."""
    ip: Optional[str] = None
    location: Optional[GeoLocation] = None


class IGeoIPLookup(ABC):
    """Interface for the geo-ip collaborator. Implementations never raise."""

    @abstractmethod
    async def lookup(self, client_ip: Optional[str] = None) -> GeoLookupResult:
        """Resolve the client IP (if needed) and its location."""


class StaticSLAPolicyProvider(ISLAPolicyProvider):
    """Provider returning a fixed policy (defaults unless given)."""

    def __init__(self, policy: Optional[SLAPolicy] = None):
        self._policy = policy or SLAPolicy()

    def get_policy(self) -> SLAPolicy:
        return self._policy


# ========== Application Services ==========

class TicketService:
    """
    Service for the ticket lifecycle.

    Opens tickets (identifier, SLA, geolocation), applies technician updates
    and soft deletes. All state changes go through the Ticket entity.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        counter: ITicketCounter,
        policy_provider: ISLAPolicyProvider,
        geoip: Optional[IGeoIPLookup] = None,
        assignees: Optional[IAssigneeDirectory] = None,
        metrics: Optional[MetricsRegistry] = None,
        clock: Optional[Clock] = None
    ):
        self._ticket_repo = ticket_repository
        self._counter = counter
        self._policy_provider = policy_provider
        self._geoip = geoip
        self._assignees = assignees
        self._metrics = metrics
        self._clock = clock or utc_now

    async def create_ticket(
        self,
        request: TicketCreateRequest,
        requester_id: str,
        client_ip: Optional[str] = None
    ) -> Ticket:
        """
        Open a ticket on behalf of ``requester_id``.

        Geolocation is best effort: a failed lookup leaves the location empty.

        Returns:
            The persisted ticket with identifier, SLA deadline and first history entry
        """
        started = time.perf_counter()
        now = self._clock()

        location = None
        if self._geoip is not None:
            result = await self._geoip.lookup(client_ip)
            client_ip = result.ip or client_ip
            location = result.location

        ticket = Ticket.open(
            title=request.title,
            description=request.description,
            category=request.category,
            requester_id=requester_id,
            priority=request.priority,
            client_ip=client_ip,
            location=location,
            now=now,
            policy=self._policy_provider.get_policy(),
        )

        sequence = await self._counter.next_value(now.year)
        ticket.assign_ticket_id(TicketIdentifier(now.year, sequence))
        ticket = await self._ticket_repo.add(ticket)

        if self._metrics is not None:
            self._metrics.tickets_total.inc(status=ticket.status)
            self._metrics.ticket_response_time.observe(time.perf_counter() - started)

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.ticket_id,
                "priority": ticket.priority,
                "category": ticket.category,
                "sla_deadline": ticket.sla_deadline.isoformat(),
                "geolocated": location is not None,
            }
        )
        return ticket

    async def get_ticket(self, identifier: str, requester_id: Optional[str] = None) -> Ticket:
        """
        Get a ticket by UUID or TK identifier.

        When ``requester_id`` is given the ticket must belong to that user.
        """
        ticket = await self._ticket_repo.get(identifier)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", identifier)
        if requester_id is not None and ticket.requester_id != requester_id:
            raise AuthorizationException("You can only view your own tickets")
        return ticket

    async def list_tickets(
        self,
        query: TicketListQuery,
        requester_id: Optional[str] = None
    ) -> List[Ticket]:
        """List tickets, newest first. ``requester_id`` restricts to one customer."""
        filters = query.to_filters()
        if requester_id is not None:
            filters["requester_id"] = requester_id
        return await self._ticket_repo.list(
            filters,
            include_deleted=query.include_deleted,
            limit=query.limit,
            offset=query.offset,
        )

    async def update_ticket(
        self,
        identifier: str,
        request: TicketUpdateRequest,
        actor_id: str
    ) -> Ticket:
        """
        Apply a status, assignee and/or priority change.

        Each change appends one history entry; the request comment goes on
        the first of them. A request carrying only a comment appends a
        comment entry.
        """
        ticket = await self.get_ticket(identifier)
        if not ticket.is_active:
            raise DomainException(
                f"Ticket {ticket.ticket_id} has been deleted",
                {"ticket_id": ticket.ticket_id}
            )

        if request.assignee_id is not None and self._assignees is not None:
            if not await self._assignees.is_assignable(request.assignee_id):
                raise ValidationException(
                    errors=["assignee_id: must reference an active technician or admin"]
                )

        now = self._clock()
        comment = request.comment
        recorded = False
        previous_status = ticket.status

        if request.status is not None:
            ticket.transition(request.status, comment, actor_id, at=now)
            recorded = True

        if request.assignee_id is not None and request.assignee_id != ticket.assignee_id:
            ticket.assign(request.assignee_id, actor_id, None if recorded else comment, at=now)
            recorded = True

        if request.priority is not None:
            entry = ticket.change_priority(
                request.priority,
                actor_id,
                None if recorded else comment,
                at=now,
                policy=self._policy_provider.get_policy(),
            )
            recorded = recorded or entry is not None

        if not recorded and comment:
            ticket.add_comment(comment, actor_id, at=now)

        ticket = await self._ticket_repo.save(ticket)

        if self._metrics is not None and request.status is not None:
            self._metrics.tickets_total.inc(status=ticket.status)

        logger.info(
            "Ticket updated",
            extra={
                "ticket_id": ticket.ticket_id,
                "previous_status": previous_status,
                "status": ticket.status,
                "priority": ticket.priority,
                "actor_id": actor_id,
            }
        )
        return ticket

    async def delete_ticket(self, identifier: str, actor_id: str) -> Ticket:
        """Soft delete: close the ticket and flag it inactive."""
        ticket = await self.get_ticket(identifier)
        if not ticket.is_active:
            raise DomainException(
                f"Ticket {ticket.ticket_id} is already deleted",
                {"ticket_id": ticket.ticket_id}
            )

        ticket.soft_delete(actor_id, at=self._clock())
        ticket = await self._ticket_repo.save(ticket)

        if self._metrics is not None:
            self._metrics.tickets_total.inc(status=TicketStatus.CLOSED.value)

        logger.info(
            "Ticket deleted",
            extra={"ticket_id": ticket.ticket_id, "actor_id": actor_id}
        )
        return ticket
