"""
Ticket Domain Entities
======================

Pure Python domain entities for the ticket lifecycle.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. The Ticket is the
only place where status, SLA deadline and the history log change, which
keeps the status equal to the status of the last history entry.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from config import (
    Priority, TicketStatus,
    ACTIVE_STATUSES, VALID_PRIORITIES, VALID_STATUSES
)
from core import DomainException
from tickets.domain.value_objects import (
    DEFAULT_SLA_POLICY, SLACalculator, SLAPolicy, TicketIdentifier
)

CREATED_COMMENT = "Ticket created"
DELETED_COMMENT = "Ticket deleted by administrator"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HistoryEntry:
    """
    One immutable record in a ticket's audit trail.

    Records the status the ticket had after the action, who acted, when,
    and an optional comment.
    """
    status: str
    comment: Optional[str]
    actor_id: Optional[str]
    timestamp: datetime


@dataclass(frozen=True)
class GeoLocation:
    """Approximate location of the client that opened a ticket."""
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    isp: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "country": self.country,
            "region": self.region,
            "city": self.city,
            "isp": self.isp,
            "lat": self.lat,
            "lon": self.lon,
        }


@dataclass
class Ticket:
    """
    Support ticket entity.

    Owns status, priority, SLA deadline and the append-only history log.
    """

    title: str
    description: str
    category: str
    requester_id: str
    priority: str = Priority.MEDIUM.value
    status: str = TicketStatus.OPEN.value

    id: Optional[str] = None
    ticket_id: Optional[str] = None
    assignee_id: Optional[str] = None
    client_ip: Optional[str] = None
    location: Optional[GeoLocation] = None
    is_active: bool = True

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None

    history: List[HistoryEntry] = field(default_factory=list)

    @classmethod
    def open(
        cls,
        title: str,
        description: str,
        category: str,
        requester_id: str,
        priority: Optional[str] = None,
        client_ip: Optional[str] = None,
        location: Optional[GeoLocation] = None,
        now: Optional[datetime] = None,
        policy: SLAPolicy = DEFAULT_SLA_POLICY
    ) -> "Ticket":
        """
        Create a new ticket as submitted by a customer.

        Computes the SLA deadline and appends the initial history entry.
        """
        now = now or _utcnow()
        ticket = cls(
            title=title,
            description=description,
            category=category,
            requester_id=requester_id,
            priority=priority or Priority.MEDIUM.value,
            client_ip=client_ip,
            location=location,
            created_at=now,
            updated_at=now,
        )
        ticket.calculate_sla(now, policy)
        ticket.transition(TicketStatus.OPEN.value, CREATED_COMMENT, requester_id, at=now)
        return ticket

    # ========== Queries ==========

    @property
    def is_sla_active(self) -> bool:
        """Whether the SLA clock is still running (open or in progress)."""
        return self.status in ACTIVE_STATUSES

    def is_overdue(self, current_time: Optional[datetime] = None) -> bool:
        """Active ticket whose deadline has strictly passed."""
        return self.is_sla_active and SLACalculator.is_overdue(
            self.sla_deadline, current_time or _utcnow()
        )

    @property
    def resolved_within_sla(self) -> Optional[bool]:
        return SLACalculator.resolved_within(self.sla_deadline, self.resolved_at)

    @property
    def first_response_at(self) -> Optional[datetime]:
        """Timestamp of the first action after creation (second history entry)."""
        return self.history[1].timestamp if len(self.history) > 1 else None

    # ========== Lifecycle ==========

    def assign_ticket_id(self, identifier: TicketIdentifier | str) -> None:
        """Set the human-readable identifier. Allowed exactly once."""
        if self.ticket_id is not None:
            raise DomainException(
                f"Ticket already has identifier {self.ticket_id}",
                {"ticket_id": self.ticket_id}
            )
        value = str(identifier)
        if not TicketIdentifier.is_valid(value):
            raise DomainException(f"Invalid ticket identifier: {value}")
        self.ticket_id = value

    def calculate_sla(
        self,
        now: Optional[datetime] = None,
        policy: SLAPolicy = DEFAULT_SLA_POLICY
    ) -> datetime:
        """Recompute and store the SLA deadline. Does not touch history."""
        self.sla_deadline = SLACalculator.calculate_deadline(self.priority, now or _utcnow(), policy)
        return self.sla_deadline

    def transition(
        self,
        status: str,
        comment: Optional[str],
        actor_id: Optional[str],
        at: Optional[datetime] = None
    ) -> HistoryEntry:
        """
        Move the ticket to ``status`` and record it in the history log.

        Any status may follow any other. Resolving stamps ``resolved_at``;
        later transitions never clear it.
        """
        status = getattr(status, "value", status)
        if status not in VALID_STATUSES:
            raise DomainException(
                f"Invalid status '{status}'",
                {"valid_statuses": VALID_STATUSES}
            )
        at = at or _utcnow()
        entry = HistoryEntry(
            status=status,
            comment=comment or f"Status changed to {status}",
            actor_id=actor_id,
            timestamp=at,
        )
        self.history.append(entry)
        self.status = status
        self.updated_at = at
        if status == TicketStatus.RESOLVED.value:
            self.resolved_at = at
        return entry

    def change_priority(
        self,
        priority: str,
        actor_id: Optional[str],
        comment: Optional[str] = None,
        at: Optional[datetime] = None,
        policy: SLAPolicy = DEFAULT_SLA_POLICY
    ) -> Optional[HistoryEntry]:
        """Change priority and restart the SLA clock from ``at``. No-op if unchanged."""
        priority = getattr(priority, "value", priority)
        if priority not in VALID_PRIORITIES:
            raise DomainException(
                f"Invalid priority '{priority}'",
                {"valid_priorities": VALID_PRIORITIES}
            )
        if priority == self.priority:
            return None
        at = at or _utcnow()
        self.priority = priority
        self.calculate_sla(at, policy)
        return self._record(comment or f"Priority changed to {priority}", actor_id, at)

    def assign(
        self,
        assignee_id: str,
        actor_id: Optional[str],
        comment: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> HistoryEntry:
        """Hand the ticket to a technician."""
        at = at or _utcnow()
        self.assignee_id = assignee_id
        return self._record(comment or "Ticket assigned to a new technician", actor_id, at)

    def add_comment(
        self,
        comment: str,
        actor_id: Optional[str],
        at: Optional[datetime] = None
    ) -> HistoryEntry:
        """Record a comment without changing anything else."""
        return self._record(comment, actor_id, at or _utcnow())

    def soft_delete(self, actor_id: Optional[str], at: Optional[datetime] = None) -> HistoryEntry:
        """Close the ticket and flag it inactive. Data and history are kept."""
        entry = self.transition(TicketStatus.CLOSED.value, DELETED_COMMENT, actor_id, at)
        self.is_active = False
        return entry

    def _record(self, comment: str, actor_id: Optional[str], at: datetime) -> HistoryEntry:
        # Non-status actions carry the current status so the last entry
        # still reflects it.
        entry = HistoryEntry(status=self.status, comment=comment, actor_id=actor_id, timestamp=at)
        self.history.append(entry)
        self.updated_at = at
        return entry
