"""
Ticket Domain Layer
===================

Domain layer for the ticket lifecycle module.

Contains:
- Entities: Ticket, HistoryEntry, GeoLocation
- Value Objects: SLAPolicy, TicketIdentifier
- Domain Services: SLACalculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from tickets.domain.entities import (
    Ticket,
    HistoryEntry,
    GeoLocation,
    CREATED_COMMENT,
    DELETED_COMMENT,
)
from tickets.domain.value_objects import (
    SLACalculator,
    SLAPolicy,
    TicketIdentifier,
    DEFAULT_SLA_POLICY,
    DEFAULT_SLA_HOURS,
)

__all__ = [
    # Entities
    "Ticket",
    "HistoryEntry",
    "GeoLocation",
    "CREATED_COMMENT",
    "DELETED_COMMENT",
    # Value Objects & Services
    "SLACalculator",
    "SLAPolicy",
    "TicketIdentifier",
    "DEFAULT_SLA_POLICY",
    "DEFAULT_SLA_HOURS",
]
