"""
Ticket Infrastructure Layer
===========================

Infrastructure implementations for the ticket module:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer and the per-year ticket counter
- External: Geo-IP client and SLA policy file watcher
"""

from tickets.infrastructure.models import TicketCounterModel, TicketHistoryModel, TicketModel
from tickets.infrastructure.repositories import (
    SQLAlchemyAssigneeDirectory,
    SQLAlchemyTicketCounter,
    SQLAlchemyTicketRepository,
)
from tickets.infrastructure.external import (
    GeoIPClient,
    SLAPolicyManager,
    is_public_ip,
    sla_policy_manager,
)

__all__ = [
    "TicketModel",
    "TicketHistoryModel",
    "TicketCounterModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyTicketCounter",
    "SQLAlchemyAssigneeDirectory",
    "GeoIPClient",
    "SLAPolicyManager",
    "is_public_ip",
    "sla_policy_manager",
]
