"""
Ticket Application Layer
========================

Application layer for the ticket module.

Contains:
- Services: Orchestrate the ticket lifecycle and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from tickets.application.dto import (
    DeleteResponse,
    HistoryEntryResponse,
    LocationResponse,
    TicketCreateRequest,
    TicketListQuery,
    TicketResponse,
    TicketUpdateRequest,
)
from tickets.application.services import (
    GeoLookupResult,
    IAssigneeDirectory,
    IGeoIPLookup,
    ISLAPolicyProvider,
    ITicketCounter,
    ITicketRepository,
    StaticSLAPolicyProvider,
    TicketService,
)

__all__ = [
    # DTOs
    "TicketCreateRequest",
    "TicketUpdateRequest",
    "TicketListQuery",
    "TicketResponse",
    "HistoryEntryResponse",
    "LocationResponse",
    "DeleteResponse",
    # Services
    "TicketService",
    "StaticSLAPolicyProvider",
    "GeoLookupResult",
    # Interfaces
    "ITicketRepository",
    "ITicketCounter",
    "ISLAPolicyProvider",
    "IAssigneeDirectory",
    "IGeoIPLookup",
]
