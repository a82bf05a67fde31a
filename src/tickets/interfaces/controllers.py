"""
Ticket Controllers (API Routes)
===============================

FastAPI routes for the ticket lifecycle and the geo-ip helper endpoints.

Controllers are thin - they delegate to application services.
"""

import ipaddress
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import STAFF_ROLES, UserRole, settings
from core import GeoIPException, ValidationException
from dashboard.application import MetricsAggregator, MetricsSummaryResponse
from dashboard.interfaces.controllers import get_metrics_aggregator
from infrastructure.database import get_session
from shared.api.dependencies import get_metrics_registry
from shared.infrastructure.logging import get_logger
from shared.infrastructure.metrics import MetricsRegistry
from tickets.application import (
    DeleteResponse, TicketCreateRequest, TicketListQuery, TicketResponse,
    TicketService, TicketUpdateRequest
)
from tickets.application.dto import PriorityStr, TicketCategoryStr, TicketStatusStr
from tickets.infrastructure import (
    GeoIPClient,
    SQLAlchemyAssigneeDirectory,
    SQLAlchemyTicketCounter,
    SQLAlchemyTicketRepository,
    sla_policy_manager,
)
from users.domain import User
from users.interfaces.dependencies import get_current_user, require_roles

logger = get_logger(__name__)
router = APIRouter(prefix="/api/tickets", tags=["Tickets"])
geoip_router = APIRouter(prefix="/api/external/geoip", tags=["External"])


# ========== Example payloads for Swagger ==========

TICKET_RESPONSE_EXAMPLE = {
    "id": "123e4567-e89b-12d3-a456-426614174000",
    "ticket_id": "TK-2024-001",
    "title": "Internet connection drops",
    "description": "My connection drops every few minutes since yesterday evening.",
    "status": "open",
    "priority": "high",
    "category": "instability",
    "requester_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
    "assignee_id": None,
    "client_ip": "203.0.113.7",
    "client_location": {
        "country": "Brazil",
        "region": "Sao Paulo",
        "city": "Sao Paulo",
        "isp": "Example Telecom",
        "lat": -23.55,
        "lon": -46.63
    },
    "is_active": True,
    "created_at": "2024-01-15T10:00:00Z",
    "updated_at": "2024-01-15T10:00:00Z",
    "resolved_at": None,
    "sla_deadline": "2024-01-15T22:00:00Z",
    "is_overdue": False,
    "history": [
        {
            "status": "open",
            "comment": "Ticket created",
            "actor_id": "0f8fad5b-d9cb-469f-a165-70867728950e",
            "timestamp": "2024-01-15T10:00:00Z"
        }
    ]
}


# ========== Dependencies ==========

def get_geoip_client(request: Request) -> Optional[GeoIPClient]:
    """Shared geo-ip client from app state; None when lookups are disabled."""
    if not settings.geoip_enabled:
        return None
    return getattr(request.app.state, "geoip_client", None)


def require_geoip_client(request: Request) -> GeoIPClient:
    client = getattr(request.app.state, "geoip_client", None)
    if client is None:
        raise GeoIPException("Geo-IP lookups are not configured")
    return client


async def get_ticket_service(
    session: AsyncSession = Depends(get_session),
    geoip: Optional[GeoIPClient] = Depends(get_geoip_client),
    metrics: MetricsRegistry = Depends(get_metrics_registry)
) -> TicketService:
    """Get ticket service instance."""
    return TicketService(
        ticket_repository=SQLAlchemyTicketRepository(session),
        counter=SQLAlchemyTicketCounter(session),
        policy_provider=sla_policy_manager,
        geoip=geoip,
        assignees=SQLAlchemyAssigneeDirectory(session),
        metrics=metrics,
    )


def _is_trusted_proxy(host: Optional[str]) -> bool:
    try:
        address = ipaddress.ip_address(host or "")
    except ValueError:
        return False
    return any(address in network for network in settings.trusted_proxies)


def client_ip_from_request(request: Request) -> Optional[str]:
    """
    First X-Forwarded-For hop when the socket peer is a trusted proxy,
    else the socket peer.
    """
    peer = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and _is_trusted_proxy(peer):
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return peer


def _own_tickets_only(user: User) -> Optional[str]:
    return user.id if user.role == UserRole.CUSTOMER.value else None


# ========== Route Handlers ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a ticket",
    description="""
    Open a support ticket on behalf of the authenticated user.

    **Categories**: `connection`, `speed`, `instability`, `configuration`, `other`

    **Priority Levels**: `critical` (4h), `high` (12h), `medium` (24h, default), `low` (48h)

    The SLA deadline is creation time plus the priority's offset. The
    client's location is looked up from its IP address when available; a
    failed lookup never fails ticket creation.
    """,
    responses={201: {"content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}}}
)
async def create_ticket(
    request: TicketCreateRequest,
    http_request: Request,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.create_ticket(
        request,
        requester_id=user.id,
        client_ip=client_ip_from_request(http_request),
    )
    return TicketResponse.from_domain(ticket)


@router.get(
    "",
    response_model=List[TicketResponse],
    summary="List tickets",
    description="""
    List tickets, newest first.

    Customers only see their own tickets. Deleted tickets are hidden unless
    `include_deleted=true`.
    """
)
async def list_tickets(
    status_filter: Optional[TicketStatusStr] = Query(None, alias="status"),
    priority: Optional[PriorityStr] = Query(None),
    category: Optional[TicketCategoryStr] = Query(None),
    assignee_id: Optional[str] = Query(None),
    include_deleted: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    query = TicketListQuery(
        status=status_filter,
        priority=priority,
        category=category,
        assignee_id=assignee_id,
        include_deleted=include_deleted,
        limit=limit,
        offset=offset,
    )
    tickets = await service.list_tickets(query, requester_id=_own_tickets_only(user))
    return [TicketResponse.from_domain(ticket) for ticket in tickets]


@router.get(
    "/metrics/summary",
    response_model=MetricsSummaryResponse,
    summary="Ticket summary metrics",
    description="Totals per status, overdue count and average resolution time in hours."
)
async def get_metrics_summary(
    _: User = Depends(require_roles(*STAFF_ROLES)),
    aggregator: MetricsAggregator = Depends(get_metrics_aggregator)
):
    return await aggregator.summary()


@router.get(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Get a ticket",
    description="Get a ticket with its full history, by UUID or `TK-<year>-<seq>` identifier.",
    responses={
        200: {"content": {"application/json": {"example": TICKET_RESPONSE_EXAMPLE}}},
        404: {"description": "Ticket not found"}
    }
)
async def get_ticket(
    ticket_id: str,
    user: User = Depends(get_current_user),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.get_ticket(ticket_id, requester_id=_own_tickets_only(user))
    return TicketResponse.from_domain(ticket)


@router.put(
    "/{ticket_id}",
    response_model=TicketResponse,
    summary="Update a ticket",
    description="""
    Change status, priority or assignee, or add a comment. Technicians and
    administrators only.

    Every change is appended to the ticket history. A priority change
    recomputes the SLA deadline from the time of the change.
    """
)
async def update_ticket(
    ticket_id: str,
    request: TicketUpdateRequest,
    user: User = Depends(require_roles(*STAFF_ROLES)),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.update_ticket(ticket_id, request, actor_id=user.id)
    return TicketResponse.from_domain(ticket)


@router.delete(
    "/{ticket_id}",
    response_model=DeleteResponse,
    summary="Delete a ticket",
    description="Soft delete: the ticket is closed and hidden, its data and history are kept. Administrators only."
)
async def delete_ticket(
    ticket_id: str,
    user: User = Depends(require_roles(UserRole.ADMIN)),
    service: TicketService = Depends(get_ticket_service)
):
    ticket = await service.delete_ticket(ticket_id, actor_id=user.id)
    return DeleteResponse(message="Ticket deleted", ticket_id=ticket.ticket_id)


# ========== Geo-IP Helpers ==========

@geoip_router.get(
    "/test",
    summary="Test geo-ip connectivity",
    description="Returns 503 when the public IP service cannot be reached."
)
async def test_geoip_connection(
    _: User = Depends(require_roles(*STAFF_ROLES)),
    client: GeoIPClient = Depends(require_geoip_client)
):
    if not await client.test_connection():
        raise GeoIPException("Connection test failed")
    return {"status": "success", "message": "Geo-IP service reachable"}


@geoip_router.get(
    "/client-ip",
    summary="Public IP of the service"
)
async def get_client_ip(
    _: User = Depends(get_current_user),
    client: GeoIPClient = Depends(require_geoip_client)
):
    ip = await client.get_client_ip()
    if not ip:
        raise GeoIPException("Could not determine the client IP")
    return {"status": "success", "ip": ip}


@geoip_router.get(
    "/ip-info",
    summary="Geolocation of the service's public IP"
)
@geoip_router.get(
    "/ip-info/{ip}",
    summary="Geolocation of an IP address"
)
async def get_ip_info(
    ip: Optional[str] = None,
    _: User = Depends(require_roles(*STAFF_ROLES)),
    client: GeoIPClient = Depends(require_geoip_client)
):
    ip = ip or await client.get_client_ip()
    if not ip:
        raise ValidationException(
            "No IP given and the client IP could not be determined",
            errors=["ip: required"]
        )

    info = await client.get_ip_info(ip)
    if info is None:
        raise GeoIPException(f"No geolocation available for {ip}")
    return {"status": "success", "ip": ip, "info": info.to_dict()}
