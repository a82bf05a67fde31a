"""
Ticket Application DTOs
=======================

Data Transfer Objects for the ticket API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from tickets.domain import Ticket


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["critical", "high", "medium", "low"]
TicketStatusStr = Literal["open", "in_progress", "resolved", "closed"]
TicketCategoryStr = Literal["connection", "speed", "instability", "configuration", "other"]


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request model for opening a ticket."""
    title: str = Field(..., min_length=5, max_length=100, description="Short summary of the problem")
    description: str = Field(..., min_length=10, max_length=1000, description="Detailed description")
    category: TicketCategoryStr = Field(..., description="Problem category")
    priority: PriorityStr = Field(default="medium", description="Ticket priority")

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_whitespace(cls, v):
        return v.strip() if isinstance(v, str) else v


class TicketUpdateRequest(BaseModel):
    """
    Request model for a technician or admin update.

    Every field is optional but at least one must be given. ``comment`` is
    recorded on the first history entry the update produces.
    """
    status: Optional[TicketStatusStr] = None
    priority: Optional[PriorityStr] = None
    assignee_id: Optional[str] = Field(None, description="User ID of the new assignee")
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)

    @field_validator("assignee_id")
    @classmethod
    def validate_assignee_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            return str(UUID(v))
        except ValueError:
            raise ValueError("assignee_id must be a valid user ID")

    @model_validator(mode="after")
    def require_one_field(self) -> "TicketUpdateRequest":
        if not any((self.status, self.priority, self.assignee_id, self.comment)):
            raise ValueError("At least one of status, priority, assignee_id or comment is required")
        return self


class TicketListQuery(BaseModel):
    """Query parameters for ticket listing."""
    status: Optional[TicketStatusStr] = None
    priority: Optional[PriorityStr] = None
    category: Optional[TicketCategoryStr] = None
    assignee_id: Optional[str] = None
    include_deleted: bool = False
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    def to_filters(self) -> dict:
        """Filters understood by the ticket repository."""
        filters = {}
        for key in ("status", "priority", "category", "assignee_id"):
            value = getattr(self, key)
            if value is not None:
                filters[key] = value
        return filters


# ========== Response DTOs ==========

class HistoryEntryResponse(BaseModel):
    """One history log entry."""
    status: TicketStatusStr
    comment: Optional[str] = None
    actor_id: Optional[str] = None
    timestamp: datetime


class LocationResponse(BaseModel):
    """Client geolocation attached at creation."""
    country: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    isp: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


class TicketResponse(BaseModel):
    """Response model for a ticket including its history."""
    id: str = Field(..., description="Internal ticket UUID")
    ticket_id: str = Field(..., description="Human-readable identifier (TK-<year>-<seq>)")
    title: str
    description: str
    status: TicketStatusStr
    priority: PriorityStr
    category: TicketCategoryStr
    requester_id: str
    assignee_id: Optional[str] = None
    client_ip: Optional[str] = None
    client_location: Optional[LocationResponse] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    is_overdue: bool = Field(..., description="Active ticket past its SLA deadline")
    history: List[HistoryEntryResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, ticket: Ticket, now: Optional[datetime] = None) -> "TicketResponse":
        return cls(
            id=ticket.id,
            ticket_id=ticket.ticket_id,
            title=ticket.title,
            description=ticket.description,
            status=ticket.status,
            priority=ticket.priority,
            category=ticket.category,
            requester_id=ticket.requester_id,
            assignee_id=ticket.assignee_id,
            client_ip=ticket.client_ip,
            client_location=(
                LocationResponse(**ticket.location.to_dict()) if ticket.location else None
            ),
            is_active=ticket.is_active,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            resolved_at=ticket.resolved_at,
            sla_deadline=ticket.sla_deadline,
            is_overdue=ticket.is_overdue(now),
            history=[
                HistoryEntryResponse(
                    status=entry.status,
                    comment=entry.comment,
                    actor_id=entry.actor_id,
                    timestamp=entry.timestamp,
                )
                for entry in ticket.history
            ],
        )


class DeleteResponse(BaseModel):
    """Response model for soft deletion."""
    message: str
    ticket_id: str
