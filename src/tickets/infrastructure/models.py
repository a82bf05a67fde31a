"""
Ticket Infrastructure Models
============================

SQLAlchemy ORM models for the ticket module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config import Priority, TicketStatus
from infrastructure.database import Base, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Business identifier (TK-<year>-<seq>)
    ticket_id: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)

    # Content
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TicketStatus.OPEN.value, index=True)
    priority: Mapped[str] = mapped_column(String(32), nullable=False, default=Priority.MEDIUM.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # User references (no FK: the store does not enforce referential integrity)
    requester_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    assignee_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True, index=True)

    # Origin
    client_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    client_location: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sla_deadline: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    history: Mapped[List["TicketHistoryModel"]] = relationship(
        back_populates="ticket",
        order_by="TicketHistoryModel.position",
        lazy="selectin",
        cascade="save-update, merge",
    )

    __table_args__ = (
        Index("ix_tickets_status_sla_deadline", "status", "sla_deadline"),
    )


class TicketHistoryModel(Base):
    """
    Database model for a ticket history entry.

    Maps to the 'ticket_history' table. Rows are only ever inserted;
    ``position`` fixes the order of the audit trail.
    """
    __tablename__ = "ticket_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_pk: Mapped[UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    ticket: Mapped[TicketModel] = relationship(back_populates="history")

    __table_args__ = (
        UniqueConstraint("ticket_pk", "position", name="uq_ticket_history_position"),
    )


class TicketCounterModel(Base):
    """
    Last issued ticket sequence number per year.

    Maps to the 'ticket_counters' table.
    """
    __tablename__ = "ticket_counters"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
