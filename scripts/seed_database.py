#!/usr/bin/env python3
"""
Seed Database
=============

Recreates the schema and loads sample users and tickets for local runs:
an administrator, a technician, two customers and one ticket in each
status, created at random times over the last 30 days.

Usage:
    python scripts/seed_database.py
"""

import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from config import settings  # noqa: E402
from infrastructure.database import (  # noqa: E402
    close_database, create_tables, drop_tables, get_session_context, init_database
)
from shared.infrastructure.logging import get_logger, setup_logging  # noqa: E402
from tickets.application import (  # noqa: E402
    StaticSLAPolicyProvider, TicketCreateRequest, TicketService, TicketUpdateRequest
)
from tickets.infrastructure import (  # noqa: E402
    SLAPolicyManager, SQLAlchemyTicketCounter, SQLAlchemyTicketRepository
)
from users.application import UserCreateRequest, UserService  # noqa: E402
from users.infrastructure import SQLAlchemyUserRepository  # noqa: E402

logger = get_logger("seed_database")

SAMPLE_USERS = [
    {"name": "System Admin", "email": "admin@example.com", "password": "admin123", "role": "admin"},
    {"name": "Support Technician", "email": "tech@example.com", "password": "tech123", "role": "technician"},
    {"name": "John Smith", "email": "john@example.com", "password": "john123", "role": "customer"},
    {"name": "Mary Johnson", "email": "mary@example.com", "password": "mary123", "role": "customer"},
]


class SeedClock:
    """Settable clock so sample tickets get back-dated timestamps."""

    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def random_recent_time(days: int = 30) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=random.randint(0, days - 1))


async def seed_users() -> dict:
    async with get_session_context() as session:
        service = UserService(SQLAlchemyUserRepository(session))
        users = {}
        for data in SAMPLE_USERS:
            user = await service.create_user(UserCreateRequest(**data))
            users[user.role if user.role != "customer" else user.email] = user
    return users


async def seed_tickets(users: dict) -> int:
    admin = users["admin"]
    tech = users["technician"]
    john = users["john@example.com"]
    mary = users["mary@example.com"]

    policy = SLAPolicyManager().load(settings.sla_config_path)
    clock = SeedClock()

    async with get_session_context() as session:
        service = TicketService(
            ticket_repository=SQLAlchemyTicketRepository(session),
            counter=SQLAlchemyTicketCounter(session),
            policy_provider=StaticSLAPolicyProvider(policy),
            clock=clock,
        )

        # Open
        clock.now = random_recent_time()
        await service.create_ticket(
            TicketCreateRequest(
                title="Slow internet during peak hours",
                description="My connection gets very slow every day between 7pm and 10pm.",
                category="speed",
                priority="medium",
            ),
            requester_id=john.id,
            client_ip="187.54.123.45",
        )

        # In progress
        clock.now = random_recent_time()
        ticket = await service.create_ticket(
            TicketCreateRequest(
                title="Connection keeps dropping",
                description="My internet drops several times a day and I have to restart the router.",
                category="instability",
                priority="high",
            ),
            requester_id=mary.id,
            client_ip="187.54.123.46",
        )
        clock.now += timedelta(hours=2)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(
                status="in_progress",
                assignee_id=tech.id,
                comment="Starting to analyse the problem",
            ),
            actor_id=tech.id,
        )

        # Resolved two days after opening
        clock.now = random_recent_time()
        ticket = await service.create_ticket(
            TicketCreateRequest(
                title="Cannot reach some websites",
                description="Some sites such as streaming services don't load, others work normally.",
                category="connection",
                priority="medium",
            ),
            requester_id=john.id,
            client_ip="187.54.123.45",
        )
        opened_at = clock.now
        clock.now = opened_at + timedelta(hours=6)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(status="in_progress", assignee_id=tech.id, comment="Checking DNS settings"),
            actor_id=tech.id,
        )
        clock.now = opened_at + timedelta(days=2)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(status="resolved", comment="DNS settings adjusted, problem solved."),
            actor_id=tech.id,
        )

        # Closed a day after resolution
        clock.now = random_recent_time()
        ticket = await service.create_ticket(
            TicketCreateRequest(
                title="Router does not power on",
                description="My router stopped working completely, no lights at all.",
                category="configuration",
                priority="critical",
            ),
            requester_id=mary.id,
            client_ip="187.54.123.46",
        )
        opened_at = clock.now
        clock.now = opened_at + timedelta(hours=1)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(status="in_progress", assignee_id=tech.id, comment="Sending a technician on site"),
            actor_id=tech.id,
        )
        clock.now = opened_at + timedelta(days=1)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(status="resolved", comment="Router replaced with new equipment"),
            actor_id=tech.id,
        )
        clock.now = opened_at + timedelta(days=2)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(status="closed", comment="Customer confirmed the problem is solved"),
            actor_id=admin.id,
        )

    return 4


async def main() -> None:
    setup_logging(settings.log_level, settings.environment)
    init_database()
    try:
        await drop_tables()
        await create_tables()
        logger.info("Schema recreated", extra={"database_url": settings.database_url.split("@")[-1]})

        users = await seed_users()
        logger.info("Users created", extra={"count": len(users)})

        count = await seed_tickets(users)
        logger.info("Tickets created", extra={"count": count})
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
