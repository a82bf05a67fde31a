"""Ticket service scenarios against a real database"""

from datetime import timedelta
from typing import Optional
from uuid import uuid4

import pytest

from core import (
    AuthorizationException, DomainException, ResourceNotFoundException, ValidationException
)
from shared.infrastructure.metrics import MetricsRegistry
from tickets.application import (
    GeoLookupResult, IGeoIPLookup, StaticSLAPolicyProvider, TicketCreateRequest,
    TicketListQuery, TicketService, TicketUpdateRequest
)
from tickets.domain import GeoLocation, SLAPolicy
from tickets.infrastructure import (
    SQLAlchemyAssigneeDirectory, SQLAlchemyTicketCounter, SQLAlchemyTicketRepository
)


class FakeGeoIP(IGeoIPLookup):
    def __init__(self, result: GeoLookupResult):
        self.result = result
        self.calls = []

    async def lookup(self, client_ip: Optional[str] = None) -> GeoLookupResult:
        self.calls.append(client_ip)
        return self.result


@pytest.fixture
async def staff(create_user):
    tech = await create_user("Tech One", "tech@example.com", role="technician")
    customer = await create_user("Customer One", "customer@example.com")
    return tech, customer


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture
def make_service(session, clock, metrics):
    def factory(geoip=None, policy=None):
        return TicketService(
            ticket_repository=SQLAlchemyTicketRepository(session),
            counter=SQLAlchemyTicketCounter(session),
            policy_provider=StaticSLAPolicyProvider(policy),
            geoip=geoip,
            assignees=SQLAlchemyAssigneeDirectory(session),
            metrics=metrics,
            clock=clock,
        )
    return factory


def create_request(priority="medium", title="Internet is down"):
    return TicketCreateRequest(
        title=title,
        description="No connection since this morning.",
        category="connection",
        priority=priority,
    )


class TestCreateTicket:

    async def test_identifier_deadline_and_history(self, make_service, staff, t0):
        _, customer = staff
        service = make_service()

        first = await service.create_ticket(create_request("critical"), customer.id, "127.0.0.1")
        second = await service.create_ticket(create_request(), customer.id, "127.0.0.1")

        assert first.ticket_id == "TK-2024-001"
        assert second.ticket_id == "TK-2024-002"
        assert first.sla_deadline == t0 + timedelta(hours=4)
        assert first.requester_id == customer.id
        assert first.client_ip == "127.0.0.1"
        assert len(first.history) == 1

    async def test_geolocation_is_attached(self, make_service, staff):
        _, customer = staff
        location = GeoLocation(country="Brazil", city="Sao Paulo")
        geoip = FakeGeoIP(GeoLookupResult(ip="187.54.123.45", location=location))

        ticket = await make_service(geoip=geoip).create_ticket(create_request(), customer.id, "10.0.0.7")

        assert geoip.calls == ["10.0.0.7"]
        assert ticket.client_ip == "187.54.123.45"
        assert ticket.location == location

    async def test_failed_lookup_does_not_block_creation(self, make_service, staff):
        _, customer = staff
        geoip = FakeGeoIP(GeoLookupResult(ip=None, location=None))

        ticket = await make_service(geoip=geoip).create_ticket(create_request(), customer.id, "10.0.0.7")

        assert ticket.ticket_id == "TK-2024-001"
        assert ticket.client_ip == "10.0.0.7"
        assert ticket.location is None

    async def test_policy_provider_is_used(self, make_service, staff, t0):
        _, customer = staff
        service = make_service(policy=SLAPolicy(resolution_hours={"high": 6}))

        ticket = await service.create_ticket(create_request("high"), customer.id)

        assert ticket.sla_deadline == t0 + timedelta(hours=6)

    async def test_metrics_recorded(self, make_service, staff, metrics):
        _, customer = staff
        await make_service().create_ticket(create_request(), customer.id)

        assert metrics.tickets_total.value(status="open") == 1
        [series] = metrics.ticket_response_time.snapshot()
        assert series.count == 1


class TestUpdateTicket:

    async def test_critical_ticket_resolved_within_sla(self, make_service, staff, clock, metrics, t0):
        tech, customer = staff
        service = make_service()
        ticket = await service.create_ticket(create_request("critical"), customer.id)

        clock.advance(hours=1)
        await service.update_ticket(
            ticket.ticket_id,
            TicketUpdateRequest(status="in_progress", assignee_id=tech.id, comment="Checking the line"),
            actor_id=tech.id,
        )
        clock.advance(hours=2)
        ticket = await service.update_ticket(
            ticket.ticket_id, TicketUpdateRequest(status="resolved"), actor_id=tech.id
        )

        assert ticket.status == "resolved"
        assert ticket.resolved_at == t0 + timedelta(hours=3)
        assert ticket.resolved_within_sla is True
        assert ticket.assignee_id == tech.id
        assert [e.status for e in ticket.history] == ["open", "in_progress", "in_progress", "resolved"]
        assert ticket.history[1].comment == "Checking the line"
        assert ticket.history[2].comment == "Ticket assigned to a new technician"
        assert metrics.tickets_total.value(status="resolved") == 1

    async def test_comment_only_update(self, make_service, staff, clock):
        tech, customer = staff
        service = make_service()
        ticket = await service.create_ticket(create_request(), customer.id)

        clock.advance(minutes=20)
        ticket = await service.update_ticket(
            ticket.ticket_id, TicketUpdateRequest(comment="Called the customer"), actor_id=tech.id
        )

        assert ticket.status == "open"
        assert ticket.history[-1].comment == "Called the customer"
        assert ticket.first_response_at == clock.now

    async def test_priority_change_recomputes_deadline(self, make_service, staff, clock):
        tech, customer = staff
        service = make_service()
        ticket = await service.create_ticket(create_request("low"), customer.id)

        changed_at = clock.advance(hours=5)
        ticket = await service.update_ticket(
            ticket.ticket_id, TicketUpdateRequest(priority="critical"), actor_id=tech.id
        )

        assert ticket.priority == "critical"
        assert ticket.sla_deadline == changed_at + timedelta(hours=4)
        assert len(ticket.history) == 2

    async def test_assignee_must_be_active_staff(self, make_service, staff):
        tech, customer = staff
        service = make_service()
        ticket = await service.create_ticket(create_request(), customer.id)

        with pytest.raises(ValidationException):
            await service.update_ticket(
                ticket.ticket_id, TicketUpdateRequest(assignee_id=customer.id), actor_id=tech.id
            )
        with pytest.raises(ValidationException):
            await service.update_ticket(
                ticket.ticket_id, TicketUpdateRequest(assignee_id=str(uuid4())), actor_id=tech.id
            )

    async def test_missing_ticket(self, make_service, staff):
        tech, _ = staff
        with pytest.raises(ResourceNotFoundException):
            await make_service().update_ticket(
                "TK-2024-404", TicketUpdateRequest(status="closed"), actor_id=tech.id
            )

    async def test_deleted_ticket_cannot_be_updated(self, make_service, staff):
        tech, customer = staff
        service = make_service()
        ticket = await service.create_ticket(create_request(), customer.id)
        await service.delete_ticket(ticket.ticket_id, actor_id=tech.id)

        with pytest.raises(DomainException):
            await service.update_ticket(
                ticket.ticket_id, TicketUpdateRequest(status="open"), actor_id=tech.id
            )
        with pytest.raises(DomainException):
            await service.delete_ticket(ticket.ticket_id, actor_id=tech.id)


class TestQueries:

    async def test_customer_can_only_read_own_ticket(self, make_service, staff, create_user):
        _, customer = staff
        other = await create_user("Customer Two", "other@example.com")
        service = make_service()
        ticket = await service.create_ticket(create_request(), customer.id)

        assert (await service.get_ticket(ticket.ticket_id, requester_id=customer.id)).id == ticket.id
        with pytest.raises(AuthorizationException):
            await service.get_ticket(ticket.ticket_id, requester_id=other.id)

    async def test_list_scoped_to_requester(self, make_service, staff, create_user, clock):
        _, customer = staff
        other = await create_user("Customer Two", "other@example.com")
        service = make_service()
        await service.create_ticket(create_request(), customer.id)
        clock.advance(minutes=1)
        await service.create_ticket(create_request(priority="high"), other.id)

        mine = await service.list_tickets(TicketListQuery(), requester_id=customer.id)
        everyone = await service.list_tickets(TicketListQuery())
        high = await service.list_tickets(TicketListQuery(priority="high"))

        assert [t.requester_id for t in mine] == [customer.id]
        assert [t.ticket_id for t in everyone] == ["TK-2024-002", "TK-2024-001"]
        assert [t.requester_id for t in high] == [other.id]

    async def test_soft_delete(self, make_service, staff, metrics):
        tech, customer = staff
        service = make_service()
        ticket = await service.create_ticket(create_request(), customer.id)

        deleted = await service.delete_ticket(ticket.ticket_id, actor_id=tech.id)

        assert deleted.status == "closed"
        assert not deleted.is_active
        assert await service.list_tickets(TicketListQuery()) == []
        assert len(await service.list_tickets(TicketListQuery(include_deleted=True))) == 1
        assert metrics.tickets_total.value(status="closed") == 1
