"""Ticket entity lifecycle and history tests"""

from datetime import timedelta

import pytest

from core import DomainException
from tickets.domain import CREATED_COMMENT, SLAPolicy, Ticket, TicketIdentifier

CUSTOMER = "0f8fad5b-d9cb-469f-a165-70867728950e"
TECH = "7c9e6679-7425-40de-944b-e07fc1f90ae7"


def open_ticket(t0, priority="medium"):
    return Ticket.open(
        title="Internet is down",
        description="No connection since this morning.",
        category="connection",
        requester_id=CUSTOMER,
        priority=priority,
        now=t0,
    )


class TestOpen:

    def test_initial_state(self, t0):
        ticket = open_ticket(t0, "high")

        assert ticket.status == "open"
        assert ticket.is_active
        assert ticket.created_at == t0
        assert ticket.sla_deadline == t0 + timedelta(hours=12)
        assert ticket.resolved_at is None
        assert len(ticket.history) == 1
        entry = ticket.history[0]
        assert entry.status == "open"
        assert entry.comment == CREATED_COMMENT
        assert entry.actor_id == CUSTOMER
        assert entry.timestamp == t0

    def test_priority_defaults_to_medium(self, t0):
        ticket = Ticket.open(
            title="Slow speed",
            description="Speed is a tenth of my plan.",
            category="speed",
            requester_id=CUSTOMER,
            now=t0,
        )
        assert ticket.priority == "medium"
        assert ticket.sla_deadline == t0 + timedelta(hours=24)

    def test_policy_is_applied(self, t0):
        ticket = Ticket.open(
            title="Router broken",
            description="Router does not power on.",
            category="configuration",
            requester_id=CUSTOMER,
            priority="critical",
            now=t0,
            policy=SLAPolicy(resolution_hours={"critical": 1}),
        )
        assert ticket.sla_deadline == t0 + timedelta(hours=1)


class TestTransitions:

    def test_status_tracks_last_history_entry(self, t0):
        ticket = open_ticket(t0)
        ticket.transition("in_progress", None, TECH, at=t0 + timedelta(hours=1))
        ticket.transition("resolved", "Fixed", TECH, at=t0 + timedelta(hours=2))

        assert ticket.status == ticket.history[-1].status == "resolved"
        assert len(ticket.history) == 3
        assert ticket.history[1].comment == "Status changed to in_progress"
        assert ticket.updated_at == t0 + timedelta(hours=2)

    def test_any_status_may_follow_any_other(self, t0):
        ticket = open_ticket(t0)
        ticket.transition("closed", None, TECH, at=t0)
        ticket.transition("open", "Reopened", TECH, at=t0)
        assert ticket.status == "open"

    def test_resolving_stamps_resolved_at_and_it_is_never_cleared(self, t0):
        ticket = open_ticket(t0)
        first = t0 + timedelta(hours=3)
        ticket.transition("resolved", None, TECH, at=first)
        assert ticket.resolved_at == first

        ticket.transition("open", "Problem is back", CUSTOMER, at=first + timedelta(hours=1))
        assert ticket.resolved_at == first

        second = first + timedelta(hours=5)
        ticket.transition("resolved", None, TECH, at=second)
        assert ticket.resolved_at == second

        ticket.transition("closed", None, TECH, at=second + timedelta(hours=1))
        assert ticket.resolved_at == second

    def test_invalid_status(self, t0):
        ticket = open_ticket(t0)
        with pytest.raises(DomainException):
            ticket.transition("pending", None, TECH)
        assert len(ticket.history) == 1

    def test_critical_resolved_within_sla(self, t0):
        ticket = open_ticket(t0, "critical")
        ticket.transition("in_progress", None, TECH, at=t0 + timedelta(hours=1))
        ticket.transition("resolved", None, TECH, at=t0 + timedelta(hours=3))

        assert ticket.resolved_within_sla is True
        assert not ticket.is_overdue(t0 + timedelta(hours=10))

    def test_first_response_is_second_history_entry(self, t0):
        ticket = open_ticket(t0)
        assert ticket.first_response_at is None
        ticket.add_comment("Looking into it", TECH, at=t0 + timedelta(minutes=30))
        assert ticket.first_response_at == t0 + timedelta(minutes=30)


class TestPriorityAndAssignment:

    def test_priority_change_restarts_sla_clock(self, t0):
        ticket = open_ticket(t0, "low")
        changed_at = t0 + timedelta(hours=2)

        entry = ticket.change_priority("critical", TECH, at=changed_at)

        assert ticket.priority == "critical"
        assert ticket.sla_deadline == changed_at + timedelta(hours=4)
        assert entry.status == "open"
        assert entry.comment == "Priority changed to critical"
        assert len(ticket.history) == 2

    def test_same_priority_is_a_no_op(self, t0):
        ticket = open_ticket(t0, "high")
        deadline = ticket.sla_deadline
        assert ticket.change_priority("high", TECH, at=t0 + timedelta(hours=1)) is None
        assert ticket.sla_deadline == deadline
        assert len(ticket.history) == 1

    def test_invalid_priority(self, t0):
        with pytest.raises(DomainException):
            open_ticket(t0).change_priority("urgent", TECH)

    def test_assign_keeps_status(self, t0):
        ticket = open_ticket(t0)
        ticket.transition("in_progress", None, TECH, at=t0)
        ticket.assign(TECH, TECH, at=t0)

        assert ticket.assignee_id == TECH
        assert ticket.history[-1].status == "in_progress"


class TestOverdue:

    def test_only_active_tickets_are_overdue(self, t0):
        ticket = open_ticket(t0, "critical")
        later = t0 + timedelta(hours=5)
        assert ticket.is_overdue(later)

        ticket.transition("closed", None, TECH, at=later)
        assert not ticket.is_overdue(later)

    def test_not_overdue_at_exact_deadline(self, t0):
        ticket = open_ticket(t0, "critical")
        assert not ticket.is_overdue(ticket.sla_deadline)


class TestIdentifierAndDeletion:

    def test_identifier_assigned_once(self, t0):
        ticket = open_ticket(t0)
        ticket.assign_ticket_id(TicketIdentifier(2024, 7))
        assert ticket.ticket_id == "TK-2024-007"

        with pytest.raises(DomainException):
            ticket.assign_ticket_id(TicketIdentifier(2024, 8))

    def test_malformed_identifier(self, t0):
        with pytest.raises(DomainException):
            open_ticket(t0).assign_ticket_id("T-1")

    def test_soft_delete_closes_and_keeps_history(self, t0):
        ticket = open_ticket(t0)
        ticket.soft_delete(TECH, at=t0 + timedelta(hours=1))

        assert not ticket.is_active
        assert ticket.status == "closed"
        assert len(ticket.history) == 2
        assert ticket.history[0].status == "open"
