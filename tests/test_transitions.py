"""
tests/test_transitions.py
Unit tests for the booking and ticket status tables.
"""

import pytest

from shared.exceptions import AuthorizationError, ConflictError
from shared.models.models import BookingStatus, TicketStatus, UserRole
from shared.utils.transitions import (
    can_transition_booking,
    check_booking_transition,
    check_ticket_transition,
    next_ticket_status,
)

B = BookingStatus


@pytest.mark.parametrize("current,target", [
    (B.PENDING, B.ASSIGNED),
    (B.PENDING, B.CANCELLED),
    (B.ASSIGNED, B.IN_PROGRESS),
    (B.ASSIGNED, B.COMPLETED),
    (B.ASSIGNED, B.CANCELLED),
    (B.IN_PROGRESS, B.COMPLETED),
])
def test_legal_booking_moves(current, target):
    assert can_transition_booking(current, target)


@pytest.mark.parametrize("current,target", [
    (B.PENDING, B.IN_PROGRESS),
    (B.PENDING, B.COMPLETED),
    (B.ASSIGNED, B.PENDING),
    (B.IN_PROGRESS, B.CANCELLED),
    (B.IN_PROGRESS, B.ASSIGNED),
    (B.COMPLETED, B.CANCELLED),
    (B.CANCELLED, B.PENDING),
])
def test_illegal_booking_moves(current, target):
    assert not can_transition_booking(current, target)
    with pytest.raises(ConflictError):
        check_booking_transition(current, target)


def test_terminal_statuses_have_no_exits():
    for terminal in (B.COMPLETED, B.CANCELLED):
        assert not any(can_transition_booking(terminal, target) for target in B)


@pytest.mark.parametrize("role", [UserRole.PROVIDER, UserRole.CUSTOMER, UserRole.ADMIN])
def test_nobody_requests_assigned_directly(role):
    """Only the assignment flow moves a booking to `assigned`."""
    with pytest.raises(AuthorizationError):
        check_booking_transition(B.PENDING, B.ASSIGNED, role)


def test_customer_may_only_cancel():
    check_booking_transition(B.PENDING, B.CANCELLED, UserRole.CUSTOMER)
    with pytest.raises(AuthorizationError):
        check_booking_transition(B.ASSIGNED, B.COMPLETED, UserRole.CUSTOMER)


def test_assignment_flow_has_no_actor_role():
    check_booking_transition(B.PENDING, B.ASSIGNED)


def test_ticket_sequence():
    assert next_ticket_status(TicketStatus.OPEN) == TicketStatus.IN_PROGRESS
    assert next_ticket_status(TicketStatus.IN_PROGRESS) == TicketStatus.RESOLVED
    assert next_ticket_status(TicketStatus.RESOLVED) == TicketStatus.CLOSED
    assert next_ticket_status(TicketStatus.CLOSED) is None


@pytest.mark.parametrize("current,target", [
    (TicketStatus.OPEN, TicketStatus.RESOLVED),
    (TicketStatus.OPEN, TicketStatus.CLOSED),
    (TicketStatus.RESOLVED, TicketStatus.IN_PROGRESS),
    (TicketStatus.IN_PROGRESS, TicketStatus.IN_PROGRESS),
    (TicketStatus.CLOSED, TicketStatus.OPEN),
])
def test_ticket_skips_and_reversals_refused(current, target):
    with pytest.raises(ConflictError):
        check_ticket_transition(current, target)
