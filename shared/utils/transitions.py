"""
shared/utils/transitions.py
Status transition tables for bookings and support tickets.
Every write that changes one of these statuses goes through here first.
"""

from shared.exceptions import AuthorizationError, ConflictError
from shared.models.models import BookingStatus, TicketStatus, UserRole


# ── Booking ───────────────────────────────────────────────────

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {BookingStatus.ASSIGNED, BookingStatus.CANCELLED},
    BookingStatus.ASSIGNED: {
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.IN_PROGRESS: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

# Target statuses each actor may request directly. `assigned` is absent on
# purpose: it is only reachable through an admin assignment.
BOOKING_ACTOR_TARGETS: dict[UserRole, set[BookingStatus]] = {
    UserRole.PROVIDER: {
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    UserRole.CUSTOMER: {BookingStatus.CANCELLED},
    UserRole.ADMIN: {BookingStatus.CANCELLED},
}


def can_transition_booking(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[current]


def check_booking_transition(
    current: BookingStatus,
    target: BookingStatus,
    actor_role: UserRole | None = None,
) -> None:
    """
    Raise unless `current → target` is legal, and, when an actor role is
    given, unless that role may request `target`.
    """
    if actor_role is not None and target not in BOOKING_ACTOR_TARGETS[actor_role]:
        raise AuthorizationError(
            f"A {actor_role.value} cannot move a booking to '{target.value}'"
        )
    if not can_transition_booking(current, target):
        raise ConflictError(
            f"Cannot move booking from '{current.value}' to '{target.value}'"
        )


# ── Support Ticket ────────────────────────────────────────────

TICKET_SEQUENCE: list[TicketStatus] = [
    TicketStatus.OPEN,
    TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED,
    TicketStatus.CLOSED,
]


def next_ticket_status(current: TicketStatus) -> TicketStatus | None:
    """The only status a ticket may move to next, or None once closed."""
    index = TICKET_SEQUENCE.index(current)
    if index + 1 < len(TICKET_SEQUENCE):
        return TICKET_SEQUENCE[index + 1]
    return None


def check_ticket_transition(current: TicketStatus, target: TicketStatus) -> None:
    expected = next_ticket_status(current)
    if expected is None:
        raise ConflictError("Ticket is already closed")
    if target != expected:
        raise ConflictError(
            f"Ticket in '{current.value}' can only move to '{expected.value}'"
        )
