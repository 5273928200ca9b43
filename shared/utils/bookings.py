"""
shared/utils/bookings.py
Booking helpers shared by the customer, provider, and admin routers:
lookups, the audit trail, and the guarded status write.
"""

import logging
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import NotFoundError
from shared.models.models import (
    BookingAssignment,
    BookingAuditLog,
    BookingRequest,
    BookingStatus,
    ProviderProfile,
    User,
    UserRole,
)
from shared.schemas.schemas import BookingResponse
from shared.utils.transitions import check_booking_transition
from shared.utils.versioning import flush_or_conflict

logger = logging.getLogger(__name__)


async def get_booking_or_404(booking_id: UUID, db: AsyncSession) -> BookingRequest:
    result = await db.execute(select(BookingRequest).where(BookingRequest.id == booking_id))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def latest_assignments(
    booking_ids: Sequence[UUID],
    db: AsyncSession,
) -> dict[UUID, tuple[BookingAssignment, ProviderProfile]]:
    """Most recent assignment (and its provider) per booking."""
    if not booking_ids:
        return {}
    result = await db.execute(
        select(BookingAssignment, ProviderProfile)
        .join(ProviderProfile, ProviderProfile.id == BookingAssignment.provider_id)
        .where(BookingAssignment.booking_id.in_(booking_ids))
        .order_by(BookingAssignment.created_at.asc())
    )
    # Later rows overwrite earlier ones
    return {row[0].booking_id: (row[0], row[1]) for row in result.all()}


async def current_provider_id(booking: BookingRequest, db: AsyncSession) -> Optional[UUID]:
    assignments = await latest_assignments([booking.id], db)
    if booking.id not in assignments:
        return None
    return assignments[booking.id][0].provider_id


async def to_booking_responses(
    bookings: Sequence[BookingRequest],
    db: AsyncSession,
) -> list[BookingResponse]:
    """Serialize bookings with the assigned provider filled in."""
    assignments = await latest_assignments([b.id for b in bookings], db)
    items = []
    for booking in bookings:
        response = BookingResponse.model_validate(booking)
        if booking.id in assignments:
            _, profile = assignments[booking.id]
            response.provider_id = profile.id
            response.provider_name = profile.business_name
        items.append(response)
    return items


async def to_booking_response(booking: BookingRequest, db: AsyncSession) -> BookingResponse:
    return (await to_booking_responses([booking], db))[0]


def log_status_change(
    db: AsyncSession,
    booking: BookingRequest,
    from_status: Optional[BookingStatus],
    to_status: BookingStatus,
    changed_by: Optional[User],
    reason: Optional[str] = None,
) -> None:
    """Append an immutable audit log entry for every status change."""
    db.add(BookingAuditLog(
        booking_id=booking.id,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value,
        changed_by_id=changed_by.id if changed_by else None,
        reason=reason,
    ))


async def change_booking_status(
    db: AsyncSession,
    booking: BookingRequest,
    target: BookingStatus,
    actor: User,
    actor_role: Optional[UserRole] = None,
    reason: Optional[str] = None,
) -> BookingRequest:
    """
    Validate `booking.status → target` against the transition table, then
    write it with a version check and record it in the audit trail.
    """
    current = booking.status
    check_booking_transition(current, target, actor_role)

    booking.status = target
    log_status_change(db, booking, current, target, actor, reason)
    await flush_or_conflict(db, "Booking")

    logger.info(f"Booking {booking.id}: {current.value} → {target.value} by {actor.id}")
    return booking
