"""
services/booking/router.py
Booking requests: submission, history, cancellation, and the provider's
progress updates.
States: PENDING → ASSIGNED → IN_PROGRESS → COMPLETED
        PENDING | ASSIGNED → CANCELLED
Assignment (PENDING → ASSIGNED) happens only through the admin service.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.exceptions import AuthorizationError
from shared.middleware.auth import SessionContext, get_session, require_customer, require_provider
from shared.models.models import BookingAuditLog, BookingRequest, BookingStatus, UserRole
from shared.schemas.schemas import (
    BookingAuditResponse,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingResponse,
    BookingStatusUpdate,
)
from shared.utils.bookings import (
    change_booking_status,
    current_provider_id,
    get_booking_or_404,
    log_status_change,
    to_booking_response,
    to_booking_responses,
)
from shared.utils.pagination import page_payload, paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ── Helpers ───────────────────────────────────────────────────

async def _check_can_view(booking: BookingRequest, session: SessionContext, db: AsyncSession) -> None:
    """Owner, the assigned provider, or an admin."""
    if session.is_admin or booking.customer_id == session.user.id:
        return
    profile = session.provider_profile
    if profile and await current_provider_id(booking, db) == profile.id:
        return
    raise AuthorizationError("Not authorized to view this booking")


# ── Submission ────────────────────────────────────────────────

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreateRequest,
    session: SessionContext = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Submit a booking request. It enters the admin queue as `pending`,
    unassigned. Urgency defaults to `normal` and the time slot to `morning`;
    every other value is stored exactly as sent.
    """
    booking = BookingRequest(
        customer_id=session.user.id,
        status=BookingStatus.PENDING,
        **data.model_dump(),
    )
    db.add(booking)
    await db.flush()

    log_status_change(db, booking, None, BookingStatus.PENDING, session.user)
    await db.commit()

    logger.info(f"Booking {booking.id} submitted by {session.user.id} ({booking.service_category.value})")
    return await to_booking_response(booking, db)


# ── History ───────────────────────────────────────────────────

@router.get("")
async def list_my_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=50),
    session: SessionContext = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """The caller's own bookings, newest first."""
    query = select(BookingRequest).where(BookingRequest.customer_id == session.user.id)
    if booking_status:
        query = query.where(BookingRequest.status == booking_status)
    query = query.order_by(BookingRequest.created_at.desc())

    rows, total = await paginate(db, query, page, page_size)
    items = await to_booking_responses([row[0] for row in rows], db)
    return page_payload(items, total, page, page_size)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking_or_404(booking_id, db)
    await _check_can_view(booking, session, db)
    return await to_booking_response(booking, db)


@router.get("/{booking_id}/history", response_model=List[BookingAuditResponse])
async def get_booking_history(
    booking_id: UUID,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    """Every status change of the booking, oldest first."""
    booking = await get_booking_or_404(booking_id, db)
    await _check_can_view(booking, session, db)

    result = await db.execute(
        select(BookingAuditLog)
        .where(BookingAuditLog.booking_id == booking.id)
        .order_by(BookingAuditLog.created_at.asc())
    )
    return [BookingAuditResponse.model_validate(log) for log in result.scalars()]


# ── Status Changes ────────────────────────────────────────────

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    data: BookingCancelRequest,
    session: SessionContext = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Customer cancels their own booking (admin: any) while pending or assigned."""
    booking = await get_booking_or_404(booking_id, db)

    if not session.is_admin and booking.customer_id != session.user.id:
        raise AuthorizationError("Not authorized to cancel this booking")

    await change_booking_status(
        db, booking, BookingStatus.CANCELLED, session.user, session.role, data.reason
    )
    await db.commit()
    return await to_booking_response(booking, db)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: UUID,
    data: BookingStatusUpdate,
    session: SessionContext = Depends(require_provider),
    db: AsyncSession = Depends(get_db),
):
    """
    The assigned provider moves the booking forward:
    assigned → in_progress | completed | cancelled, in_progress → completed.
    """
    booking = await get_booking_or_404(booking_id, db)

    profile = session.provider_profile
    if not profile or await current_provider_id(booking, db) != profile.id:
        raise AuthorizationError("Only the assigned provider can update this booking")

    await change_booking_status(
        db, booking, data.status, session.user, UserRole.PROVIDER, data.reason
    )
    await db.commit()
    return await to_booking_response(booking, db)
