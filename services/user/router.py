"""
services/user/router.py
Account profile and customer dashboard totals.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import SessionContext, get_session, require_customer
from shared.models.models import BookingRequest, BookingStatus, SupportTicket, TicketStatus
from shared.schemas.schemas import CustomerStatsResponse, UserResponse, UserUpdateRequest

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_me(session: SessionContext = Depends(get_session)):
    """Return the currently authenticated user's profile."""
    return UserResponse.model_validate(session.user)


@router.put("/me", response_model=UserResponse)
async def update_me(
    data: UserUpdateRequest,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    """
    Update user profile fields (full_name, phone).
    Only non-None fields in the request body are updated.
    Role and approval status are never writable here.
    """
    user = session.user
    updates = data.model_dump(exclude_none=True)
    if not updates:
        return UserResponse.model_validate(user)

    for field, value in updates.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    return UserResponse.model_validate(user)


@router.get("/me/stats", response_model=CustomerStatsResponse)
async def get_my_stats(
    session: SessionContext = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Booking totals by status, amount spent on completed work, open tickets."""
    result = await db.execute(
        select(BookingRequest.status, func.count(BookingRequest.id))
        .where(BookingRequest.customer_id == session.user.id)
        .group_by(BookingRequest.status)
    )
    by_status = {row[0]: row[1] for row in result.all()}

    total_spent = await db.scalar(
        select(func.coalesce(func.sum(BookingRequest.estimated_price), 0)).where(
            BookingRequest.customer_id == session.user.id,
            BookingRequest.status == BookingStatus.COMPLETED,
        )
    )
    open_tickets = await db.scalar(
        select(func.count(SupportTicket.id)).where(
            SupportTicket.user_id == session.user.id,
            SupportTicket.status.in_([TicketStatus.OPEN, TicketStatus.IN_PROGRESS]),
        )
    )

    return CustomerStatsResponse(
        total_bookings=sum(by_status.values()),
        pending_bookings=by_status.get(BookingStatus.PENDING, 0),
        active_bookings=(
            by_status.get(BookingStatus.ASSIGNED, 0)
            + by_status.get(BookingStatus.IN_PROGRESS, 0)
        ),
        completed_bookings=by_status.get(BookingStatus.COMPLETED, 0),
        cancelled_bookings=by_status.get(BookingStatus.CANCELLED, 0),
        total_spent=Decimal(str(total_spent or 0)),
        open_tickets=open_tickets or 0,
    )
