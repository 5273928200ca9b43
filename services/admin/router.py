"""
services/admin/router.py
Admin-only endpoints: account approval, provider assignment, booking
oversight, the contact inbox, platform analytics, and the immutable audit log.

ALL mutations are logged to AdminAuditLog before returning.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import get_redis
from services.provider.router import invalidate_profile_cache
from shared.exceptions import AuthorizationError, ConflictError, NotFoundError
from shared.middleware.auth import SessionContext, require_admin
from shared.models.models import (
    AdminAuditLog,
    ApprovalStatus,
    AssignmentType,
    BookingAssignment,
    BookingRequest,
    BookingStatus,
    ContactMessage,
    ProviderProfile,
    ServiceCategory,
    SupportTicket,
    TicketStatus,
    User,
    UserRole,
)
from shared.schemas.schemas import (
    AdminAnalyticsResponse,
    AdminApprovalRequest,
    AssignmentResponse,
    AssignProviderRequest,
    AvailabilityUpdate,
    BookingCancelRequest,
    BookingResponse,
    ContactResponse,
    MessageResponse,
    ProviderProfileResponse,
    UserResponse,
)
from shared.utils.audit import log_admin_action
from shared.utils.bookings import (
    change_booking_status,
    get_booking_or_404,
    to_booking_response,
    to_booking_responses,
)
from shared.utils.pagination import page_payload, paginate
from shared.utils.versioning import check_expected_version, flush_or_conflict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


# ── Helpers ────────────────────────────────────────────────────────────────────

async def _get_user_or_404(user_id: UUID, db: AsyncSession) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise NotFoundError("User not found")
    return user


async def _get_provider_or_404(provider_id: UUID, db: AsyncSession) -> ProviderProfile:
    result = await db.execute(select(ProviderProfile).where(ProviderProfile.id == provider_id))
    profile = result.scalar_one_or_none()
    if not profile:
        raise NotFoundError("Provider not found")
    return profile


async def _set_approval(
    user_id: UUID,
    target: ApprovalStatus,
    notes: Optional[str],
    session: SessionContext,
    db: AsyncSession,
    redis,
    request: Request,
) -> User:
    """
    Move an account to `target`. Re-applying the current status changes
    nothing and writes no audit entry.
    """
    user = await _get_user_or_404(user_id, db)
    if user.id == session.user.id:
        raise AuthorizationError("Admins cannot change their own approval status")
    if user.status == target:
        return user

    previous = user.status
    user.status = target
    await log_admin_action(
        db, session.user, f"{target.name}_USER", "User", str(user.id),
        {"from": previous.value, "to": target.value, "notes": notes}, request,
    )
    await db.commit()

    if user.role == UserRole.PROVIDER:
        profile_id = await db.scalar(
            select(ProviderProfile.id).where(ProviderProfile.user_id == user.id)
        )
        if profile_id:
            await invalidate_profile_cache(redis, profile_id)

    logger.info(f"User {user.email}: {previous.value} → {target.value} by {session.user.email}")
    return user


# ── Account Approval ───────────────────────────────────────────────────────────

@router.get("/users")
async def list_users(
    role: Optional[UserRole] = None,
    approval_status: Optional[ApprovalStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All accounts, newest first, filtered by role and approval status."""
    query = select(User).order_by(User.created_at.desc())
    if role:
        query = query.where(User.role == role)
    if approval_status:
        query = query.where(User.status == approval_status)

    rows, total = await paginate(db, query, page, page_size)
    items = [UserResponse.model_validate(row[0]) for row in rows]
    return page_payload(items, total, page, page_size)


@router.get("/users/pending")
async def get_pending_users(
    role: Optional[UserRole] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=50),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Accounts awaiting approval, ordered oldest first (FIFO queue)."""
    query = (
        select(User)
        .where(User.status == ApprovalStatus.PENDING)
        .order_by(User.created_at.asc())
    )
    if role:
        query = query.where(User.role == role)

    rows, total = await paginate(db, query, page, page_size)
    items = [UserResponse.model_validate(row[0]) for row in rows]
    return page_payload(items, total, page, page_size)


@router.post("/users/{user_id}/approve", response_model=UserResponse)
async def approve_user(
    user_id: UUID,
    request: Request,
    data: Optional[AdminApprovalRequest] = None,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Approve an account. Approving an approved account is a no-op."""
    user = await _set_approval(
        user_id, ApprovalStatus.APPROVED, data.notes if data else None, session, db, redis, request
    )
    return UserResponse.model_validate(user)


@router.post("/users/{user_id}/reject", response_model=UserResponse)
async def reject_user(
    user_id: UUID,
    request: Request,
    data: Optional[AdminApprovalRequest] = None,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Reject an account. The account loses access on its next request,
    even with a token issued before the rejection.
    """
    user = await _set_approval(
        user_id, ApprovalStatus.REJECTED, data.notes if data else None, session, db, redis, request
    )
    return UserResponse.model_validate(user)


# ── Providers ──────────────────────────────────────────────────────────────────

@router.get("/providers/available")
async def list_available_providers(
    category: Optional[ServiceCategory] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Assignment candidates: available providers with approved accounts,
    best rated first, then oldest first.
    """
    query = (
        select(ProviderProfile)
        .join(User, User.id == ProviderProfile.user_id)
        .where(
            ProviderProfile.available.is_(True),
            User.status == ApprovalStatus.APPROVED,
        )
        .order_by(ProviderProfile.rating.desc(), ProviderProfile.created_at.asc())
    )
    if category:
        query = query.where(ProviderProfile.category == category)

    rows, total = await paginate(db, query, page, page_size)
    items = [ProviderProfileResponse.model_validate(row[0]) for row in rows]
    return page_payload(items, total, page, page_size)


@router.get("/providers")
async def list_providers(
    category: Optional[ServiceCategory] = None,
    available: Optional[bool] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every provider profile with its owner's account, newest first."""
    query = (
        select(ProviderProfile, User)
        .join(User, User.id == ProviderProfile.user_id)
        .order_by(ProviderProfile.created_at.desc())
    )
    if category:
        query = query.where(ProviderProfile.category == category)
    if available is not None:
        query = query.where(ProviderProfile.available == available)

    rows, total = await paginate(db, query, page, page_size)
    items = [
        {
            "profile": ProviderProfileResponse.model_validate(row[0]),
            "owner": UserResponse.model_validate(row[1]),
        }
        for row in rows
    ]
    return page_payload(items, total, page, page_size)


@router.post("/providers/{provider_id}/availability", response_model=ProviderProfileResponse)
async def set_provider_availability(
    provider_id: UUID,
    data: AvailabilityUpdate,
    request: Request,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Activate or deactivate a provider for new assignments."""
    profile = await _get_provider_or_404(provider_id, db)
    check_expected_version(profile.version, data.expected_version, "Provider profile")

    previous = profile.available
    profile.available = data.available
    await flush_or_conflict(db, "Provider profile")
    await log_admin_action(
        db, session.user, "SET_PROVIDER_AVAILABILITY", "ProviderProfile", str(profile.id),
        {"from": previous, "to": data.available}, request,
    )
    await db.commit()
    await invalidate_profile_cache(redis, profile.id)
    return ProviderProfileResponse.model_validate(profile)


# ── Assignment ─────────────────────────────────────────────────────────────────

@router.post("/bookings/{booking_id}/assign", response_model=BookingResponse)
async def assign_provider(
    booking_id: UUID,
    data: AssignProviderRequest,
    request: Request,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Assign a provider to a pending booking.
    - Booking must be pending (409 otherwise)
    - Provider must exist (404) and be available right now (409)
    - The assignment row and the booking's move to `assigned` commit together;
      the booking UPDATE is version-checked, so if another admin got there
      first this call fails with 409 and writes nothing
    """
    booking = await get_booking_or_404(booking_id, db)
    if booking.status != BookingStatus.PENDING:
        raise ConflictError(f"Booking is already {booking.status.value}")

    profile = await _get_provider_or_404(data.provider_id, db)
    if not profile.available:
        raise ConflictError("Provider is not available for new bookings")
    owner = await db.scalar(select(User).where(User.id == profile.user_id))
    if not owner or not owner.is_approved:
        raise ConflictError("Provider account is not approved")

    assignment = BookingAssignment(
        booking_id=booking.id,
        provider_id=profile.id,
        assigned_by_id=session.user.id,
        assignment_type=AssignmentType.MANUAL,
    )
    db.add(assignment)
    await change_booking_status(
        db, booking, BookingStatus.ASSIGNED, session.user,
        reason=f"Assigned to {profile.business_name}",
    )
    await log_admin_action(
        db, session.user, "ASSIGN_PROVIDER", "BookingRequest", str(booking.id),
        {"provider_id": str(profile.id), "assignment_id": str(assignment.id)}, request,
    )
    await db.commit()
    return await to_booking_response(booking, db)


# ── Booking Oversight ──────────────────────────────────────────────────────────

@router.get("/bookings")
async def list_all_bookings(
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    customer_id: Optional[UUID] = None,
    category: Optional[ServiceCategory] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Admin: view all bookings with status, customer, or category filter."""
    query = select(BookingRequest).order_by(BookingRequest.created_at.desc())
    if booking_status:
        query = query.where(BookingRequest.status == booking_status)
    if customer_id:
        query = query.where(BookingRequest.customer_id == customer_id)
    if category:
        query = query.where(BookingRequest.service_category == category)

    rows, total = await paginate(db, query, page, page_size)
    items = await to_booking_responses([row[0] for row in rows], db)
    return page_payload(items, total, page, page_size)


@router.get("/bookings/{booking_id}/assignments", response_model=List[AssignmentResponse])
async def get_booking_assignments(
    booking_id: UUID,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    booking = await get_booking_or_404(booking_id, db)
    result = await db.execute(
        select(BookingAssignment)
        .where(BookingAssignment.booking_id == booking.id)
        .order_by(BookingAssignment.created_at.asc())
    )
    return [AssignmentResponse.model_validate(a) for a in result.scalars()]


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    data: BookingCancelRequest,
    request: Request,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Cancel any booking that has not finished yet."""
    booking = await get_booking_or_404(booking_id, db)
    previous = booking.status

    await change_booking_status(
        db, booking, BookingStatus.CANCELLED, session.user, UserRole.ADMIN, data.reason
    )
    await log_admin_action(
        db, session.user, "CANCEL_BOOKING", "BookingRequest", str(booking.id),
        {"from": previous.value, "reason": data.reason}, request,
    )
    await db.commit()
    return await to_booking_response(booking, db)


# ── Contact Inbox ──────────────────────────────────────────────────────────────

@router.get("/contacts")
async def list_contacts(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Messages from the public contact form, newest first."""
    query = select(ContactMessage).order_by(ContactMessage.created_at.desc())
    rows, total = await paginate(db, query, page, page_size)
    items = [ContactResponse.model_validate(row[0]) for row in rows]
    return page_payload(items, total, page, page_size)


@router.delete("/contacts/{contact_id}", response_model=MessageResponse)
async def delete_contact(
    contact_id: UUID,
    request: Request,
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(ContactMessage).where(ContactMessage.id == contact_id))
    message = result.scalar_one_or_none()
    if not message:
        raise NotFoundError("Contact message not found")

    await db.delete(message)
    await log_admin_action(
        db, session.user, "DELETE_CONTACT", "ContactMessage", str(contact_id),
        {"email": message.email, "subject": message.subject}, request,
    )
    await db.commit()
    return MessageResponse(message="Contact message deleted")


# ── Analytics ─────────────────────────────────────────────────────────────────

@router.get("/analytics", response_model=AdminAnalyticsResponse)
async def get_analytics(
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Platform-wide metrics dashboard. All queries run against the primary DB."""
    today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)

    total_customers = await db.scalar(
        select(func.count(User.id)).where(User.role == UserRole.CUSTOMER)
    )
    total_providers = await db.scalar(
        select(func.count(User.id)).where(User.role == UserRole.PROVIDER)
    )
    pending_approvals = await db.scalar(
        select(func.count(User.id)).where(User.status == ApprovalStatus.PENDING)
    )
    provider_profiles = await db.scalar(select(func.count(ProviderProfile.id)))
    available_providers = await db.scalar(
        select(func.count(ProviderProfile.id)).where(ProviderProfile.available.is_(True))
    )

    result = await db.execute(
        select(BookingRequest.status, func.count(BookingRequest.id))
        .group_by(BookingRequest.status)
    )
    bookings_by_status = {s.value: 0 for s in BookingStatus}
    for booking_status, count in result.all():
        bookings_by_status[booking_status.value] = count

    bookings_today = await db.scalar(
        select(func.count(BookingRequest.id)).where(BookingRequest.created_at >= today_start)
    )
    completed_revenue = await db.scalar(
        select(func.sum(BookingRequest.estimated_price))
        .where(BookingRequest.status == BookingStatus.COMPLETED)
    )
    open_tickets = await db.scalar(
        select(func.count(SupportTicket.id)).where(SupportTicket.status != TicketStatus.CLOSED)
    )
    contact_messages = await db.scalar(select(func.count(ContactMessage.id)))

    return AdminAnalyticsResponse(
        total_customers=total_customers or 0,
        total_providers=total_providers or 0,
        pending_approvals=pending_approvals or 0,
        provider_profiles=provider_profiles or 0,
        available_providers=available_providers or 0,
        total_bookings=sum(bookings_by_status.values()),
        bookings_by_status=bookings_by_status,
        bookings_today=bookings_today or 0,
        completed_revenue=Decimal(str(completed_revenue or 0)),
        open_tickets=open_tickets or 0,
        contact_messages=contact_messages or 0,
    )


# ── Audit Log ─────────────────────────────────────────────────────────────────

@router.get("/audit-logs")
async def get_audit_logs(
    action: str = Query(None, description="Filter by action type e.g. APPROVED_USER"),
    entity_type: str = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Immutable admin audit log, append-only, never editable."""
    query = (
        select(AdminAuditLog, User)
        .join(User, User.id == AdminAuditLog.admin_id)
        .order_by(AdminAuditLog.created_at.desc())
    )
    if action:
        query = query.where(AdminAuditLog.action == action.upper())
    if entity_type:
        query = query.where(AdminAuditLog.entity_type == entity_type)

    rows, total = await paginate(db, query, page, page_size)
    items = [
        {
            "id": str(row[0].id),
            "admin_name": row[1].full_name,
            "admin_email": row[1].email,
            "action": row[0].action,
            "entity_type": row[0].entity_type,
            "entity_id": row[0].entity_id,
            "payload": row[0].payload,
            "ip_address": row[0].ip_address,
            "created_at": row[0].created_at.isoformat(),
        }
        for row in rows
    ]
    return page_payload(items, total, page, page_size)
