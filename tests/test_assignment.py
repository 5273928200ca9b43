"""
tests/test_assignment.py
Tests for admin assignment of providers to pending bookings, including
two admins racing to assign the same booking.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.exceptions import ConflictError
from shared.models.models import (
    AdminAuditLog,
    ApprovalStatus,
    BookingAssignment,
    BookingAuditLog,
    BookingRequest,
    BookingStatus,
    ProviderProfile,
    User,
    UserRole,
)
from shared.utils.bookings import change_booking_status
from tests.conftest import auth_headers, make_profile, make_user


async def _assignment_count(db: AsyncSession, booking_id) -> int:
    return await db.scalar(
        select(func.count(BookingAssignment.id)).where(BookingAssignment.booking_id == booking_id)
    )


@pytest.mark.asyncio
async def test_assign_provider(
    client: AsyncClient,
    db: AsyncSession,
    admin_user: User,
    customer: User,
    provider_user: User,
    provider_profile: ProviderProfile,
    booking: BookingRequest,
):
    """The assignment row and the move to `assigned` land together."""
    response = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(provider_profile.id)},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "assigned"
    assert data["provider_id"] == str(provider_profile.id)
    assert data["provider_name"] == "Ravi Electricals"

    assignment = await db.scalar(
        select(BookingAssignment).where(BookingAssignment.booking_id == booking.id)
    )
    assert assignment.provider_id == provider_profile.id
    assert assignment.assigned_by_id == admin_user.id
    assert assignment.assignment_type.value == "manual"
    assert assignment.provider_accepted is False

    history = (await db.execute(
        select(BookingAuditLog).where(BookingAuditLog.booking_id == booking.id)
    )).scalars().all()
    assert [(h.from_status, h.to_status) for h in history] == [("pending", "assigned")]

    audit = await db.scalar(select(AdminAuditLog).where(AdminAuditLog.action == "ASSIGN_PROVIDER"))
    assert audit.payload["provider_id"] == str(provider_profile.id)

    # Both sides now see the pairing
    mine = await client.get("/providers/me/bookings", headers=auth_headers(provider_user))
    assert [b["id"] for b in mine.json()["items"]] == [str(booking.id)]
    theirs = await client.get(f"/bookings/{booking.id}", headers=auth_headers(customer))
    assert theirs.json()["provider_name"] == "Ravi Electricals"


@pytest.mark.asyncio
async def test_assignment_history_lists_assignments(
    client: AsyncClient,
    admin_user: User,
    provider_profile: ProviderProfile,
    booking: BookingRequest,
):
    headers = auth_headers(admin_user)
    await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=headers,
        json={"provider_id": str(provider_profile.id)},
    )

    response = await client.get(f"/admin/bookings/{booking.id}/assignments", headers=headers)
    assert response.status_code == 200
    assert [a["provider_id"] for a in response.json()] == [str(provider_profile.id)]


@pytest.mark.asyncio
async def test_assign_already_assigned_booking(
    client: AsyncClient,
    db: AsyncSession,
    admin_user: User,
    provider_profile: ProviderProfile,
    assigned_booking: BookingRequest,
):
    response = await client.post(
        f"/admin/bookings/{assigned_booking.id}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(provider_profile.id)},
    )
    assert response.status_code == 409
    assert "assigned" in response.json()["detail"]
    assert await _assignment_count(db, assigned_booking.id) == 1


@pytest.mark.asyncio
async def test_assign_unavailable_provider(
    client: AsyncClient, db: AsyncSession, admin_user: User, booking: BookingRequest
):
    """A refused assignment writes nothing."""
    resting = await make_user(db, "resting@example.com", UserRole.PROVIDER)
    profile = await make_profile(db, resting, available=False)

    response = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(profile.id)},
    )
    assert response.status_code == 409
    assert await _assignment_count(db, booking.id) == 0

    await db.refresh(booking)
    assert booking.status == BookingStatus.PENDING


@pytest.mark.asyncio
async def test_assign_unapproved_provider(
    client: AsyncClient, db: AsyncSession, admin_user: User, booking: BookingRequest
):
    waiting = await make_user(db, "waiting.pro@example.com", UserRole.PROVIDER, ApprovalStatus.PENDING)
    profile = await make_profile(db, waiting)

    response = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(profile.id)},
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_assign_missing_provider(
    client: AsyncClient, admin_user: User, booking: BookingRequest
):
    response = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(uuid.uuid4())},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_assign_missing_booking(
    client: AsyncClient, admin_user: User, provider_profile: ProviderProfile
):
    response = await client.post(
        f"/admin/bookings/{uuid.uuid4()}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(provider_profile.id)},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_customer_cannot_assign(
    client: AsyncClient, customer: User, provider_profile: ProviderProfile, booking: BookingRequest
):
    response = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(customer),
        json={"provider_id": str(provider_profile.id)},
    )
    assert response.status_code == 403


# ── Competing Admins ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_second_admin_gets_conflict(
    client: AsyncClient,
    db: AsyncSession,
    admin_user: User,
    provider_profile: ProviderProfile,
    booking: BookingRequest,
):
    other_admin = await make_user(db, "second.admin@example.com", UserRole.ADMIN)
    other_user = await make_user(db, "other.sparks@example.com", UserRole.PROVIDER)
    other_profile = await make_profile(db, other_user, business_name="Other Sparks")

    first = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(admin_user),
        json={"provider_id": str(provider_profile.id)},
    )
    second = await client.post(
        f"/admin/bookings/{booking.id}/assign",
        headers=auth_headers(other_admin),
        json={"provider_id": str(other_profile.id)},
    )
    assert first.status_code == 200
    assert second.status_code == 409
    assert await _assignment_count(db, booking.id) == 1


@pytest.mark.asyncio
async def test_stale_booking_write_is_refused(
    session_factory,
    db: AsyncSession,
    admin_user: User,
    provider_profile: ProviderProfile,
    booking: BookingRequest,
):
    """
    Both admins read the booking while it is still pending. The first
    write wins; the second fails its version check and leaves no
    assignment behind.
    """
    other_user = await make_user(db, "other.sparks@example.com", UserRole.PROVIDER)
    other_profile = await make_profile(db, other_user, business_name="Other Sparks")

    async with session_factory() as first, session_factory() as second:
        first_view = await first.get(BookingRequest, booking.id)
        second_view = await second.get(BookingRequest, booking.id)
        assert first_view.status == second_view.status == BookingStatus.PENDING

        first.add(BookingAssignment(
            booking_id=booking.id, provider_id=provider_profile.id, assigned_by_id=admin_user.id
        ))
        await change_booking_status(first, first_view, BookingStatus.ASSIGNED, admin_user)
        await first.commit()

        second.add(BookingAssignment(
            booking_id=booking.id, provider_id=other_profile.id, assigned_by_id=admin_user.id
        ))
        with pytest.raises(ConflictError):
            await change_booking_status(second, second_view, BookingStatus.ASSIGNED, admin_user)

    async with session_factory() as check:
        assignments = (await check.execute(
            select(BookingAssignment).where(BookingAssignment.booking_id == booking.id)
        )).scalars().all()
        assert [a.provider_id for a in assignments] == [provider_profile.id]

        stored = await check.get(BookingRequest, booking.id)
        assert stored.status == BookingStatus.ASSIGNED
        assert stored.version == 2
