"""
shared/models/models.py
All SQLAlchemy ORM models for the Home Services Marketplace.
UUID primary keys throughout; enums are stored by value.
"""

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from config.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[PyEnum]) -> Enum:
    """Persist the enum's value ("pending"), not its member name ("PENDING")."""
    return Enum(
        enum_cls,
        name=enum_cls.__name__.lower(),
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


JsonType = JSON().with_variant(JSONB(), "postgresql")


# ── Enumerations ──────────────────────────────────────────────

class UserRole(str, PyEnum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class ApprovalStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ServiceCategory(str, PyEnum):
    RO_TECHNICIAN = "RO Technician"
    AC_TECHNICIAN = "AC Technician"
    ELECTRICIAN = "Electrician"
    PLUMBER = "Plumber"
    MECHANIC = "Mechanic"
    CARPENTER = "Carpenter"
    PAINTER = "Painter"
    CLEANER = "Cleaner"
    GARDENER = "Gardener"


# Specialisations offered per trade in the registration form
SUBCATEGORIES: dict[ServiceCategory, list[str]] = {
    ServiceCategory.RO_TECHNICIAN: ["Installation", "Maintenance", "Repair", "Filter Replacement"],
    ServiceCategory.AC_TECHNICIAN: ["Installation & Repair", "Maintenance", "Gas Refilling", "Emergency Service"],
    ServiceCategory.ELECTRICIAN: ["Residential", "Commercial", "Industrial", "Emergency Services"],
    ServiceCategory.PLUMBER: ["Residential", "Commercial", "Emergency Services", "Pipe Installation"],
    ServiceCategory.MECHANIC: ["Auto Repair", "Bike Repair", "Heavy Vehicles", "Diagnostics"],
    ServiceCategory.CARPENTER: ["Furniture Making", "Home Renovation", "Custom Work", "Repair"],
    ServiceCategory.PAINTER: ["Interior", "Exterior", "Commercial", "Decorative"],
    ServiceCategory.CLEANER: ["Home Cleaning", "Office Cleaning", "Deep Cleaning", "Post Construction"],
    ServiceCategory.GARDENER: ["Landscaping", "Maintenance", "Plant Care", "Garden Design"],
}


class BookingStatus(str, PyEnum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Urgency(str, PyEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class TimeSlot(str, PyEnum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class AssignmentType(str, PyEnum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"     # reserved, no flow creates these


class TicketCategory(str, PyEnum):
    GENERAL = "general"
    TECHNICAL = "technical"
    BILLING = "billing"
    BOOKING = "booking"
    ACCOUNT = "account"


class TicketPriority(str, PyEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, PyEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )


# ── Models ────────────────────────────────────────────────────

class User(TimestampMixin, Base):
    """
    Account with a role and an approval status.
    The role is fixed at sign-up; only an admin changes the status.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole), nullable=False, default=UserRole.CUSTOMER
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        _enum(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING
    )

    __table_args__ = (
        Index("ix_users_role_status", "role", "status"),
    )

    @property
    def is_approved(self) -> bool:
        return self.status == ApprovalStatus.APPROVED

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value}/{self.status.value})>"


class RefreshToken(Base):
    """Refresh tokens stored for rotation and revocation."""
    __tablename__ = "refresh_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token_hash: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)

    __table_args__ = (Index("ix_refresh_tokens_user_id", "user_id"),)


class ProviderProfile(TimestampMixin, Base):
    """
    A provider's business profile. Exactly one per provider account.
    `version` guards availability and profile edits against lost updates.
    """
    __tablename__ = "provider_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    business_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[ServiceCategory] = mapped_column(_enum(ServiceCategory), nullable=False)
    subcategory: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    contact: Mapped[str] = mapped_column(String(100), nullable=False)

    # Professional details captured by the registration wizard
    experience: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # "3-5"
    certifications: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    working_hours: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    service_area: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Rating (written directly, never recomputed here)
    rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_provider_profiles_category", "category"),
        Index("ix_provider_profiles_available_rating", "available", "rating"),
    )


class BookingRequest(TimestampMixin, Base):
    """
    A customer's request for a service. Enters the admin queue unassigned.
    Status transitions: pending → assigned → in_progress → completed,
    pending | assigned → cancelled (see shared/utils/transitions.py).
    """
    __tablename__ = "booking_requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    service_category: Mapped[ServiceCategory] = mapped_column(
        _enum(ServiceCategory), nullable=False
    )
    service_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Contact details as entered on the form
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(30), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    service_address: Mapped[str] = mapped_column(Text, nullable=False)

    # Schedule
    preferred_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    preferred_time_slot: Mapped[TimeSlot] = mapped_column(
        _enum(TimeSlot), nullable=False, default=TimeSlot.MORNING
    )
    urgency: Mapped[Urgency] = mapped_column(_enum(Urgency), nullable=False, default=Urgency.NORMAL)

    estimated_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_booking_requests_customer_id", "customer_id"),
        Index("ix_booking_requests_status", "status"),
        Index("ix_booking_requests_category", "service_category"),
    )


class BookingAssignment(Base):
    """
    Admin pairing of a booking with a provider. Created together with the
    booking's move to `assigned`; never updated afterwards.
    """
    __tablename__ = "booking_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("booking_requests.id"), nullable=False
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("provider_profiles.id"), nullable=False
    )
    assigned_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    assignment_type: Mapped[AssignmentType] = mapped_column(
        _enum(AssignmentType), nullable=False, default=AssignmentType.MANUAL
    )
    # Stored for a provider confirmation step that no flow implements yet
    provider_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_booking_assignments_booking_id", "booking_id"),
        Index("ix_booking_assignments_provider_id", "provider_id"),
    )


class BookingAuditLog(Base):
    """Immutable log of all booking status transitions."""
    __tablename__ = "booking_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("booking_requests.id"), nullable=False
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (Index("ix_booking_audit_logs_booking_id", "booking_id"),)


class SupportTicket(TimestampMixin, Base):
    """Complaint/request tracker entry. Independent of bookings."""
    __tablename__ = "support_tickets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[TicketCategory] = mapped_column(
        _enum(TicketCategory), nullable=False, default=TicketCategory.GENERAL
    )
    priority: Mapped[TicketPriority] = mapped_column(
        _enum(TicketPriority), nullable=False, default=TicketPriority.MEDIUM
    )
    status: Mapped[TicketStatus] = mapped_column(
        _enum(TicketStatus), nullable=False, default=TicketStatus.OPEN
    )

    __table_args__ = (
        Index("ix_support_tickets_user_id", "user_id"),
        Index("ix_support_tickets_status", "status"),
    )


class ContactMessage(Base):
    """Message left through the public contact form."""
    __tablename__ = "contact_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    service_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )


class AdminAuditLog(Base):
    """Immutable log of all admin actions."""
    __tablename__ = "admin_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    admin_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payload: Mapped[Optional[dict]] = mapped_column(JsonType, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_audit_admin_id", "admin_id"),
        Index("ix_admin_audit_created_at", "created_at"),
    )
