"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.

Request strings are stored exactly as sent: required text fields are
checked for blankness but never trimmed or rewritten.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator

from shared.models.models import (
    ApprovalStatus,
    AssignmentType,
    BookingStatus,
    ServiceCategory,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    TimeSlot,
    Urgency,
    UserRole,
)


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


def _valid_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(str(exc))
    return value


# Checked like EmailStr but kept exactly as typed
VerbatimEmail = Annotated[str, AfterValidator(_valid_email)]


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ── Auth ──────────────────────────────────────────────────────

class SignUpRequest(BaseSchema):
    email: EmailStr
    password: str
    confirm_password: str
    full_name: NonBlankStr = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    role: UserRole = UserRole.CUSTOMER

    @model_validator(mode="after")
    def passwords_match(self) -> "SignUpRequest":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class SignInRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=1)
    role: UserRole


class RefreshRequest(BaseSchema):
    refresh_token: Optional[str] = None


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class AuthResponse(BaseSchema):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: "UserResponse"


# ── User ──────────────────────────────────────────────────────

class UserResponse(BaseSchema):
    id: uuid.UUID
    email: EmailStr
    full_name: str
    phone: Optional[str]
    role: UserRole
    status: ApprovalStatus
    created_at: datetime


class UserUpdateRequest(BaseSchema):
    full_name: Optional[NonBlankStr] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class CustomerStatsResponse(BaseSchema):
    total_bookings: int
    pending_bookings: int
    active_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_spent: Decimal
    open_tickets: int


# ── Provider ──────────────────────────────────────────────────

EXPERIENCE_PATTERN = r"^(0-1|1-3|3-5|5-10|10\+)$"


class ProviderProfileCreate(BaseSchema):
    business_name: NonBlankStr = Field(..., min_length=1, max_length=255)
    category: ServiceCategory
    subcategory: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    location: NonBlankStr = Field(..., min_length=1, max_length=255)
    contact: NonBlankStr = Field(..., min_length=1, max_length=100)
    experience: Optional[str] = Field(None, pattern=EXPERIENCE_PATTERN)
    certifications: Optional[str] = Field(None, max_length=1000)
    working_hours: Optional[str] = Field(None, max_length=100)
    service_area: Optional[str] = Field(None, max_length=255)


class ProviderProfileUpdate(BaseSchema):
    business_name: Optional[NonBlankStr] = Field(None, min_length=1, max_length=255)
    category: Optional[ServiceCategory] = None
    subcategory: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    location: Optional[NonBlankStr] = Field(None, min_length=1, max_length=255)
    contact: Optional[NonBlankStr] = Field(None, min_length=1, max_length=100)
    experience: Optional[str] = Field(None, pattern=EXPERIENCE_PATTERN)
    certifications: Optional[str] = Field(None, max_length=1000)
    working_hours: Optional[str] = Field(None, max_length=100)
    service_area: Optional[str] = Field(None, max_length=255)


class ProviderProfileResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    business_name: str
    category: ServiceCategory
    subcategory: Optional[str]
    description: Optional[str]
    location: str
    contact: str
    experience: Optional[str]
    certifications: Optional[str]
    working_hours: Optional[str]
    service_area: Optional[str]
    available: bool
    rating: float
    review_count: int
    version: int
    created_at: datetime


class AvailabilityUpdate(BaseSchema):
    available: bool
    # Version the caller last saw; a mismatch means someone else wrote first
    expected_version: Optional[int] = None


class ProviderStatsResponse(BaseSchema):
    total_bookings: int
    assigned_bookings: int
    in_progress_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_earnings: Decimal
    completion_rate: float


class SessionResponse(BaseSchema):
    user: UserResponse
    provider_profile: Optional[ProviderProfileResponse] = None


class CategoryResponse(BaseSchema):
    name: ServiceCategory
    subcategories: List[str]


# ── Provider Registration Wizard ──────────────────────────────

class AccountStep(BaseSchema):
    full_name: NonBlankStr = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    password: str
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "AccountStep":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class BusinessInfoStep(BaseSchema):
    business_name: NonBlankStr = Field(..., min_length=1, max_length=255)
    category: ServiceCategory
    subcategory: Optional[str] = Field(None, max_length=100)
    location: NonBlankStr = Field(..., min_length=1, max_length=255)
    contact: NonBlankStr = Field(..., min_length=1, max_length=100)


class ProfessionalDetailsStep(BaseSchema):
    experience: str = Field(..., pattern=EXPERIENCE_PATTERN)
    certifications: Optional[str] = Field(None, max_length=1000)
    working_hours: Optional[str] = Field(None, max_length=100)
    service_area: Optional[str] = Field(None, max_length=255)


class DescriptionStep(BaseSchema):
    description: NonBlankStr = Field(..., min_length=1, max_length=2000)


class RegistrationDraftResponse(BaseSchema):
    draft_id: str
    mode: str                      # "create" | "edit"
    step: str
    steps: List[str]
    completed_steps: List[str]
    data: dict


class RegistrationResultResponse(BaseSchema):
    mode: str
    user: UserResponse
    profile: ProviderProfileResponse


# ── Booking ───────────────────────────────────────────────────

class BookingCreateRequest(BaseSchema):
    service_category: ServiceCategory
    service_name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    customer_name: NonBlankStr = Field(..., min_length=1, max_length=255)
    customer_phone: NonBlankStr = Field(..., min_length=1, max_length=30)
    customer_email: Optional[VerbatimEmail] = None
    service_address: NonBlankStr = Field(..., min_length=1, max_length=1000)
    preferred_date: Optional[date] = None
    preferred_time_slot: TimeSlot = TimeSlot.MORNING
    urgency: Urgency = Urgency.NORMAL
    estimated_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    special_instructions: Optional[str] = Field(None, max_length=1000)


class BookingResponse(BaseSchema):
    id: uuid.UUID
    customer_id: uuid.UUID
    service_category: ServiceCategory
    service_name: Optional[str]
    description: Optional[str]
    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    service_address: str
    preferred_date: Optional[date]
    preferred_time_slot: TimeSlot
    urgency: Urgency
    estimated_price: Optional[Decimal]
    special_instructions: Optional[str]
    status: BookingStatus
    version: int
    created_at: datetime
    updated_at: datetime
    # Joined from the active assignment
    provider_id: Optional[uuid.UUID] = None
    provider_name: Optional[str] = None


class BookingStatusUpdate(BaseSchema):
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancelRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=500)


class BookingAuditResponse(BaseSchema):
    id: uuid.UUID
    from_status: Optional[str]
    to_status: str
    changed_by_id: Optional[uuid.UUID]
    reason: Optional[str]
    created_at: datetime


class AssignProviderRequest(BaseSchema):
    provider_id: uuid.UUID


class AssignmentResponse(BaseSchema):
    id: uuid.UUID
    booking_id: uuid.UUID
    provider_id: uuid.UUID
    assigned_by_id: uuid.UUID
    assignment_type: AssignmentType
    provider_accepted: bool
    created_at: datetime


# ── Support Ticket ────────────────────────────────────────────

class TicketCreateRequest(BaseSchema):
    title: NonBlankStr = Field(..., min_length=1, max_length=255)
    description: NonBlankStr = Field(..., min_length=1, max_length=5000)
    category: TicketCategory = TicketCategory.GENERAL
    priority: TicketPriority = TicketPriority.MEDIUM


class TicketAdvanceRequest(BaseSchema):
    status: TicketStatus


class TicketResponse(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    description: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    created_at: datetime
    updated_at: datetime


# ── Contact ───────────────────────────────────────────────────

class ContactCreateRequest(BaseSchema):
    name: NonBlankStr = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=30)
    subject: NonBlankStr = Field(..., min_length=1, max_length=255)
    message: NonBlankStr = Field(..., min_length=1, max_length=5000)
    service_type: Optional[str] = Field(None, max_length=100)


class ContactResponse(BaseSchema):
    id: uuid.UUID
    name: str
    email: str
    phone: Optional[str]
    subject: str
    message: str
    service_type: Optional[str]
    created_at: datetime


# ── Admin ─────────────────────────────────────────────────────

class AdminApprovalRequest(BaseSchema):
    notes: Optional[str] = Field(None, max_length=1000)


class AdminAnalyticsResponse(BaseSchema):
    total_customers: int
    total_providers: int
    pending_approvals: int
    provider_profiles: int
    available_providers: int
    total_bookings: int
    bookings_by_status: dict[str, int]
    bookings_today: int
    completed_revenue: Decimal
    open_tickets: int
    contact_messages: int


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True
