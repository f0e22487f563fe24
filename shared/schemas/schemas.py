"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
Wire format is camelCase (alias generator); snake_case is accepted on input.
"""

import uuid
from datetime import date as date_type
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.models.models import (
    AccommodationType,
    BookingStatus,
    CancelledBy,
    ExperienceType,
    FlagReason,
    Highlight,
    HostStatus,
    IncomeRange,
    NotificationType,
    PaymentMethod,
    ResponseTime,
    ReviewType,
    UserRole,
)
from shared.utils.dates import ensure_utc

UTCDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Pagination(BaseSchema):
    page: int
    limit: int
    total: int
    pages: int


class MessageResponse(BaseSchema):
    message: str


# ── User ──────────────────────────────────────────────────────

class UserSummary(BaseSchema):
    id: uuid.UUID
    first_name: str
    last_name: str
    profile_picture: Optional[str] = None


class UserContact(UserSummary):
    email: EmailStr
    phone: Optional[str] = None


class UserProfile(UserSummary):
    bio: Optional[str] = None
    languages: List[str] = []


class UserResponse(BaseSchema):
    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    phone: Optional[str]
    profile_picture: Optional[str]
    bio: Optional[str]
    languages: List[str]
    role: UserRole
    created_at: UTCDatetime


# ── Host ──────────────────────────────────────────────────────

class Coordinates(BaseSchema):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class AddressSchema(BaseSchema):
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    country: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    coordinates: Optional[Coordinates] = None


class IncomeVerificationInput(BaseSchema):
    documents: List[str] = []
    income_range: IncomeRange


class IncomeVerificationResponse(BaseSchema):
    verified: bool
    documents: List[str]
    verification_date: Optional[UTCDatetime]
    income_range: IncomeRange


class AccommodationSchema(BaseSchema):
    type: AccommodationType
    bedrooms: int = Field(..., ge=1)
    bathrooms: int = Field(..., ge=1)
    amenities: List[str] = []
    photos: List[str] = []


class ExperienceCreate(BaseSchema):
    type: ExperienceType
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=1)
    max_guests: int = Field(..., ge=1)
    includes: List[str] = []


class ExperienceResponse(ExperienceCreate):
    id: uuid.UUID


class CulturalBackground(BaseSchema):
    ethnicity: Optional[str] = None
    traditions: List[str] = []
    festivals: List[str] = []
    history: Optional[str] = None


class HostingExperience(BaseSchema):
    years_hosting: int = Field(0, ge=0)
    guests_hosted: int = Field(0, ge=0)
    special_interests: List[str] = []


class SeasonalRate(BaseSchema):
    season: str
    start_date: UTCDatetime
    end_date: UTCDatetime
    price_multiplier: float = Field(1.0, gt=0)


class HostPricing(BaseSchema):
    base_price: float = Field(..., ge=1)
    weekly_discount: float = Field(0, ge=0, le=100)
    monthly_discount: float = Field(0, ge=0, le=100)
    seasonal_rates: List[SeasonalRate] = []


class CalendarEntry(BaseSchema):
    date: date_type
    available: bool = True
    price: Optional[float] = Field(None, ge=0)


class AvailabilitySchema(BaseSchema):
    calendar: List[CalendarEntry] = []
    minimum_stay: int = Field(1, ge=1)
    maximum_stay: int = Field(30, ge=1)
    booking_window: int = Field(365, ge=1)


class AvailabilityUpdate(BaseSchema):
    """Partial update; omitted keys keep their current values."""
    calendar: Optional[List[CalendarEntry]] = None
    minimum_stay: Optional[int] = Field(None, ge=1)
    maximum_stay: Optional[int] = Field(None, ge=1)
    booking_window: Optional[int] = Field(None, ge=1)


class HostCreate(BaseSchema):
    family_size: int = Field(..., ge=1, le=10)
    address: AddressSchema
    income_verification: IncomeVerificationInput
    accommodation: AccommodationSchema
    experiences: List[ExperienceCreate] = []
    culinary_specialties: List[str] = []
    cultural_background: Optional[CulturalBackground] = None
    hosting_experience: Optional[HostingExperience] = None
    pricing: HostPricing
    availability: Optional[AvailabilitySchema] = None


class HostUpdate(BaseSchema):
    family_size: Optional[int] = Field(None, ge=1, le=10)
    address: Optional[AddressSchema] = None
    income_verification: Optional[IncomeVerificationInput] = None
    accommodation: Optional[AccommodationSchema] = None
    culinary_specialties: Optional[List[str]] = None
    cultural_background: Optional[CulturalBackground] = None
    hosting_experience: Optional[HostingExperience] = None
    pricing: Optional[HostPricing] = None
    response_time: Optional[ResponseTime] = None


class VerificationSchema(BaseSchema):
    identity: bool
    income: bool
    background: bool
    phone: bool
    email: bool
    verification_date: Optional[UTCDatetime] = None


class HostRatings(BaseSchema):
    overall: float
    cleanliness: float
    communication: float
    cultural: float
    cooking: float
    total_reviews: int


class HostResponse(BaseSchema):
    id: uuid.UUID
    user: Optional[UserProfile] = None
    family_size: int
    address: AddressSchema
    income_verification: IncomeVerificationResponse
    accommodation: AccommodationSchema
    experiences: List[ExperienceResponse]
    culinary_specialties: List[str]
    cultural_background: CulturalBackground
    hosting_experience: HostingExperience
    pricing: HostPricing
    availability: AvailabilitySchema
    verification: VerificationSchema
    ratings: HostRatings
    status: HostStatus
    superhost: bool
    response_rate: float
    response_time: ResponseTime
    is_verified: bool
    full_address: str
    created_at: UTCDatetime
    updated_at: UTCDatetime


class HostListResponse(BaseSchema):
    hosts: List[HostResponse]
    pagination: Pagination


class HostEnvelope(BaseSchema):
    message: str
    host: HostResponse


class PhotosEnvelope(BaseSchema):
    message: str
    photos: List[str]


class ExperiencesEnvelope(BaseSchema):
    message: str
    experiences: List[ExperienceResponse]


class AvailabilityEnvelope(BaseSchema):
    message: str
    availability: AvailabilitySchema


class QuoteNight(BaseSchema):
    date: date_type
    price: float


class QuoteResponse(BaseSchema):
    host_id: uuid.UUID
    experience: ExperienceType
    check_in: UTCDatetime
    check_out: UTCDatetime
    nights: int
    nightly: List[QuoteNight]
    base_price: float
    discount: float
    discount_type: Optional[Literal["weekly", "monthly"]] = None
    service_fee: float
    taxes: float
    total: float


# ── Booking ───────────────────────────────────────────────────

class GuestCounts(BaseSchema):
    adults: int = Field(..., ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)


class BookingPricing(BaseSchema):
    base_price: float = Field(..., gt=0)
    service_fee: float = Field(..., ge=0)
    taxes: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    total: float = Field(..., gt=0)


class PaymentInput(BaseSchema):
    method: PaymentMethod
    transaction_id: Optional[str] = Field(None, max_length=100)


class SpecialRequests(BaseSchema):
    dietary: List[str] = []
    accessibility: List[str] = []
    other: Optional[str] = Field(None, max_length=1000)


class EmergencyContact(BaseSchema):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class GuestDetails(BaseSchema):
    emergency_contact: Optional[EmergencyContact] = None
    travel_purpose: Optional[
        Literal["leisure", "business", "education", "cultural-exchange", "other"]
    ] = None
    previous_experience: Optional[Literal["first-time", "experienced", "frequent-traveler"]] = None


class BookingCreate(BaseSchema):
    host: uuid.UUID
    experience: ExperienceType
    check_in: UTCDatetime
    check_out: UTCDatetime
    guests: GuestCounts
    pricing: BookingPricing
    payment: PaymentInput
    special_requests: Optional[SpecialRequests] = None
    guest_details: Optional[GuestDetails] = None


class BookingStatusUpdate(BaseSchema):
    status: Literal["confirmed", "cancelled", "completed"]
    reason: Optional[str] = Field(None, max_length=1000)


class BookingCancelRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=1000)


class BookingMessageCreate(BaseSchema):
    message: str = Field(..., min_length=1, max_length=5000)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message is required")
        return v


class BookingMessageResponse(BaseSchema):
    id: uuid.UUID
    sequence: int
    sender_id: uuid.UUID
    message: str
    timestamp: UTCDatetime
    read: bool


class BookingHostSummary(BaseSchema):
    id: uuid.UUID
    user: Optional[UserContact] = None
    city: str
    country: str


class PaymentResponse(BaseSchema):
    method: PaymentMethod
    transaction_id: Optional[str] = None
    payment_date: Optional[UTCDatetime] = None
    refund_amount: float = 0
    refund_date: Optional[UTCDatetime] = None


class CancellationResponse(BaseSchema):
    cancelled: bool
    cancelled_by: Optional[CancelledBy] = None
    cancellation_date: Optional[UTCDatetime] = None
    reason: Optional[str] = None
    refund_amount: float = 0


class BookingReviewRefs(BaseSchema):
    guest_review_id: Optional[uuid.UUID] = None
    host_review_id: Optional[uuid.UUID] = None


class BookingResponse(BaseSchema):
    id: uuid.UUID
    guest: Optional[UserContact] = None
    host: Optional[BookingHostSummary] = None
    experience: ExperienceType
    check_in: UTCDatetime
    check_out: UTCDatetime
    guests: GuestCounts
    pricing: BookingPricing
    payment: PaymentResponse
    status: BookingStatus
    cancellation: CancellationResponse
    special_requests: Dict[str, Any]
    guest_details: Dict[str, Any]
    checkin_instructions: Dict[str, Any]
    reviews: BookingReviewRefs
    total_nights: int
    is_active: bool
    is_upcoming: bool
    is_past: bool
    cancellation_deadline: UTCDatetime
    can_cancel: bool
    created_at: UTCDatetime
    updated_at: UTCDatetime


class BookingListResponse(BaseSchema):
    bookings: List[BookingResponse]
    pagination: Pagination


class BookingEnvelope(BaseSchema):
    message: str
    booking: BookingResponse


class CommunicationEnvelope(BaseSchema):
    message: str
    communication: List[BookingMessageResponse]


class ReadReceiptResponse(BaseSchema):
    message: str
    updated: int


# ── Review ────────────────────────────────────────────────────

Score = Annotated[int, Field(ge=1, le=5)]


class ReviewRatings(BaseSchema):
    overall: Score
    cleanliness: Optional[Score] = None
    communication: Optional[Score] = None
    cultural: Optional[Score] = None
    cooking: Optional[Score] = None
    hospitality: Optional[Score] = None
    respect: Optional[Score] = None


class ReviewRatingsUpdate(BaseSchema):
    overall: Optional[Score] = None
    cleanliness: Optional[Score] = None
    communication: Optional[Score] = None
    cultural: Optional[Score] = None
    cooking: Optional[Score] = None
    hospitality: Optional[Score] = None
    respect: Optional[Score] = None


def _validate_comment(v: Optional[str], min_len: int, max_len: int) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not min_len <= len(v) <= max_len:
        raise ValueError(f"Comment must be between {min_len} and {max_len} characters")
    return v


class ReviewCreate(BaseSchema):
    booking: uuid.UUID
    type: ReviewType
    ratings: ReviewRatings
    comment: str
    highlights: List[Highlight] = []
    photos: List[str] = []
    language: str = Field("en", max_length=10)

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, v: str) -> str:
        return _validate_comment(v, 10, 1000)


class ReviewUpdate(BaseSchema):
    ratings: Optional[ReviewRatingsUpdate] = None
    comment: Optional[str] = None
    highlights: Optional[List[Highlight]] = None

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, v: Optional[str]) -> Optional[str]:
        return _validate_comment(v, 10, 1000)


class ReviewReplyCreate(BaseSchema):
    comment: str

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, v: str) -> str:
        return _validate_comment(v, 10, 500)


class ReviewFlagRequest(BaseSchema):
    reason: FlagReason


class ReviewReply(BaseSchema):
    comment: str
    date: UTCDatetime
    author: uuid.UUID


class ReviewBookingRef(BaseSchema):
    id: uuid.UUID
    check_in: UTCDatetime
    check_out: UTCDatetime
    experience: ExperienceType


class ReviewResponse(BaseSchema):
    id: uuid.UUID
    booking: Optional[ReviewBookingRef] = None
    reviewer: Optional[UserSummary] = None
    reviewee: Optional[UserSummary] = None
    type: ReviewType
    ratings: ReviewRatings
    comment: str
    highlights: List[Highlight]
    photos: List[str]
    helpful_count: int
    response: Optional[ReviewReply] = None
    flagged: bool
    flag_reason: Optional[FlagReason] = None
    verified: bool
    language: str
    weighted_rating: float
    is_recent: bool
    created_at: UTCDatetime
    updated_at: UTCDatetime


class RatingBreakdown(BaseSchema):
    rating: int
    cleanliness: Optional[int] = None
    communication: Optional[int] = None
    cultural: Optional[int] = None
    cooking: Optional[int] = None
    hospitality: Optional[int] = None


class HostReviewStats(BaseSchema):
    average_rating: float = 0
    total_reviews: int = 0
    rating_breakdown: List[RatingBreakdown] = []


class HostReviewsResponse(BaseSchema):
    reviews: List[ReviewResponse]
    stats: HostReviewStats
    pagination: Pagination


class UserReviewsResponse(BaseSchema):
    reviews: List[ReviewResponse]
    pagination: Pagination


class ReviewEnvelope(BaseSchema):
    message: str
    review: ReviewResponse


class ReviewReplyEnvelope(BaseSchema):
    message: str
    response: ReviewReply


class HelpfulState(BaseSchema):
    count: int
    users: List[uuid.UUID]


class HelpfulEnvelope(BaseSchema):
    message: str
    helpful: HelpfulState


# ── Notification ──────────────────────────────────────────────

class NotificationResponse(BaseSchema):
    id: uuid.UUID
    type: NotificationType
    title: str
    body: str
    is_read: bool
    read_at: Optional[UTCDatetime]
    sent_email: bool
    created_at: UTCDatetime
    booking_id: Optional[uuid.UUID]


class NotificationListResponse(BaseSchema):
    notifications: List[NotificationResponse]
    unread_count: int
    pagination: Pagination


# ── Admin ─────────────────────────────────────────────────────

class AdminHostStatusRequest(BaseSchema):
    status: HostStatus
    superhost: Optional[bool] = None


class AdminVerificationRequest(BaseSchema):
    identity: Optional[bool] = None
    income: Optional[bool] = None
    background: Optional[bool] = None
    phone: Optional[bool] = None
    email: Optional[bool] = None
