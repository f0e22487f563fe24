"""
shared/models/models.py
All SQLAlchemy ORM models for the CulturalStay marketplace.
Portable column types (Uuid, JSON→JSONB on PostgreSQL) so the same
models run against PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from config.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[PyEnum]) -> Enum:
    """Store enum *values* ("guest-to-host"), not member names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


# ── Enumerations ──────────────────────────────────────────────

class UserRole(str, PyEnum):
    GUEST = "guest"
    HOST = "host"
    ADMIN = "admin"


class ExperienceType(str, PyEnum):
    COOKING = "cooking"
    HOMESTAY = "homestay"
    CULTURAL_TOUR = "cultural-tour"
    LANGUAGE_EXCHANGE = "language-exchange"
    CRAFT_WORKSHOP = "craft-workshop"


class BookingStatus(str, PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DISPUTED = "disputed"


class PaymentMethod(str, PyEnum):
    CREDIT_CARD = "credit-card"
    DEBIT_CARD = "debit-card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank-transfer"


class CancelledBy(str, PyEnum):
    GUEST = "guest"
    HOST = "host"
    ADMIN = "admin"


class HostStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class IncomeRange(str, PyEnum):
    LOWER_MIDDLE = "lower-middle"
    MIDDLE = "middle"
    UPPER_MIDDLE = "upper-middle"


class AccommodationType(str, PyEnum):
    APARTMENT = "apartment"
    HOUSE = "house"
    VILLA = "villa"
    TRADITIONAL = "traditional"


class ResponseTime(str, PyEnum):
    WITHIN_HOUR = "within-hour"
    WITHIN_FEW_HOURS = "within-few-hours"
    WITHIN_DAY = "within-day"


class ReviewType(str, PyEnum):
    GUEST_TO_HOST = "guest-to-host"
    HOST_TO_GUEST = "host-to-guest"


class FlagReason(str, PyEnum):
    INAPPROPRIATE = "inappropriate"
    SPAM = "spam"
    FAKE = "fake"
    OFFENSIVE = "offensive"
    OTHER = "other"


class Highlight(str, PyEnum):
    EXCELLENT_COOKING = "excellent-cooking"
    CULTURAL_INSIGHTS = "cultural-insights"
    WARM_HOSPITALITY = "warm-hospitality"
    CLEAN_ACCOMMODATION = "clean-accommodation"
    GREAT_COMMUNICATION = "great-communication"
    AUTHENTIC_EXPERIENCE = "authentic-experience"
    FAMILY_FRIENDLY = "family-friendly"
    LANGUAGE_PRACTICE = "language-practice"
    LOCAL_KNOWLEDGE = "local-knowledge"
    RESPECTFUL_GUEST = "respectful-guest"
    EASY_COMMUNICATION = "easy-communication"
    FOLLOWED_HOUSE_RULES = "followed-house-rules"
    LEFT_CLEAN = "left-clean"
    CULTURAL_CURIOSITY = "cultural-curiosity"


class NotificationType(str, PyEnum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"   # to guest
    NEW_BOOKING = "NEW_BOOKING"                     # to host
    BOOKING_CANCELLED = "BOOKING_CANCELLED"


# ── Mixins ────────────────────────────────────────────────────

class TimestampMixin:
    """Adds created_at and updated_at to any model."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


# ── Models ────────────────────────────────────────────────────

class User(TimestampMixin, Base):
    """Marketplace account. Identity is issued upstream; we store the profile."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    profile_picture: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    languages: Mapped[list] = mapped_column(JSONType, default=list)
    role: Mapped[UserRole] = mapped_column(_enum(UserRole), nullable=False, default=UserRole.GUEST)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("ix_users_role", "role"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class Host(TimestampMixin, Base):
    """
    Host family profile. One per user, mutated only by its owner
    (admins may change status and verification flags).
    """
    __tablename__ = "hosts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    family_size: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    # Address
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Income verification
    income_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    income_documents: Mapped[list] = mapped_column(JSONType, default=list)
    income_verification_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    income_range: Mapped[IncomeRange] = mapped_column(_enum(IncomeRange), nullable=False)

    # Accommodation
    accommodation_type: Mapped[AccommodationType] = mapped_column(
        _enum(AccommodationType), nullable=False
    )
    bedrooms: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    bathrooms: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    amenities: Mapped[list] = mapped_column(JSONType, default=list)
    photos: Mapped[list] = mapped_column(JSONType, default=list)

    # Culture
    culinary_specialties: Mapped[list] = mapped_column(JSONType, default=list)
    cultural_background: Mapped[dict] = mapped_column(JSONType, default=dict)
    hosting_experience: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Pricing
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    weekly_discount: Mapped[float] = mapped_column(Float, default=0.0)    # percent
    monthly_discount: Mapped[float] = mapped_column(Float, default=0.0)   # percent
    seasonal_rates: Mapped[list] = mapped_column(JSONType, default=list)
    # e.g. [{"season": "summer", "startDate": "...", "endDate": "...", "priceMultiplier": 1.2}]

    # Availability
    availability_calendar: Mapped[list] = mapped_column(JSONType, default=list)
    # e.g. [{"date": "2026-03-10", "available": false, "price": 80}]
    minimum_stay: Mapped[int] = mapped_column(Integer, default=1)
    maximum_stay: Mapped[int] = mapped_column(Integer, default=30)
    booking_window: Mapped[int] = mapped_column(Integer, default=365)  # days

    # Verification
    verified_identity: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_income: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_background: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_phone: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_email: Mapped[bool] = mapped_column(Boolean, default=False)
    verification_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Ratings (denormalized from guest-to-host reviews)
    rating_overall: Mapped[float] = mapped_column(Float, default=0.0)
    rating_cleanliness: Mapped[float] = mapped_column(Float, default=0.0)
    rating_communication: Mapped[float] = mapped_column(Float, default=0.0)
    rating_cultural: Mapped[float] = mapped_column(Float, default=0.0)
    rating_cooking: Mapped[float] = mapped_column(Float, default=0.0)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[HostStatus] = mapped_column(
        _enum(HostStatus), default=HostStatus.PENDING, nullable=False
    )
    superhost: Mapped[bool] = mapped_column(Boolean, default=False)
    response_rate: Mapped[float] = mapped_column(Float, default=0.0)
    response_time: Mapped[ResponseTime] = mapped_column(
        _enum(ResponseTime), default=ResponseTime.WITHIN_DAY
    )

    experiences: Mapped[List["HostExperience"]] = relationship(
        back_populates="host",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="HostExperience.created_at",
    )

    __table_args__ = (
        CheckConstraint("family_size >= 1 AND family_size <= 10", name="ck_host_family_size"),
        Index("ix_hosts_status", "status"),
        Index("ix_hosts_city", "city"),
        Index("ix_hosts_rating_overall", "rating_overall"),
    )

    @property
    def is_verified(self) -> bool:
        return self.verified_identity and self.verified_income and self.verified_background

    @property
    def full_address(self) -> str:
        return f"{self.street}, {self.city}, {self.state}, {self.country} {self.postal_code}"


class HostExperience(TimestampMixin, Base):
    """A bookable offering listed by a host."""
    __tablename__ = "host_experiences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[ExperienceType] = mapped_column(_enum(ExperienceType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    duration: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_guests: Mapped[int] = mapped_column(Integer, nullable=False)
    includes: Mapped[list] = mapped_column(JSONType, default=list)

    host: Mapped["Host"] = relationship(back_populates="experiences")

    __table_args__ = (Index("ix_host_experiences_type", "type"),)


class Booking(TimestampMixin, Base):
    """
    A guest's reservation of a host experience. Never hard-deleted:
    cancellation is a status plus the cancellation_* record.
    Status transitions: pending → confirmed → completed,
    pending|confirmed → cancelled, confirmed → disputed.
    """
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    guest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    host_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("hosts.id"), nullable=False)
    experience: Mapped[ExperienceType] = mapped_column(_enum(ExperienceType), nullable=False)

    # Schedule
    check_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_out: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Party
    adults: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    children: Mapped[int] = mapped_column(SmallInteger, default=0)
    infants: Mapped[int] = mapped_column(SmallInteger, default=0)

    # Pricing (stored as submitted, never derived)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    taxes: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    # Payment metadata
    payment_method: Mapped[PaymentMethod] = mapped_column(_enum(PaymentMethod), nullable=False)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    refund_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus), nullable=False, default=BookingStatus.PENDING
    )

    # Cancellation record
    cancelled: Mapped[bool] = mapped_column(Boolean, default=False)
    cancelled_by: Mapped[Optional[CancelledBy]] = mapped_column(_enum(CancelledBy), nullable=True)
    cancellation_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_refund_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)

    special_requests: Mapped[dict] = mapped_column(JSONType, default=dict)
    guest_details: Mapped[dict] = mapped_column(JSONType, default=dict)
    checkin_instructions: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Review back-references, each set at most once
    guest_review_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    host_review_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_booking_dates"),
        CheckConstraint("adults >= 1", name="ck_booking_adults"),
        Index("ix_bookings_guest_status", "guest_id", "status"),
        Index("ix_bookings_host_status", "host_id", "status"),
        Index("ix_bookings_dates", "check_in", "check_out"),
        Index("ix_bookings_created_at", "created_at"),
    )


class BookingMessage(Base):
    """Append-only conversation log owned by a booking, ordered by sequence."""
    __tablename__ = "booking_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    read: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        UniqueConstraint("booking_id", "sequence", name="uq_booking_message_sequence"),
    )


class BookingAuditLog(Base):
    """Immutable log of all booking status transitions."""
    __tablename__ = "booking_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_booking_audit_booking_id", "booking_id"),)


class Review(TimestampMixin, Base):
    """Post-stay review. One per (booking, reviewer, type)."""
    __tablename__ = "reviews"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("bookings.id"), nullable=False)
    reviewer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    reviewee_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    type: Mapped[ReviewType] = mapped_column(_enum(ReviewType), nullable=False)

    rating_overall: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    rating_cleanliness: Mapped[Optional[int]] = mapped_column(SmallInteger)
    rating_communication: Mapped[Optional[int]] = mapped_column(SmallInteger)
    rating_cultural: Mapped[Optional[int]] = mapped_column(SmallInteger)
    rating_cooking: Mapped[Optional[int]] = mapped_column(SmallInteger)
    rating_hospitality: Mapped[Optional[int]] = mapped_column(SmallInteger)
    rating_respect: Mapped[Optional[int]] = mapped_column(SmallInteger)

    comment: Mapped[str] = mapped_column(Text, nullable=False)
    highlights: Mapped[list] = mapped_column(JSONType, default=list)
    photos: Mapped[list] = mapped_column(JSONType, default=list)

    helpful_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    response_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    response_author_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )

    flagged: Mapped[bool] = mapped_column(Boolean, default=False)
    flag_reason: Mapped[Optional[FlagReason]] = mapped_column(_enum(FlagReason), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=True)
    language: Mapped[str] = mapped_column(String(10), default="en")

    __table_args__ = (
        UniqueConstraint("booking_id", "reviewer_id", "type", name="uq_review_booking_reviewer_type"),
        CheckConstraint("rating_overall >= 1 AND rating_overall <= 5", name="ck_review_overall_range"),
        Index("ix_reviews_reviewee_type", "reviewee_id", "type"),
        Index("ix_reviews_reviewer_id", "reviewer_id"),
        Index("ix_reviews_created_at", "created_at"),
    )


class ReviewHelpfulMark(Base):
    """Membership of a user in a review's helpful set."""
    __tablename__ = "review_helpful_marks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    review_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_helpful_user"),
    )


class Notification(TimestampMixin, Base):
    """In-app notification log. Email delivery is recorded on the row."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    booking_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=True
    )
    type: Mapped[NotificationType] = mapped_column(_enum(NotificationType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    sent_email: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (Index("ix_notifications_user_id_read", "user_id", "is_read"),)
