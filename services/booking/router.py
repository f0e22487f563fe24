"""
services/booking/router.py
Booking lifecycle: create, list, status changes, cancellation and the
per-booking message thread.
States: PENDING → CONFIRMED → COMPLETED | CANCELLED (see lifecycle.py)
"""

import logging
import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.settings import settings
from services.booking.availability import check_availability
from services.booking.pricing import to_money
from services.booking.lifecycle import (
    can_cancel,
    cancellation_deadline,
    cancelled_by_for,
    is_active,
    is_documented_transition,
    is_past,
    is_upcoming,
    total_nights,
)
from services.host.router import get_host_or_404
from services.notification.dispatcher import notify_booking_cancelled, notify_booking_created
from shared.middleware.auth import get_current_user
from shared.models.models import (
    Booking,
    BookingAuditLog,
    BookingMessage,
    BookingStatus,
    ExperienceType,
    Host,
    HostStatus,
    PaymentMethod,
    User,
    UserRole,
)
from shared.schemas.schemas import (
    BookingCancelRequest,
    BookingCreate,
    BookingEnvelope,
    BookingHostSummary,
    BookingListResponse,
    BookingMessageCreate,
    BookingMessageResponse,
    BookingPricing,
    BookingResponse,
    BookingReviewRefs,
    BookingStatusUpdate,
    CancellationResponse,
    CommunicationEnvelope,
    GuestCounts,
    Pagination,
    PaymentResponse,
    ReadReceiptResponse,
    UserContact,
)
from shared.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# ── Helpers ───────────────────────────────────────────────────

async def _get_booking_or_404(booking_id: UUID, db: AsyncSession, lock: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


async def _authorize_party(booking: Booking, user: User, db: AsyncSession) -> None:
    """Caller must be the booking's guest or own the booked host profile."""
    if booking.guest_id == user.id:
        return
    own_host_id = await db.scalar(select(Host.id).where(Host.user_id == user.id))
    if own_host_id is None or own_host_id != booking.host_id:
        raise HTTPException(status_code=403, detail="Not authorized")


async def _log_status_change(
    db: AsyncSession,
    booking: Booking,
    from_status: Optional[str],
    to_status: str,
    changed_by: User,
    reason: Optional[str] = None,
):
    """Append an immutable audit log entry for every status change."""
    db.add(BookingAuditLog(
        booking_id=booking.id,
        from_status=from_status,
        to_status=to_status,
        changed_by_id=changed_by.id,
        reason=reason,
    ))


async def _load_parties(booking: Booking, db: AsyncSession) -> tuple[User, Host, User]:
    guest = await db.scalar(select(User).where(User.id == booking.guest_id))
    host = await db.scalar(select(Host).where(Host.id == booking.host_id))
    host_user = await db.scalar(select(User).where(User.id == host.user_id))
    return guest, host, host_user


def _enrich_booking(
    booking: Booking,
    guest: Optional[User],
    host: Optional[Host],
    host_user: Optional[User],
) -> BookingResponse:
    now = utcnow()
    host_summary = None
    if host is not None:
        host_summary = BookingHostSummary(
            id=host.id,
            user=UserContact.model_validate(host_user) if host_user else None,
            city=host.city,
            country=host.country,
        )

    return BookingResponse(
        id=booking.id,
        guest=UserContact.model_validate(guest) if guest else None,
        host=host_summary,
        experience=booking.experience,
        check_in=booking.check_in,
        check_out=booking.check_out,
        guests=GuestCounts(
            adults=booking.adults,
            children=booking.children or 0,
            infants=booking.infants or 0,
        ),
        pricing=BookingPricing(
            base_price=float(booking.base_price),
            service_fee=float(booking.service_fee),
            taxes=float(booking.taxes or 0),
            discount=float(booking.discount or 0),
            total=float(booking.total),
        ),
        payment=PaymentResponse(
            method=booking.payment_method,
            transaction_id=booking.transaction_id,
            payment_date=booking.payment_date,
            refund_amount=float(booking.refund_amount or 0),
            refund_date=booking.refund_date,
        ),
        status=booking.status,
        cancellation=CancellationResponse(
            cancelled=bool(booking.cancelled),
            cancelled_by=booking.cancelled_by,
            cancellation_date=booking.cancellation_date,
            reason=booking.cancellation_reason,
            refund_amount=float(booking.cancellation_refund_amount or 0),
        ),
        special_requests=booking.special_requests or {},
        guest_details=booking.guest_details or {},
        checkin_instructions=booking.checkin_instructions or {},
        reviews=BookingReviewRefs(
            guest_review_id=booking.guest_review_id,
            host_review_id=booking.host_review_id,
        ),
        total_nights=total_nights(booking.check_in, booking.check_out),
        is_active=is_active(booking, now),
        is_upcoming=is_upcoming(booking, now),
        is_past=is_past(booking, now),
        cancellation_deadline=cancellation_deadline(booking.check_in),
        can_cancel=can_cancel(booking, now),
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


async def _enrich_many(bookings: list[Booking], db: AsyncSession) -> list[BookingResponse]:
    if not bookings:
        return []
    host_result = await db.execute(select(Host).where(Host.id.in_({b.host_id for b in bookings})))
    hosts = {h.id: h for h in host_result.scalars()}

    user_ids = {b.guest_id for b in bookings} | {h.user_id for h in hosts.values()}
    user_result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: u for u in user_result.scalars()}

    enriched = []
    for booking in bookings:
        host = hosts.get(booking.host_id)
        enriched.append(_enrich_booking(
            booking,
            users.get(booking.guest_id),
            host,
            users.get(host.user_id) if host else None,
        ))
    return enriched


async def _messages_of(booking: Booking, db: AsyncSession) -> list[BookingMessageResponse]:
    result = await db.execute(
        select(BookingMessage)
        .where(BookingMessage.booking_id == booking.id)
        .order_by(BookingMessage.sequence)
    )
    return [BookingMessageResponse.model_validate(m) for m in result.scalars()]


# ── Queries ───────────────────────────────────────────────────

@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    booking_type: str = Query("all", alias="type", pattern="^(upcoming|past|active|all)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Guests see the bookings they made; hosts see bookings of their profile.
    `upcoming` and `active` imply status=confirmed.
    """
    if current_user.role == UserRole.HOST:
        host_id = await db.scalar(select(Host.id).where(Host.user_id == current_user.id))
        if host_id is None:
            return BookingListResponse(
                bookings=[], pagination=Pagination(page=page, limit=limit, total=0, pages=0)
            )
        filters = [Booking.host_id == host_id]
    else:
        filters = [Booking.guest_id == current_user.id]

    now = utcnow()
    wanted_status = BookingStatus(status_filter) if status_filter else None
    if booking_type == "upcoming":
        filters.append(Booking.check_in >= now)
        wanted_status = BookingStatus.CONFIRMED
    elif booking_type == "past":
        filters.append(Booking.check_out < now)
    elif booking_type == "active":
        filters.extend([Booking.check_in <= now, Booking.check_out >= now])
        wanted_status = BookingStatus.CONFIRMED
    if wanted_status is not None:
        filters.append(Booking.status == wanted_status)

    total = await db.scalar(select(func.count(Booking.id)).where(*filters)) or 0
    result = await db.execute(
        select(Booking)
        .where(*filters)
        .order_by(Booking.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return BookingListResponse(
        bookings=await _enrich_many(list(result.scalars()), db),
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await _get_booking_or_404(booking_id, db)
    await _authorize_party(booking, current_user, db)
    return _enrich_booking(booking, *await _load_parties(booking, db))


# ── Create ────────────────────────────────────────────────────

@router.post("", response_model=BookingEnvelope, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a pending booking. Steps:
    1. Validate dates
    2. Lock the host row; host must exist and be approved
    3. Reject overlapping pending/confirmed bookings
    4. Insert, audit, notify guest + host
    """
    if data.check_in <= utcnow():
        raise HTTPException(status_code=400, detail="Check-in date must be in the future")
    if data.check_out <= data.check_in:
        raise HTTPException(status_code=400, detail="Check-out date must be after check-in date")

    host = await get_host_or_404(data.host, db, lock=True)
    if host.status != HostStatus.APPROVED:
        raise HTTPException(status_code=400, detail="Host is not available for booking")

    if not await check_availability(db, host.id, data.check_in, data.check_out):
        raise HTTPException(status_code=400, detail="Selected dates are not available")

    booking = Booking(
        guest_id=current_user.id,
        host_id=host.id,
        experience=ExperienceType(data.experience),
        check_in=data.check_in,
        check_out=data.check_out,
        adults=data.guests.adults,
        children=data.guests.children,
        infants=data.guests.infants,
        base_price=to_money(data.pricing.base_price),
        service_fee=to_money(data.pricing.service_fee),
        taxes=to_money(data.pricing.taxes),
        discount=to_money(data.pricing.discount),
        total=to_money(data.pricing.total),
        payment_method=PaymentMethod(data.payment.method),
        transaction_id=data.payment.transaction_id,
        status=BookingStatus.PENDING,
        cancelled=False,
        special_requests=data.special_requests.model_dump(mode="json") if data.special_requests else {},
        guest_details=data.guest_details.model_dump(mode="json", exclude_none=True) if data.guest_details else {},
        checkin_instructions={"provided": False},
    )
    db.add(booking)
    await db.flush()

    await _log_status_change(db, booking, None, BookingStatus.PENDING.value, current_user)

    host_user = await db.scalar(select(User).where(User.id == host.user_id))
    await notify_booking_created(db, booking, current_user, host_user)
    await db.commit()

    logger.info(f"Booking {booking.id} created for host {host.id} by {current_user.id}")
    return BookingEnvelope(
        message="Booking created successfully",
        booking=_enrich_booking(booking, current_user, host, host_user),
    )


# ── Transitions ───────────────────────────────────────────────

@router.put("/{booking_id}/status", response_model=BookingEnvelope)
async def update_booking_status(
    booking_id: UUID,
    data: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Set confirmed/cancelled/completed directly. Moves outside the documented
    graph are logged, and refused when ENFORCE_STATUS_TRANSITIONS is on.
    """
    booking = await _get_booking_or_404(booking_id, db)
    await _authorize_party(booking, current_user, db)

    current = BookingStatus(booking.status)
    target = BookingStatus(data.status)
    if not is_documented_transition(current, target):
        logger.warning(
            f"Undocumented booking transition {current.value} -> {target.value} "
            f"on {booking.id} by {current_user.id}"
        )
        if settings.ENFORCE_STATUS_TRANSITIONS:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot change booking from '{current.value}' to '{target.value}'",
            )

    booking.status = target
    if target == BookingStatus.CANCELLED and not booking.cancelled:
        booking.cancelled = True
        booking.cancelled_by = cancelled_by_for(current_user.role)
        booking.cancellation_date = utcnow()
        booking.cancellation_reason = data.reason or ""

    await _log_status_change(db, booking, current.value, target.value, current_user, data.reason)
    await db.flush()
    await db.commit()

    return BookingEnvelope(
        message="Booking status updated successfully",
        booking=_enrich_booking(booking, *await _load_parties(booking, db)),
    )


@router.post("/{booking_id}/cancel", response_model=BookingEnvelope)
async def cancel_booking(
    booking_id: UUID,
    data: Optional[BookingCancelRequest] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a confirmed booking more than CANCELLATION_WINDOW_DAYS before check-in."""
    booking = await _get_booking_or_404(booking_id, db)
    await _authorize_party(booking, current_user, db)

    if not can_cancel(booking):
        raise HTTPException(status_code=400, detail="Cancellation not allowed for this booking")

    prev_status = BookingStatus(booking.status).value
    reason = (data.reason if data else None) or ""
    booking.status = BookingStatus.CANCELLED
    booking.cancelled = True
    booking.cancelled_by = cancelled_by_for(current_user.role)
    booking.cancellation_date = utcnow()
    booking.cancellation_reason = reason

    await _log_status_change(
        db, booking, prev_status, BookingStatus.CANCELLED.value, current_user, reason or None
    )
    await db.flush()

    guest, host, host_user = await _load_parties(booking, db)
    await notify_booking_cancelled(db, booking, guest, host_user)
    await db.commit()

    logger.info(f"Booking {booking.id} cancelled by {booking.cancelled_by.value}")
    return BookingEnvelope(
        message="Booking cancelled successfully",
        booking=_enrich_booking(booking, guest, host, host_user),
    )


# ── Messages ──────────────────────────────────────────────────

@router.post("/{booking_id}/messages", response_model=CommunicationEnvelope)
async def add_message(
    booking_id: UUID,
    data: BookingMessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Append to the booking's thread. The booking row lock orders sequence numbers."""
    booking = await _get_booking_or_404(booking_id, db, lock=True)
    await _authorize_party(booking, current_user, db)

    last = await db.scalar(
        select(func.max(BookingMessage.sequence)).where(BookingMessage.booking_id == booking.id)
    )
    db.add(BookingMessage(
        booking_id=booking.id,
        sequence=(last or 0) + 1,
        sender_id=current_user.id,
        message=data.message,
        timestamp=utcnow(),
        read=False,
    ))
    await db.flush()
    communication = await _messages_of(booking, db)
    await db.commit()

    return CommunicationEnvelope(message="Message added successfully", communication=communication)


@router.get("/{booking_id}/messages", response_model=CommunicationEnvelope)
async def list_messages(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    booking = await _get_booking_or_404(booking_id, db)
    await _authorize_party(booking, current_user, db)
    return CommunicationEnvelope(message="OK", communication=await _messages_of(booking, db))


@router.put("/{booking_id}/messages/read", response_model=ReadReceiptResponse)
async def mark_messages_read(
    booking_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Mark every message from the other party as read."""
    booking = await _get_booking_or_404(booking_id, db)
    await _authorize_party(booking, current_user, db)

    result = await db.execute(
        update(BookingMessage)
        .where(
            BookingMessage.booking_id == booking.id,
            BookingMessage.sender_id != current_user.id,
            BookingMessage.read == False,  # noqa: E712
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return ReadReceiptResponse(message="Messages marked as read", updated=result.rowcount)
