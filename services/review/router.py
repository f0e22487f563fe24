"""
services/review/router.py
Post-stay reviews in both directions, host responses, helpful marks
and moderation flags.
"""

import logging
import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.review.ratings import is_editable, recompute_host_ratings, round_half_up, weighted_rating
from shared.middleware.auth import get_current_user
from shared.models.models import (
    Booking,
    BookingStatus,
    FlagReason,
    Highlight,
    Host,
    Review,
    ReviewHelpfulMark,
    ReviewType,
    User,
)
from shared.schemas.schemas import (
    HelpfulEnvelope,
    HelpfulState,
    HostReviewStats,
    HostReviewsResponse,
    MessageResponse,
    Pagination,
    RatingBreakdown,
    ReviewBookingRef,
    ReviewCreate,
    ReviewEnvelope,
    ReviewFlagRequest,
    ReviewRatings,
    ReviewReply,
    ReviewReplyCreate,
    ReviewReplyEnvelope,
    ReviewResponse,
    ReviewUpdate,
    UserReviewsResponse,
    UserSummary,
)
from shared.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])

RATING_FIELDS = ("overall", "cleanliness", "communication", "cultural", "cooking", "hospitality", "respect")


# ── Helpers ───────────────────────────────────────────────────

async def _get_review_or_404(review_id: UUID, db: AsyncSession, lock: bool = False) -> Review:
    query = select(Review).where(Review.id == review_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    review = result.scalar_one_or_none()
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return review


def _serialize(
    review: Review,
    users: dict[UUID, User],
    bookings: dict[UUID, Booking],
) -> ReviewResponse:
    reviewer = users.get(review.reviewer_id)
    reviewee = users.get(review.reviewee_id)
    booking = bookings.get(review.booking_id)

    response = None
    if review.response_comment:
        response = ReviewReply(
            comment=review.response_comment,
            date=review.response_date,
            author=review.response_author_id,
        )

    return ReviewResponse(
        id=review.id,
        booking=ReviewBookingRef.model_validate(booking) if booking else None,
        reviewer=UserSummary.model_validate(reviewer) if reviewer else None,
        reviewee=UserSummary.model_validate(reviewee) if reviewee else None,
        type=review.type,
        ratings=ReviewRatings(
            **{name: getattr(review, f"rating_{name}") for name in RATING_FIELDS}
        ),
        comment=review.comment,
        highlights=review.highlights or [],
        photos=review.photos or [],
        helpful_count=review.helpful_count,
        response=response,
        flagged=bool(review.flagged),
        flag_reason=review.flag_reason,
        verified=bool(review.verified),
        language=review.language or "en",
        weighted_rating=weighted_rating(review),
        is_recent=is_editable(review),
        created_at=review.created_at,
        updated_at=review.updated_at,
    )


async def _serialize_many(reviews: list[Review], db: AsyncSession) -> list[ReviewResponse]:
    if not reviews:
        return []
    user_ids = {r.reviewer_id for r in reviews} | {r.reviewee_id for r in reviews}
    user_result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: u for u in user_result.scalars()}

    booking_result = await db.execute(
        select(Booking).where(Booking.id.in_({r.booking_id for r in reviews}))
    )
    bookings = {b.id: b for b in booking_result.scalars()}
    return [_serialize(r, users, bookings) for r in reviews]


async def _refresh_host_ratings(db: AsyncSession, redis, host_user_id: UUID) -> None:
    """Re-aggregate the host's ratings and drop its cached profile."""
    await recompute_host_ratings(db, host_user_id)
    host_id = await db.scalar(select(Host.id).where(Host.user_id == host_user_id))
    if host_id is not None:
        await RedisCache(redis).invalidate_host(host_id)


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


# ── Queries ───────────────────────────────────────────────────

@router.get("/host/{host_id}", response_model=HostReviewsResponse)
async def get_host_reviews(
    host_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Public: guest-to-host reviews of a host profile, newest first, with stats."""
    host_user_id = await db.scalar(select(Host.user_id).where(Host.id == host_id))
    if host_user_id is None:
        raise HTTPException(status_code=404, detail="Host not found")

    filters = [Review.reviewee_id == host_user_id, Review.type == ReviewType.GUEST_TO_HOST]
    result = await db.execute(
        select(Review)
        .where(*filters)
        .order_by(Review.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    reviews = list(result.scalars())

    stats_result = await db.execute(
        select(
            Review.rating_overall,
            Review.rating_cleanliness,
            Review.rating_communication,
            Review.rating_cultural,
            Review.rating_cooking,
            Review.rating_hospitality,
        ).where(*filters)
    )
    breakdown = [
        RatingBreakdown(
            rating=row[0],
            cleanliness=row[1],
            communication=row[2],
            cultural=row[3],
            cooking=row[4],
            hospitality=row[5],
        )
        for row in stats_result.all()
    ]
    total = len(breakdown)
    stats = HostReviewStats()
    if total:
        stats = HostReviewStats(
            average_rating=round_half_up(sum(b.rating for b in breakdown) / total, 2),
            total_reviews=total,
            rating_breakdown=breakdown,
        )

    return HostReviewsResponse(
        reviews=await _serialize_many(reviews, db),
        stats=stats,
        pagination=_pagination(page, limit, total),
    )


@router.get("/user/{user_id}", response_model=UserReviewsResponse)
async def get_user_reviews(
    user_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    """Public: reviews written by a user, newest first."""
    total = await db.scalar(select(func.count(Review.id)).where(Review.reviewer_id == user_id)) or 0
    result = await db.execute(
        select(Review)
        .where(Review.reviewer_id == user_id)
        .order_by(Review.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return UserReviewsResponse(
        reviews=await _serialize_many(list(result.scalars()), db),
        pagination=_pagination(page, limit, total),
    )


# ── Write ─────────────────────────────────────────────────────

@router.post("", response_model=ReviewEnvelope, status_code=status.HTTP_201_CREATED)
async def create_review(
    data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Submit a review for a completed booking.
    - guest-to-host: caller must be the booking's guest
    - host-to-guest: caller must own the booking's host profile
    - One review per (booking, reviewer, type)
    """
    result = await db.execute(select(Booking).where(Booking.id == data.booking))
    booking = result.scalar_one_or_none()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.status != BookingStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Can only review completed bookings")

    review_type = ReviewType(data.type)
    host = await db.scalar(select(Host).where(Host.id == booking.host_id))
    if review_type == ReviewType.GUEST_TO_HOST:
        authorized = booking.guest_id == current_user.id
        reviewee_id = host.user_id
    else:
        authorized = host.user_id == current_user.id
        reviewee_id = booking.guest_id
    if not authorized:
        raise HTTPException(status_code=403, detail="Not authorized to review this booking")

    existing = await db.scalar(
        select(Review.id).where(
            Review.booking_id == booking.id,
            Review.reviewer_id == current_user.id,
            Review.type == review_type,
        )
    )
    if existing:
        raise HTTPException(status_code=400, detail="Review already exists for this booking")

    review = Review(
        booking_id=booking.id,
        reviewer_id=current_user.id,
        reviewee_id=reviewee_id,
        type=review_type,
        **{f"rating_{name}": getattr(data.ratings, name) for name in RATING_FIELDS},
        comment=data.comment,
        highlights=[Highlight(h).value for h in data.highlights],
        photos=data.photos,
        helpful_count=0,
        flagged=False,
        verified=True,
        language=data.language,
    )
    db.add(review)
    await db.flush()

    if review_type == ReviewType.GUEST_TO_HOST:
        booking.guest_review_id = review.id
    else:
        booking.host_review_id = review.id

    if review_type == ReviewType.GUEST_TO_HOST:
        await _refresh_host_ratings(db, redis, reviewee_id)
    await db.commit()

    logger.info(f"Review {review.id} ({review_type.value}) created on booking {booking.id}")
    users = {current_user.id: current_user}
    reviewee = await db.scalar(select(User).where(User.id == reviewee_id))
    if reviewee:
        users[reviewee.id] = reviewee
    return ReviewEnvelope(
        message="Review created successfully",
        review=_serialize(review, users, {booking.id: booking}),
    )


@router.put("/{review_id}", response_model=ReviewEnvelope)
async def update_review(
    review_id: UUID,
    data: ReviewUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Reviewer may edit ratings, comment and highlights within the edit window."""
    review = await _get_review_or_404(review_id, db)
    if review.reviewer_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    if not is_editable(review):
        raise HTTPException(status_code=400, detail="Review can no longer be edited")

    if data.ratings is not None:
        for name in data.ratings.model_fields_set:
            value = getattr(data.ratings, name)
            if name == "overall" and value is None:
                continue
            setattr(review, f"rating_{name}", value)
    if data.comment is not None:
        review.comment = data.comment
    if data.highlights is not None:
        review.highlights = [Highlight(h).value for h in data.highlights]
    await db.flush()

    if review.type == ReviewType.GUEST_TO_HOST:
        await _refresh_host_ratings(db, redis, review.reviewee_id)
    await db.commit()

    return ReviewEnvelope(
        message="Review updated successfully",
        review=(await _serialize_many([review], db))[0],
    )


@router.post("/{review_id}/response", response_model=ReviewReplyEnvelope)
async def respond_to_review(
    review_id: UUID,
    data: ReviewReplyCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The reviewee may reply once."""
    review = await _get_review_or_404(review_id, db, lock=True)
    if review.reviewee_id != current_user.id:
        raise HTTPException(status_code=403, detail="Not authorized")
    if review.response_comment:
        raise HTTPException(status_code=400, detail="Response already exists")

    review.response_comment = data.comment
    review.response_date = utcnow()
    review.response_author_id = current_user.id
    await db.commit()

    return ReviewReplyEnvelope(
        message="Response added successfully",
        response=ReviewReply(
            comment=review.response_comment,
            date=review.response_date,
            author=review.response_author_id,
        ),
    )


@router.post("/{review_id}/helpful", response_model=HelpfulEnvelope)
async def toggle_helpful(
    review_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Toggle the caller's helpful mark. The count mirrors the mark set."""
    review = await _get_review_or_404(review_id, db, lock=True)

    mark = await db.scalar(
        select(ReviewHelpfulMark).where(
            ReviewHelpfulMark.review_id == review.id,
            ReviewHelpfulMark.user_id == current_user.id,
        )
    )
    if mark:
        await db.delete(mark)
        review.helpful_count = max(0, review.helpful_count - 1)
        message = "Helpful mark removed"
    else:
        db.add(ReviewHelpfulMark(review_id=review.id, user_id=current_user.id))
        review.helpful_count += 1
        message = "Review marked as helpful"
    await db.flush()

    result = await db.execute(
        select(ReviewHelpfulMark.user_id)
        .where(ReviewHelpfulMark.review_id == review.id)
        .order_by(ReviewHelpfulMark.created_at)
    )
    users = list(result.scalars())
    await db.commit()

    return HelpfulEnvelope(message=message, helpful=HelpfulState(count=review.helpful_count, users=users))


@router.put("/{review_id}/flag", response_model=MessageResponse)
async def flag_review(
    review_id: UUID,
    data: ReviewFlagRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Flag a review for admin moderation."""
    review = await _get_review_or_404(review_id, db)
    review.flagged = True
    review.flag_reason = FlagReason(data.reason)
    await db.commit()

    logger.info(f"Review {review.id} flagged by {current_user.id}: {review.flag_reason.value}")
    return MessageResponse(message="Review has been flagged for moderation")
