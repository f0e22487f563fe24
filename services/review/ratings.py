"""
services/review/ratings.py
Host rating aggregation from guest-to-host reviews.
"""

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from shared.models.models import Host, Review, ReviewType
from shared.utils.dates import ensure_utc, utcnow

CATEGORIES = ("overall", "cleanliness", "communication", "cultural", "cooking")

# Category weights for a single review's weighted score
WEIGHTS = {
    "cleanliness": 0.2,
    "communication": 0.15,
    "cultural": 0.25,
    "cooking": 0.25,
    "hospitality": 0.15,
}


@dataclass(frozen=True)
class RatingSummary:
    overall: float
    cleanliness: float
    communication: float
    cultural: float
    cooking: float
    total_reviews: int


def round_half_up(value: float, places: int = 1) -> float:
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def aggregate(reviews: Iterable[Review]) -> Optional[RatingSummary]:
    """
    Per-category mean over all reviews. A missing category counts as 0 and
    the divisor is always the review count. None when there are no reviews.
    """
    totals = dict.fromkeys(CATEGORIES, 0)
    count = 0
    for review in reviews:
        count += 1
        for category in CATEGORIES:
            totals[category] += getattr(review, f"rating_{category}") or 0

    if count == 0:
        return None
    return RatingSummary(
        **{category: round_half_up(totals[category] / count) for category in CATEGORIES},
        total_reviews=count,
    )


async def recompute_host_ratings(db: AsyncSession, host_user_id: uuid.UUID) -> Optional[RatingSummary]:
    """
    Recompute and store the aggregate for the host owned by `host_user_id`.
    Locks the host row first so concurrent review writes serialize.
    """
    host = (
        await db.execute(
            select(Host).where(Host.user_id == host_user_id).with_for_update()
        )
    ).scalar_one_or_none()
    if host is None:
        return None

    await db.flush()
    result = await db.execute(
        select(Review).where(
            Review.reviewee_id == host_user_id,
            Review.type == ReviewType.GUEST_TO_HOST,
        )
    )
    summary = aggregate(result.scalars().all())
    if summary is None:
        return None

    host.rating_overall = summary.overall
    host.rating_cleanliness = summary.cleanliness
    host.rating_communication = summary.communication
    host.rating_cultural = summary.cultural
    host.rating_cooking = summary.cooking
    host.total_reviews = summary.total_reviews
    await db.flush()
    return summary


# ── Per-review helpers ────────────────────────────────────────

def weighted_rating(review: Review) -> float:
    """Weighted category score for guest-to-host reviews, else the overall score."""
    if review.type != ReviewType.GUEST_TO_HOST:
        return float(review.rating_overall)

    weighted_sum = 0.0
    total_weight = 0.0
    for category, weight in WEIGHTS.items():
        score = getattr(review, f"rating_{category}")
        if score:
            weighted_sum += score * weight
            total_weight += weight
    if total_weight == 0:
        return float(review.rating_overall)
    return round_half_up(weighted_sum / total_weight, 2)


def edit_deadline(created_at: datetime) -> datetime:
    return ensure_utc(created_at) + timedelta(days=settings.REVIEW_EDIT_WINDOW_DAYS)


def is_editable(review: Review, now: Optional[datetime] = None) -> bool:
    now = ensure_utc(now) if now else utcnow()
    return now <= edit_deadline(review.created_at)
