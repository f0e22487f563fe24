"""
services/host/router.py
Host family profiles: discovery, profile CRUD, photos, experiences,
availability and price quotes.
"""

import logging
import math
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from config.settings import settings
from services.booking.pricing import QuoteError, quote
from shared.middleware.auth import get_current_user
from shared.models.models import (
    AccommodationType,
    ExperienceType,
    Host,
    HostExperience,
    HostStatus,
    IncomeRange,
    ResponseTime,
    User,
    UserRole,
)
from shared.schemas.schemas import (
    AccommodationSchema,
    AddressSchema,
    AvailabilityEnvelope,
    AvailabilitySchema,
    AvailabilityUpdate,
    Coordinates,
    CulturalBackground,
    ExperienceCreate,
    ExperienceResponse,
    ExperiencesEnvelope,
    HostCreate,
    HostEnvelope,
    HostingExperience,
    HostListResponse,
    HostPricing,
    HostRatings,
    HostResponse,
    HostUpdate,
    IncomeVerificationResponse,
    Pagination,
    PhotosEnvelope,
    QuoteNight,
    QuoteResponse,
    UserProfile,
    VerificationSchema,
)
from shared.utils.uploads import UploadError, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/hosts", tags=["Hosts"])


# ── Helpers ───────────────────────────────────────────────────

async def get_host_or_404(host_id: UUID, db: AsyncSession, lock: bool = False) -> Host:
    query = select(Host).where(Host.id == host_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    host = result.scalar_one_or_none()
    if not host:
        raise HTTPException(status_code=404, detail="Host not found")
    return host


def _assert_owner(host: Host, user: User) -> None:
    if host.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized")


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def serialize_host(host: Host, user: Optional[User]) -> HostResponse:
    coordinates = None
    if host.latitude is not None and host.longitude is not None:
        coordinates = Coordinates(latitude=host.latitude, longitude=host.longitude)

    return HostResponse(
        id=host.id,
        user=UserProfile.model_validate(user) if user else None,
        family_size=host.family_size,
        address=AddressSchema(
            street=host.street,
            city=host.city,
            state=host.state,
            country=host.country,
            postal_code=host.postal_code,
            coordinates=coordinates,
        ),
        income_verification=IncomeVerificationResponse(
            verified=host.income_verified,
            documents=host.income_documents or [],
            verification_date=host.income_verification_date,
            income_range=host.income_range,
        ),
        accommodation=AccommodationSchema(
            type=host.accommodation_type,
            bedrooms=host.bedrooms,
            bathrooms=host.bathrooms,
            amenities=host.amenities or [],
            photos=host.photos or [],
        ),
        experiences=[ExperienceResponse.model_validate(e) for e in host.experiences],
        culinary_specialties=host.culinary_specialties or [],
        cultural_background=CulturalBackground.model_validate(host.cultural_background or {}),
        hosting_experience=HostingExperience.model_validate(host.hosting_experience or {}),
        pricing=HostPricing(
            base_price=float(host.base_price),
            weekly_discount=host.weekly_discount,
            monthly_discount=host.monthly_discount,
            seasonal_rates=host.seasonal_rates or [],
        ),
        availability=_availability_of(host),
        verification=VerificationSchema(
            identity=host.verified_identity,
            income=host.verified_income,
            background=host.verified_background,
            phone=host.verified_phone,
            email=host.verified_email,
            verification_date=host.verification_date,
        ),
        ratings=HostRatings(
            overall=host.rating_overall,
            cleanliness=host.rating_cleanliness,
            communication=host.rating_communication,
            cultural=host.rating_cultural,
            cooking=host.rating_cooking,
            total_reviews=host.total_reviews,
        ),
        status=host.status,
        superhost=host.superhost,
        response_rate=host.response_rate,
        response_time=host.response_time,
        is_verified=host.is_verified,
        full_address=host.full_address,
        created_at=host.created_at,
        updated_at=host.updated_at,
    )


def _availability_of(host: Host) -> AvailabilitySchema:
    return AvailabilitySchema(
        calendar=host.availability_calendar or [],
        minimum_stay=host.minimum_stay,
        maximum_stay=host.maximum_stay,
        booking_window=host.booking_window,
    )


async def _serialize_with_user(host: Host, db: AsyncSession) -> HostResponse:
    user = await db.scalar(select(User).where(User.id == host.user_id))
    return serialize_host(host, user)


def _apply_profile(host: Host, data: HostCreate | HostUpdate) -> None:
    """Flatten the nested request blocks onto the host columns."""
    fields = data.model_fields_set

    if "family_size" in fields and data.family_size is not None:
        host.family_size = data.family_size
    if "address" in fields and data.address is not None:
        address = data.address
        host.street = address.street
        host.city = address.city
        host.state = address.state
        host.country = address.country
        host.postal_code = address.postal_code
        host.latitude = address.coordinates.latitude if address.coordinates else None
        host.longitude = address.coordinates.longitude if address.coordinates else None
    if "income_verification" in fields and data.income_verification is not None:
        host.income_documents = list(data.income_verification.documents)
        host.income_range = IncomeRange(data.income_verification.income_range)
    if "accommodation" in fields and data.accommodation is not None:
        accommodation = data.accommodation
        host.accommodation_type = AccommodationType(accommodation.type)
        host.bedrooms = accommodation.bedrooms
        host.bathrooms = accommodation.bathrooms
        host.amenities = list(accommodation.amenities)
        host.photos = list(accommodation.photos)
    if "culinary_specialties" in fields and data.culinary_specialties is not None:
        host.culinary_specialties = list(data.culinary_specialties)
    if "cultural_background" in fields and data.cultural_background is not None:
        host.cultural_background = data.cultural_background.model_dump(mode="json")
    if "hosting_experience" in fields and data.hosting_experience is not None:
        host.hosting_experience = data.hosting_experience.model_dump(mode="json")
    if "pricing" in fields and data.pricing is not None:
        pricing = data.pricing
        host.base_price = Decimal(str(pricing.base_price))
        host.weekly_discount = pricing.weekly_discount
        host.monthly_discount = pricing.monthly_discount
        host.seasonal_rates = [rate.model_dump(mode="json") for rate in pricing.seasonal_rates]
    if isinstance(data, HostUpdate) and data.response_time is not None:
        host.response_time = ResponseTime(data.response_time)


def _new_experience(data: ExperienceCreate) -> HostExperience:
    return HostExperience(
        type=ExperienceType(data.type),
        title=data.title,
        description=data.description,
        duration=data.duration,
        price=Decimal(str(data.price)),
        max_guests=data.max_guests,
        includes=list(data.includes),
    )


def _apply_availability(host: Host, data: AvailabilitySchema | AvailabilityUpdate) -> None:
    if data.calendar is not None:
        host.availability_calendar = [entry.model_dump(mode="json") for entry in data.calendar]
    if data.minimum_stay is not None:
        host.minimum_stay = data.minimum_stay
    if data.maximum_stay is not None:
        host.maximum_stay = data.maximum_stay
    if data.booking_window is not None:
        host.booking_window = data.booking_window
    if host.minimum_stay > host.maximum_stay:
        raise HTTPException(status_code=400, detail="Minimum stay cannot exceed maximum stay")


# ── Public Endpoints ──────────────────────────────────────────

@router.get("", response_model=HostListResponse)
async def list_hosts(
    location: Optional[str] = Query(None, max_length=100),
    price_min: Optional[float] = Query(None, alias="priceMin", ge=0),
    price_max: Optional[float] = Query(None, alias="priceMax", ge=0),
    experience: Optional[ExperienceType] = Query(None),
    rating: Optional[float] = Query(None, ge=0, le=5),
    verified: Optional[bool] = Query(None),
    superhost: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Approved hosts matching the filters, best rated first, then newest."""
    filters = [Host.status == HostStatus.APPROVED]

    if location:
        pattern = _like(location)
        filters.append(or_(
            Host.city.ilike(pattern, escape="\\"),
            Host.country.ilike(pattern, escape="\\"),
            Host.state.ilike(pattern, escape="\\"),
        ))
    if price_min is not None:
        filters.append(Host.base_price >= price_min)
    if price_max is not None:
        filters.append(Host.base_price <= price_max)
    if experience:
        filters.append(Host.id.in_(
            select(HostExperience.host_id).where(HostExperience.type == ExperienceType(experience))
        ))
    if rating is not None:
        filters.append(Host.rating_overall >= rating)
    if verified:
        filters.extend([
            Host.verified_identity == True,  # noqa: E712
            Host.verified_income == True,  # noqa: E712
            Host.verified_background == True,  # noqa: E712
        ])
    if superhost:
        filters.append(Host.superhost == True)  # noqa: E712

    total = await db.scalar(select(func.count(Host.id)).where(*filters)) or 0

    result = await db.execute(
        select(Host)
        .where(*filters)
        .order_by(Host.rating_overall.desc(), Host.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    hosts = result.scalars().all()

    users = {}
    if hosts:
        user_result = await db.execute(select(User).where(User.id.in_([h.user_id for h in hosts])))
        users = {u.id: u for u in user_result.scalars()}

    return HostListResponse(
        hosts=[serialize_host(h, users.get(h.user_id)) for h in hosts],
        pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


@router.get("/{host_id}", response_model=HostResponse)
async def get_host(
    host_id: UUID,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Get a host's public profile. Cached for 5 minutes."""
    cache = RedisCache(redis)
    cache_key = cache.host_key(host_id)

    cached = await cache.get(cache_key)
    if cached:
        return HostResponse.model_validate(cached)

    host = await get_host_or_404(host_id, db)
    profile = await _serialize_with_user(host, db)
    await cache.set(cache_key, profile.model_dump(mode="json"))
    return profile


@router.get("/{host_id}/quote", response_model=QuoteResponse)
async def get_quote(
    host_id: UUID,
    experience: ExperienceType = Query(...),
    check_in: datetime = Query(..., alias="checkIn"),
    check_out: datetime = Query(..., alias="checkOut"),
    db: AsyncSession = Depends(get_db),
):
    """Price breakdown for a prospective stay."""
    host = await get_host_or_404(host_id, db)
    if host.status != HostStatus.APPROVED:
        raise HTTPException(status_code=400, detail="Host is not available for booking")

    try:
        result = quote(host, ExperienceType(experience), check_in, check_out)
    except QuoteError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return QuoteResponse(
        host_id=host.id,
        experience=experience,
        check_in=check_in,
        check_out=check_out,
        nights=result.nights,
        nightly=[QuoteNight(date=day, price=float(price)) for day, price in result.nightly],
        base_price=float(result.base_price),
        discount=float(result.discount),
        discount_type=result.discount_type,
        service_fee=float(result.service_fee),
        taxes=float(result.taxes),
        total=float(result.total),
    )


# ── Owner Endpoints ───────────────────────────────────────────

@router.post("", response_model=HostEnvelope, status_code=status.HTTP_201_CREATED)
async def create_host(
    data: HostCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create the caller's host profile (one per user). Starts in pending review."""
    existing = await db.scalar(select(Host.id).where(Host.user_id == current_user.id))
    if existing:
        raise HTTPException(status_code=400, detail="Host profile already exists")

    host = Host(
        user_id=current_user.id,
        status=HostStatus.PENDING,
        experiences=[_new_experience(e) for e in data.experiences],
    )
    _apply_profile(host, data)
    _apply_availability(host, data.availability or AvailabilitySchema())
    db.add(host)

    if current_user.role != UserRole.ADMIN:
        current_user.role = UserRole.HOST

    await db.flush()
    await db.commit()

    logger.info(f"Host profile {host.id} created for user {current_user.id}")
    return HostEnvelope(
        message="Host profile created successfully",
        host=serialize_host(host, current_user),
    )


@router.put("/{host_id}", response_model=HostResponse)
async def update_host(
    host_id: UUID,
    data: HostUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    host = await get_host_or_404(host_id, db)
    _assert_owner(host, current_user)

    _apply_profile(host, data)
    await db.flush()
    await db.commit()

    await RedisCache(redis).invalidate_host(host.id)
    return serialize_host(host, current_user)


@router.post("/{host_id}/photos", response_model=PhotosEnvelope)
async def upload_photos(
    host_id: UUID,
    photos: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Store up to MAX_PHOTOS_PER_UPLOAD images and append them to the accommodation photos."""
    host = await get_host_or_404(host_id, db)
    _assert_owner(host, current_user)

    if not photos:
        raise HTTPException(status_code=400, detail="No files uploaded")
    if len(photos) > settings.MAX_PHOTOS_PER_UPLOAD:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.MAX_PHOTOS_PER_UPLOAD} photos per upload",
        )

    directory = f"{settings.UPLOAD_DIR}/hosts/{host.id}"
    try:
        paths = [await save_image(photo, directory, prefix="photo") for photo in photos]
    except UploadError as e:
        raise HTTPException(status_code=400, detail=str(e))

    host.photos = [*(host.photos or []), *paths]
    await db.commit()

    await RedisCache(redis).invalidate_host(host.id)
    return PhotosEnvelope(message="Photos uploaded successfully", photos=host.photos)


@router.post("/{host_id}/experiences", response_model=ExperiencesEnvelope)
async def add_experience(
    host_id: UUID,
    data: ExperienceCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    host = await get_host_or_404(host_id, db)
    _assert_owner(host, current_user)

    host.experiences.append(_new_experience(data))
    await db.flush()
    await db.commit()

    await RedisCache(redis).invalidate_host(host.id)
    return ExperiencesEnvelope(
        message="Experience added successfully",
        experiences=[ExperienceResponse.model_validate(e) for e in host.experiences],
    )


@router.put("/{host_id}/availability", response_model=AvailabilityEnvelope)
async def update_availability(
    host_id: UUID,
    data: AvailabilityUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Merge the given availability keys into the host's availability."""
    host = await get_host_or_404(host_id, db)
    _assert_owner(host, current_user)

    _apply_availability(host, data)
    await db.commit()

    await RedisCache(redis).invalidate_host(host.id)
    return AvailabilityEnvelope(
        message="Availability updated successfully",
        availability=_availability_of(host),
    )
