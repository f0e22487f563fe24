"""
services/admin/router.py
Admin-only host moderation: listing status, superhost flag and
verification flags. Every mutation drops the cached host profile.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from config.redis_client import RedisCache, get_redis
from services.host.router import get_host_or_404, serialize_host
from shared.middleware.auth import require_admin
from shared.models.models import HostStatus, User
from shared.schemas.schemas import AdminHostStatusRequest, AdminVerificationRequest, HostResponse
from shared.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

VERIFICATION_FLAGS = {
    "identity": "verified_identity",
    "income": "verified_income",
    "background": "verified_background",
    "phone": "verified_phone",
    "email": "verified_email",
}


@router.put("/hosts/{host_id}/status", response_model=HostResponse)
async def set_host_status(
    host_id: UUID,
    data: AdminHostStatusRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """
    Approve, reject or suspend a host profile.
    Only approved hosts appear in search and accept bookings.
    """
    host = await get_host_or_404(host_id, db)
    previous = HostStatus(host.status)
    host.status = HostStatus(data.status)
    if data.superhost is not None:
        host.superhost = data.superhost
    await db.flush()
    await db.commit()
    await RedisCache(redis).invalidate_host(host.id)

    logger.info(
        f"Admin {current_user.id} moved host {host.id} "
        f"from {previous.value} to {host.status.value}"
    )
    owner = await db.scalar(select(User).where(User.id == host.user_id))
    return serialize_host(host, owner)


@router.put("/hosts/{host_id}/verification", response_model=HostResponse)
async def set_host_verification(
    host_id: UUID,
    data: AdminVerificationRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis),
):
    """Set any of the five verification flags. Omitted flags are left alone."""
    host = await get_host_or_404(host_id, db)

    for field, column in VERIFICATION_FLAGS.items():
        value = getattr(data, field)
        if value is not None:
            setattr(host, column, value)
    if data.income:
        host.income_verified = True
        host.income_verification_date = utcnow()
    host.verification_date = utcnow()
    await db.flush()
    await db.commit()
    await RedisCache(redis).invalidate_host(host.id)

    logger.info(f"Admin {current_user.id} updated verification on host {host.id}")
    owner = await db.scalar(select(User).where(User.id == host.user_id))
    return serialize_host(host, owner)
