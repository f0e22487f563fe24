"""
services/auth/router.py
Session endpoints for bearer tokens issued by the identity provider:
current user lookup and logout (JWT deny-list).
"""

import logging

from fastapi import APIRouter, Depends

from config.redis_client import RedisCache, get_redis
from shared.middleware.auth import TokenData, get_current_user, get_token_data
from shared.models.models import User
from shared.schemas.schemas import MessageResponse, UserResponse
from shared.utils.security import get_token_remaining_ttl

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/logout", response_model=MessageResponse, summary="Logout user")
async def logout(
    current_user: User = Depends(get_current_user),
    token_data: TokenData = Depends(get_token_data),
    redis=Depends(get_redis),
):
    """Add the current access token's JTI to the Redis deny-list until it expires."""
    if token_data.jti:
        ttl = get_token_remaining_ttl(token_data.payload)
        if ttl > 0:
            await RedisCache(redis).revoke_token(token_data.jti, ttl)

    logger.info(f"User {current_user.id} logged out")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse, summary="Get current user")
async def get_me(current_user: User = Depends(get_current_user)):
    """Returns the authenticated user's profile."""
    return UserResponse.model_validate(current_user)
