"""Per-tier rate limiting via Redis with graceful fallback.

The request frequency budget depends on the caller's subscription tier.
When Redis is not available, the frequency check is a no-op; the usage
quota recorded on the profile is still enforced.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

import redis
from fastapi import Depends

from scriptor.config.settings import get_settings
from scriptor.db.supabase_backend import within_quota
from scriptor.gateway.auth.middleware import AuthContext, get_current_user
from scriptor.gateway.errors import QuotaExceededError
from scriptor.gateway.metrics import rate_limit_rejections_total
from scriptor.gateway.redis_connection import get_redis_client

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = 60  # seconds


def check_rate_limit(key: str, limit: int) -> bool:
    """Check and increment a rate limit counter.

    Uses a fixed window counter with Redis INCR + EXPIRE.

    Args:
        key: The rate limit key (e.g., "ratelimit:tier:free:user123").
        limit: Maximum requests allowed per window.

    Returns:
        True if the request is allowed, False if rate-limited.
        When Redis is unavailable, always returns True (fail open).
    """
    client = get_redis_client()
    if client is None:
        return True

    window_key = f"{key}:{int(time.time()) // RATE_LIMIT_WINDOW}"
    try:
        pipe = client.pipeline()
        pipe.incr(window_key)
        pipe.expire(window_key, RATE_LIMIT_WINDOW * 2)
        results = pipe.execute()
        count = results[0]
        return count <= limit
    except redis.RedisError as e:
        logger.warning(f"Rate limiter error: {e}")
        return True


def resolve_tier(profile: dict | None) -> str:
    """Subscription tier of a profile, or the default tier when unknown."""
    settings = get_settings()
    tier = (profile or {}).get("subscription_tier")
    if tier in settings.tier_rate_limits:
        return tier
    return settings.default_tier


def check_tier_rate(auth: AuthContext) -> None:
    """Apply the tier's frequency limit and the profile's usage quota. Raises 429."""
    tier = resolve_tier(auth.profile)
    limit = get_settings().rate_limit_for(tier)

    if not check_rate_limit(f"ratelimit:tier:{tier}:{auth.user_id}", limit):
        rate_limit_rejections_total.labels(tier=tier, reason="frequency").inc()
        raise QuotaExceededError(
            f"Too many requests for the {tier} tier ({limit} per minute). Please try again later.",
            headers={"Retry-After": str(RATE_LIMIT_WINDOW)},
        )

    if auth.profile is not None and not within_quota(auth.profile):
        rate_limit_rejections_total.labels(tier=tier, reason="quota").inc()
        raise QuotaExceededError(
            f"API usage limit of {auth.profile.get('api_usage_limit')} reached. Please upgrade your plan.",
            error="Quota exceeded",
        )


async def rate_limit_by_tier(
    auth: Annotated[AuthContext, Depends(get_current_user)],
) -> AuthContext:
    """FastAPI dependency: authenticate, then enforce the tier limits."""
    check_tier_rate(auth)
    return auth


RateLimitedUser = Annotated[AuthContext, Depends(rate_limit_by_tier)]
