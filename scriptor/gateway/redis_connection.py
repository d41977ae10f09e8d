"""Shared Redis client for the rate-limit counters.

Redis is optional. Without REDIS_URL, or when the server does not answer
the first ping, every accessor here reports "no client" and the rate
limiter lets requests through.
"""

import logging

import redis

from scriptor.config.settings import get_settings

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 2

_redis_client: redis.Redis | None = None
_redis_checked = False


def _connect(url: str) -> redis.Redis | None:
    client = redis.from_url(url, socket_connect_timeout=CONNECT_TIMEOUT_SECONDS)
    try:
        client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis at REDIS_URL did not answer ({e}); tier rate limits are off")
        return None
    logger.info("Redis reachable; tier rate limits are on")
    return client


def is_redis_available() -> bool:
    """Whether a Redis client could be established.

    Only the first call pings the server; later calls reuse the outcome
    until ``reset_redis_connection()``.
    """
    global _redis_checked, _redis_client

    if not _redis_checked:
        _redis_checked = True
        url = get_settings().redis_url
        if url:
            _redis_client = _connect(url)
        else:
            logger.info("REDIS_URL not set; tier rate limits are off")

    return _redis_client is not None


def get_redis_client() -> redis.Redis | None:
    is_redis_available()
    return _redis_client


def check_redis_health() -> str:
    """Status string for ``/health``: "healthy", "not configured" or "unhealthy: ..."."""
    client = get_redis_client()
    if client is None:
        return "not configured"
    try:
        client.ping()
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return f"unhealthy: {e}"
    return "healthy"


def reset_redis_connection() -> None:
    """Forget the cached client so the next call pings again. Used by tests."""
    global _redis_client, _redis_checked
    _redis_client = None
    _redis_checked = False
