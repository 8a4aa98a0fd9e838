"""Redis client and per-client request limiting for the JobSafe API."""

from typing import NamedTuple, Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()

DEFAULT_RATE_LIMIT = 100  # requests per window
DEFAULT_RATE_WINDOW = 60  # seconds


class RateLimitDecision(NamedTuple):
    allowed: bool
    remaining: int
    reset_seconds: int


def create_redis(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """Build a Redis client, or None when no URL is configured."""
    if not redis_url:
        return None
    return redis.from_url(redis_url, encoding="utf-8", decode_responses=True)


async def close_redis(client: Optional[redis.Redis]) -> None:
    if client is not None:
        await client.aclose()


async def cache_ping(client: Optional[redis.Redis]) -> tuple[bool, str]:
    """Check if Redis is reachable. Returns (success, message)."""
    if client is None:
        return False, "not configured"
    try:
        await client.ping()
    except RedisError as e:
        return False, str(e)
    return True, "connected"


async def check_rate_limit(
    client: Optional[redis.Redis],
    identifier: str,
    limit: int = DEFAULT_RATE_LIMIT,
    window: int = DEFAULT_RATE_WINDOW,
    scope: str = "api",
) -> RateLimitDecision:
    """
    Count one request for identifier in the current fixed window.

    The window starts with the first request (SET NX with expiry) so the
    counter can never be left without a TTL. Fails open when Redis is not
    configured or unreachable.
    """
    if client is None:
        return RateLimitDecision(True, limit, window)

    key = f"ratelimit:{scope}:{identifier}"
    try:
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(key, 0, ex=window, nx=True)
            pipe.incr(key)
            pipe.ttl(key)
            _, count, ttl = await pipe.execute()
    except RedisError as e:
        logger.warning("rate_limit.redis_unavailable", error=str(e))
        return RateLimitDecision(True, limit, window)

    reset = ttl if ttl and ttl > 0 else window
    return RateLimitDecision(count <= limit, max(0, limit - count), reset)
