"""Redis client for bearer sessions and rate limiting"""
import redis
import logging
from typing import Optional
from mailrelay.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def close_redis_client() -> None:
    """Close the Redis connection pool (called on shutdown)"""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def set_session(token: str, user_id: str) -> None:
    """Store session in Redis"""
    key = f"session:{token}"
    get_redis_client().setex(key, settings.SESSION_TTL, user_id)


def get_session(token: str) -> Optional[str]:
    """Get user_id from session"""
    key = f"session:{token}"
    return get_redis_client().get(key)


def delete_session(token: str) -> None:
    """Delete session from Redis"""
    key = f"session:{token}"
    get_redis_client().delete(key)


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment a fixed-window counter and return the current count.

    The TTL is only set when the key is created so the window does not slide.
    """
    key = f"ratelimit:{identifier}"
    client = get_redis_client()
    count = client.incr(key)
    if count == 1:
        client.expire(key, window)
    return int(count)


def check_rate_limit(identifier: str) -> bool:
    """Check if request is within rate limit. Returns True if allowed, False if rate limited."""
    current_count = increment_rate_limit(identifier, settings.RATE_LIMIT_WINDOW)
    return current_count <= settings.RATE_LIMIT_REQUESTS


def get_rate_limit_count(identifier: str) -> int:
    """Get current rate limit count"""
    key = f"ratelimit:{identifier}"
    count = get_redis_client().get(key)
    return int(count) if count else 0
