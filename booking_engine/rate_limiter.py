"""
Hybrid in-memory + Redis rate limiting for the booking write path.

Counters live in memory and are synced to Redis periodically so several
workers converge on a shared count. Without Redis the limiter is memory-only.
"""

import logging
import time
from threading import Lock
from typing import Optional

import redis
from fastapi import HTTPException, Request, status

from . import config

logger = logging.getLogger(__name__)

MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds


class RateLimiter:
    """Fixed-window counter per key. Owned by the app, never a module global."""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client
        # Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
        self.memory_cache: dict[str, dict] = {}
        self.cache_lock = Lock()
        self.last_cleanup_time = 0

    def cleanup_expired(self, current_time: int) -> None:
        """Remove expired entries from memory cache"""
        if current_time - self.last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
            return

        expired_keys = [
            k for k, v in self.memory_cache.items() if current_time >= v.get("reset_time", 0)
        ]
        for k in expired_keys:
            del self.memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")
        self.last_cleanup_time = current_time

    def _load_entry(self, key: str, window_seconds: int, current_time: int) -> dict:
        fresh = {
            "count": 0,
            "reset_time": current_time + window_seconds,
            "last_redis_sync": current_time,
        }
        if not self.redis_client:
            return fresh

        try:
            redis_count = self.redis_client.get(key)
            redis_ttl = self.redis_client.ttl(key)
        except redis.RedisError as e:
            logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")
            return fresh

        if redis_count and redis_ttl and redis_ttl > 0:
            return {
                "count": int(redis_count),
                "reset_time": current_time + redis_ttl,
                "last_redis_sync": current_time,
            }
        return fresh

    def _sync(self, key: str, entry: dict, window_seconds: int, current_time: int) -> None:
        if not self.redis_client:
            return
        if current_time - entry.get("last_redis_sync", 0) < MEMORY_CACHE_SYNC_INTERVAL:
            return
        try:
            self.redis_client.set(key, entry["count"], ex=window_seconds)
            entry["last_redis_sync"] = current_time
            logger.debug(f"📡 Synced {key} to Redis: {entry['count']}")
        except redis.RedisError as e:
            logger.warning(f"⚠️ Failed to sync to Redis: {e}")

    def check(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int, int]:
        """
        Count one request against ``key``.

        Returns:
            Tuple of (is_allowed, current_count, ttl_seconds)
        """
        current_time = int(time.time())

        with self.cache_lock:
            self.cleanup_expired(current_time)

            if key not in self.memory_cache:
                self.memory_cache[key] = self._load_entry(key, window_seconds, current_time)
            entry = self.memory_cache[key]

            if current_time >= entry["reset_time"]:
                entry["count"] = 0
                entry["reset_time"] = current_time + window_seconds
                entry["last_redis_sync"] = 0

            is_allowed = entry["count"] < limit
            if is_allowed:
                entry["count"] += 1

            self._sync(key, entry, window_seconds, current_time)

            ttl = entry["reset_time"] - current_time
            return is_allowed, entry["count"], max(0, ttl)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def create_rate_limiter(
    limit: int = config.BOOKING_RATE_LIMIT,
    window_seconds: int = config.BOOKING_RATE_LIMIT_WINDOW_SECONDS,
    key_prefix: str = "rate_limit",
):
    """
    Create a rate limiter dependency with specific parameters.
    The limiter instance is taken from ``app.state.rate_limiter``.

    Example usage:
        booking_rate_limit = create_rate_limiter(limit=20, window_seconds=60, key_prefix="booking")

        @router.post("/practitioners/{practitioner_id}/bookings")
        async def create_booking(..., _: None = Depends(booking_rate_limit)):
            ...
    """

    async def rate_limiter(request: Request):
        limiter: Optional[RateLimiter] = getattr(request.app.state, "rate_limiter", None)
        if not config.RATE_LIMIT_ENABLED or limiter is None:
            return

        key = f"{key_prefix}:{client_ip(request)}"
        try:
            is_allowed, current_count, ttl = limiter.check(key, limit, window_seconds)
        except Exception as e:
            logger.error(f"❌ Rate limiting error: {str(e)}")
            logger.warning("🔒 Denying request due to rate limiting error (fail-closed mode)")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Rate limiting service temporarily unavailable",
            ) from e

        if not is_allowed:
            logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                    "retry_after": ttl,
                    "limit": limit,
                    "window_seconds": window_seconds,
                },
                headers={"Retry-After": str(ttl)},
            )

        request.state.rate_limit_remaining = limit - current_count

    return rate_limiter
