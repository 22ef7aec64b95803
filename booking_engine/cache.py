"""
Redis caching utilities for the availability read path.

Availability is cacheable for a short TTL: a stale slot is caught by the
write path, which always re-validates, so nothing here is ever invalidated
on booking.
"""
import json
import logging
from datetime import date
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)


class Cache:
    """Redis cache wrapper with automatic serialization. A no-op without a client."""

    def __init__(self, redis_client: Optional[redis.Redis] = None, prefix: str = "booking_engine"):
        self.redis_client = redis_client
        self.prefix = prefix

    @property
    def enabled(self) -> bool:
        return self.redis_client is not None

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(self._key(key))
            if value:
                logger.debug(f"✅ Cache HIT: {key}")
                return json.loads(value)
            logger.debug(f"❌ Cache MISS: {key}")
            return None
        except (redis.RedisError, ValueError) as e:
            logger.error(f"❌ Cache get error for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int = 30) -> bool:
        """Set value in cache with TTL"""
        if not self.redis_client or ttl <= 0:
            return False

        try:
            serialized = json.dumps(value, default=str)
            self.redis_client.setex(self._key(key), ttl, serialized)
            logger.debug(f"✅ Cache SET: {key} (TTL: {ttl}s)")
            return True
        except (redis.RedisError, TypeError) as e:
            logger.error(f"❌ Cache set error for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        """Delete value from cache"""
        if not self.redis_client:
            return False

        try:
            self.redis_client.delete(self._key(key))
            logger.debug(f"✅ Cache DELETE: {key}")
            return True
        except redis.RedisError as e:
            logger.error(f"❌ Cache delete error for {key}: {e}")
            return False


def build_availability_key(practitioner_id: int, service_id: int, date_from: date, date_to: date) -> str:
    """Build cache key for an availability query"""
    return f"availability:{practitioner_id}:{service_id}:{date_from.isoformat()}:{date_to.isoformat()}"
