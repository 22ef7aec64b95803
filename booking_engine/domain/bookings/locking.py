"""
Concurrency disciplines for the booking critical section.

The conflict check and the insert/update must be one indivisible step per
practitioner. Two disciplines are supported:

- lock: an exclusive, short-lived lock keyed by practitioner id. Redis-backed
  (redis-py ``Lock``) when Redis is configured, otherwise an in-process lock
  registry owned by the app.
- store: PostgreSQL only. SERIALIZABLE transaction, ``SELECT ... FOR UPDATE``
  on the practitioner row, and the bookings exclusion constraint as the last
  guard. Serialization failures are retried by the transaction manager.

Lock TTL must exceed the worst-case transaction latency; ownership is checked
again right before commit and a lost lease aborts the transaction.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

import redis
from redis.exceptions import LockError, RedisError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ... import config
from ...errors import TransientError
from .repository import BookingRepository

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "booking-lock"


class LocalLease:
    def __init__(self, ttl_seconds: float):
        self.expires_at = time.monotonic() + ttl_seconds

    def held(self) -> bool:
        return time.monotonic() < self.expires_at


class RedisLease:
    def __init__(self, lock):
        self.lock = lock

    def held(self) -> bool:
        try:
            return self.lock.owned()
        except RedisError as e:
            logger.warning(f"⚠️ Could not verify lock ownership: {e}")
            return False


class StoreLease:
    """Row lock held by the open transaction itself; released on commit/rollback"""

    def held(self) -> bool:
        return True


class LocalLockManager:
    """
    In-process exclusive locks keyed by name, for single-process deployments and tests.

    Registry entries are reference counted and dropped once no thread holds
    or waits on the key, so the registry only holds keys in use.
    """

    def __init__(
        self,
        ttl_seconds: float = config.BOOKING_LOCK_TTL_SECONDS,
        wait_seconds: float = config.BOOKING_LOCK_WAIT_SECONDS,
    ):
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds
        # key -> [lock, number of holders and waiters]
        self._locks: dict[str, list] = {}
        self._registry_lock = threading.Lock()

    def _checkout(self, key: str) -> threading.Lock:
        with self._registry_lock:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._registry_lock:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str):
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=self.wait_seconds):
                logger.warning(f"⏳ Timed out after {self.wait_seconds}s waiting for lock {key}")
                raise TransientError(f"Timed out waiting for lock on {key}")
            try:
                yield LocalLease(self.ttl_seconds)
            finally:
                lock.release()
        finally:
            self._checkin(key)


class RedisLockManager:
    """Distributed exclusive locks on Redis with a bounded TTL"""

    def __init__(
        self,
        redis_client: redis.Redis,
        ttl_seconds: float = config.BOOKING_LOCK_TTL_SECONDS,
        wait_seconds: float = config.BOOKING_LOCK_WAIT_SECONDS,
    ):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.wait_seconds = wait_seconds

    @contextmanager
    def hold(self, key: str):
        lock = self.redis_client.lock(
            f"{LOCK_KEY_PREFIX}:{key}",
            timeout=self.ttl_seconds,
            blocking_timeout=self.wait_seconds,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            logger.error(f"❌ Redis lock acquisition failed for {key}: {e}")
            raise TransientError("Lock service unavailable") from e

        if not acquired:
            logger.warning(f"⏳ Timed out after {self.wait_seconds}s waiting for lock {key}")
            raise TransientError(f"Timed out waiting for lock on {key}")

        try:
            yield RedisLease(lock)
        finally:
            try:
                lock.release()
            except LockError as e:
                # Expired before release; the commit was already refused by the ownership check
                logger.warning(f"⚠️ Lock {key} expired before release: {e}")
            except RedisError as e:
                # The TTL reclaims the key; the transaction outcome stands
                logger.warning(f"⚠️ Could not release lock {key}, leaving it to expire: {e}")


class LockDiscipline:
    name = "lock"
    max_attempts = 1

    def __init__(self, lock_manager):
        self.lock_manager = lock_manager

    def begin(self, db: Session) -> None:
        pass

    @contextmanager
    def critical_section(self, db: Session, practitioner_id: int):
        with self.lock_manager.hold(f"practitioner:{practitioner_id}") as lease:
            yield lease


class StoreNativeDiscipline:
    name = "store"

    def __init__(self, retries: int = config.BOOKING_SERIALIZATION_RETRIES):
        self.max_attempts = max(1, retries + 1)

    def begin(self, db: Session) -> None:
        # Must be the first statement of the transaction
        db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

    @contextmanager
    def critical_section(self, db: Session, practitioner_id: int):
        BookingRepository.lock_practitioner(db, practitioner_id)
        yield StoreLease()


def create_lock_manager(
    redis_client: Optional[redis.Redis] = None,
    ttl_seconds: float = config.BOOKING_LOCK_TTL_SECONDS,
    wait_seconds: float = config.BOOKING_LOCK_WAIT_SECONDS,
):
    if redis_client is not None:
        logger.info(f"🔒 Using Redis practitioner locks (ttl={ttl_seconds}s, wait={wait_seconds}s)")
        return RedisLockManager(redis_client, ttl_seconds, wait_seconds)
    logger.info("🔒 Using in-process practitioner locks (single process only)")
    return LocalLockManager(ttl_seconds, wait_seconds)


def choose_discipline(strategy: str, engine: Engine, lock_manager):
    """Pick the critical-section discipline for this deployment"""
    if strategy == "store":
        if engine.dialect.name == "postgresql":
            logger.info("🛡️ Store-native booking discipline (SERIALIZABLE + row lock + exclusion constraint)")
            return StoreNativeDiscipline()
        logger.warning(
            f"⚠️ Store-native discipline needs PostgreSQL, got {engine.dialect.name}; "
            "falling back to per-practitioner locks"
        )
    elif strategy != "lock":
        logger.warning(f"⚠️ Unknown booking concurrency strategy '{strategy}'; using locks")
    return LockDiscipline(lock_manager)
