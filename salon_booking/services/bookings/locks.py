# salon_booking/services/bookings/locks.py
"""
Per-provider critical sections for the write path.

LocalProviderLocks → threading.Lock per provider id (one process)
RedisProviderLocks → redis-py Lock per provider id (all processes sharing Redis)

Locks are scoped to one provider, never global: unrelated providers
reserve in parallel. Failing to acquire in time raises ReservationBusy.
"""

import logging
import threading
from contextlib import contextmanager
from typing import ContextManager, Iterator, Protocol

from redis import Redis
from redis.exceptions import LockError

from ...errors import ReservationBusy

logger = logging.getLogger(__name__)


class ProviderLocks(Protocol):
    def hold(self, provider_id: int) -> ContextManager[None]:
        ...


class LocalProviderLocks:
    """Registry of in-process locks, one per provider."""

    def __init__(self, blocking_timeout: float = 10.0):
        self.blocking_timeout = blocking_timeout
        self._locks: dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, provider_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[provider_id] = lock
            return lock

    @contextmanager
    def hold(self, provider_id: int) -> Iterator[None]:
        lock = self._lock_for(provider_id)
        if not lock.acquire(timeout=self.blocking_timeout):
            logger.warning(f"Provider {provider_id}: lock not acquired in {self.blocking_timeout}s")
            raise ReservationBusy(field="provider_id")
        try:
            yield
        finally:
            lock.release()


class RedisProviderLocks:
    """
    Distributed per-provider locks.

    Key format: locks:provider:{provider_id}
    timeout bounds how long a crashed holder can keep the lock.
    """

    KEY_PREFIX = "locks:provider"

    def __init__(self, redis: Redis, timeout: float = 30.0, blocking_timeout: float = 10.0):
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def _key(self, provider_id: int) -> str:
        return f"{self.KEY_PREFIX}:{provider_id}"

    @contextmanager
    def hold(self, provider_id: int) -> Iterator[None]:
        lock = self.redis.lock(
            self._key(provider_id),
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        if not lock.acquire():
            logger.warning(f"Provider {provider_id}: redis lock not acquired in {self.blocking_timeout}s")
            raise ReservationBusy(field="provider_id")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Expired while held; the transaction has already finished
                logger.error(f"Provider {provider_id}: redis lock release failed: {e}")


def build_provider_locks(settings, redis: Redis | None = None) -> ProviderLocks:
    """Pick the lock backend configured in settings."""
    if settings.lock_backend == "redis":
        if redis is None:
            raise RuntimeError("lock_backend=redis requires REDIS_URL")
        return RedisProviderLocks(
            redis,
            timeout=settings.lock_timeout_seconds,
            blocking_timeout=settings.lock_blocking_timeout_seconds,
        )
    return LocalProviderLocks(blocking_timeout=settings.lock_blocking_timeout_seconds)
