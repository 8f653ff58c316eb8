"""Tests for per-provider locks."""

import threading
from unittest.mock import MagicMock

import pytest
from redis.exceptions import LockError

from salon_booking.config import Settings
from salon_booking.errors import ReservationBusy
from salon_booking.services.bookings.locks import (
    LocalProviderLocks,
    RedisProviderLocks,
    build_provider_locks,
)


class TestLocalProviderLocks:
    """Tests for LocalProviderLocks."""

    def test_same_provider_times_out(self):
        locks = LocalProviderLocks(blocking_timeout=0.05)
        acquired = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(1):
                acquired.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(5)
        try:
            with pytest.raises(ReservationBusy):
                with locks.hold(1):
                    pass
        finally:
            release.set()
            thread.join()

    def test_released_after_error(self):
        locks = LocalProviderLocks(blocking_timeout=0.05)

        with pytest.raises(RuntimeError):
            with locks.hold(1):
                raise RuntimeError("boom")

        with locks.hold(1):
            pass

    def test_other_provider_not_blocked(self):
        locks = LocalProviderLocks(blocking_timeout=0.05)
        with locks.hold(1):
            with locks.hold(2):
                pass


class TestRedisProviderLocks:
    """Tests for RedisProviderLocks with a mocked client."""

    def test_key_and_release(self):
        redis = MagicMock()
        lock = redis.lock.return_value
        lock.acquire.return_value = True

        with RedisProviderLocks(redis, timeout=30, blocking_timeout=2).hold(7):
            pass

        redis.lock.assert_called_once_with("locks:provider:7", timeout=30, blocking_timeout=2)
        lock.release.assert_called_once()

    def test_not_acquired(self):
        redis = MagicMock()
        redis.lock.return_value.acquire.return_value = False

        with pytest.raises(ReservationBusy) as exc_info:
            with RedisProviderLocks(redis).hold(7):
                pass
        assert exc_info.value.retryable is True

    def test_expired_lock_release_is_logged(self):
        redis = MagicMock()
        lock = redis.lock.return_value
        lock.acquire.return_value = True
        lock.release.side_effect = LockError("expired")

        with RedisProviderLocks(redis).hold(7):
            pass


class TestBuildProviderLocks:
    """Tests for build_provider_locks()."""

    def test_local(self):
        settings = Settings(_env_file=None, lock_backend="local")
        assert isinstance(build_provider_locks(settings), LocalProviderLocks)

    def test_redis(self):
        settings = Settings(_env_file=None, lock_backend="redis")
        assert isinstance(build_provider_locks(settings, MagicMock()), RedisProviderLocks)

    def test_redis_without_client(self):
        settings = Settings(_env_file=None, lock_backend="redis")
        with pytest.raises(RuntimeError):
            build_provider_locks(settings, None)
