"""Per-resource lock manager with TTL leases."""

import asyncio
import time
from typing import Callable

from ..errors import LockNotOwned
from ..logging_config import get_logger
from ..models import Lock

logger = get_logger(__name__)

Clock = Callable[[], float]


class LockManager:
    """Mutual exclusion per resource key with automatic lease expiry.

    At most one unexpired lock exists per key. Expiry is enforced twice: a
    loop timer drops the lock at `ttl`, and every lookup treats a lock past
    `expires_at` as absent (so a stalled loop or an injected clock still
    behaves correctly).
    """

    def __init__(self, default_ttl: float = 30.0, clock: Clock = time.monotonic):
        self._default_ttl = default_ttl
        self._clock = clock
        self._locks: dict[str, Lock] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    def acquire_lock(
        self, resource_key: str, holder_id: str, ttl: float | None = None
    ) -> bool:
        """Try to lock a resource for `ttl` seconds. False if already held."""
        if self.is_locked(resource_key) is not None:
            logger.warning("Lock already held: %s", resource_key)
            return False

        ttl = self._default_ttl if ttl is None else ttl
        now = self._clock()
        lock = Lock(
            resource_key=resource_key,
            holder_id=holder_id,
            acquired_at=now,
            expires_at=now + ttl,
        )
        self._locks[resource_key] = lock
        self._schedule_expiry(lock, ttl)
        logger.debug("Lock acquired: %s by %s", resource_key, holder_id)
        return True

    def release_lock(self, resource_key: str, holder_id: str) -> bool:
        """Release a lock held by `holder_id`.

        Returns False, without raising, when the lock is absent, expired or
        belongs to someone else.
        """
        lock = self.is_locked(resource_key)
        if lock is None:
            return False
        if lock.holder_id != holder_id:
            logger.warning(
                "Cannot release lock %s held by %s", resource_key, lock.holder_id
            )
            return False

        self._drop(resource_key)
        logger.debug("Lock released: %s", resource_key)
        return True

    def renew_lock(
        self, resource_key: str, holder_id: str, ttl: float | None = None
    ) -> Lock:
        """Extend the lease of a held lock by `ttl` seconds from now."""
        lock = self.is_locked(resource_key)
        if lock is None or lock.holder_id != holder_id:
            raise LockNotOwned(resource_key, holder_id)

        ttl = self._default_ttl if ttl is None else ttl
        lock.expires_at = self._clock() + ttl
        self._schedule_expiry(lock, ttl)
        return lock

    def is_locked(self, resource_key: str) -> Lock | None:
        """Current unexpired lock for the key, if any."""
        lock = self._locks.get(resource_key)
        if lock is None:
            return None
        if lock.is_expired(self._clock()):
            self._drop(resource_key)
            return None
        return lock

    @property
    def active_locks(self) -> list[Lock]:
        return [
            lock for key in list(self._locks) if (lock := self.is_locked(key)) is not None
        ]

    def shutdown(self) -> None:
        """Cancel expiry timers and drop every lock."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._locks.clear()

    def _schedule_expiry(self, lock: Lock, ttl: float) -> None:
        old = self._timers.pop(lock.resource_key, None)
        if old is not None:
            old.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): rely on lazy expiry in is_locked()
            return
        self._timers[lock.resource_key] = loop.call_later(ttl, self._expire, lock)

    def _expire(self, lock: Lock) -> None:
        if self._locks.get(lock.resource_key) is lock:
            self._locks.pop(lock.resource_key)
            self._timers.pop(lock.resource_key, None)
            logger.info("Lock auto-released: %s", lock.resource_key)

    def _drop(self, resource_key: str) -> None:
        self._locks.pop(resource_key, None)
        timer = self._timers.pop(resource_key, None)
        if timer is not None:
            timer.cancel()
