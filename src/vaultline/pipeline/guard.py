"""Per-pipeline mutual exclusion for executions."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable

import structlog

logger = structlog.get_logger()


class Acquisition:
    """Handle returned by a successful acquire.

    ``release`` hands the lock to the next waiter. Calling it again on the
    same handle does nothing.
    """

    def __init__(self, release_fn: Callable[[], None]) -> None:
        self._release_fn = release_fn
        self._released = False

    @property
    def released(self) -> bool:
        """Whether this acquisition has been released."""
        return self._released

    def release(self) -> None:
        """Release the lock held by this acquisition."""
        if self._released:
            return
        self._released = True
        self._release_fn()

    async def __aenter__(self) -> Acquisition:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()


class FifoMutex:
    """Asynchronous mutex granting the lock in arrival order.

    Release hands the lock directly to the oldest waiter, so a newcomer can
    never overtake a queued requester. There is no timeout: a holder that
    never releases blocks every later requester.
    """

    def __init__(self, on_unlock: Callable[[], None] | None = None) -> None:
        self._locked = False
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._on_unlock = on_unlock

    @property
    def locked(self) -> bool:
        """Whether the mutex is currently held."""
        return self._locked

    @property
    def queue_length(self) -> int:
        """Number of requesters waiting for the lock."""
        return sum(1 for w in self._waiters if not w.done())

    def try_acquire(self) -> Acquisition | None:
        """Acquire the lock only if it is free and nobody is queued."""
        if self._locked or self.queue_length:
            return None
        self._locked = True
        return Acquisition(self._release)

    async def acquire(self) -> Acquisition:
        """Wait for the lock.

        Returns:
            Acquisition whose ``release`` must be called exactly once.
        """
        if not self._locked and not self.queue_length:
            self._locked = True
            return Acquisition(self._release)

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The lock was handed over just before cancellation; pass it on.
                self._release()
            raise
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
        return Acquisition(self._release)

    def _release(self) -> None:
        if not self._locked:
            msg = "Release of an unlocked mutex"
            raise RuntimeError(msg)
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Lock stays held; ownership moves to the waiter.
                waiter.set_result(None)
                return
        self._locked = False
        if self._on_unlock:
            self._on_unlock()


class ExecutionGuard:
    """Keyed arena of FIFO mutexes, one per pipeline identity.

    A mutex is created on first use of a key and dropped from the arena
    once it is released with no waiters, so the arena never holds a lock
    for a pipeline that is not executing.

    Example:
        >>> guard = ExecutionGuard()
        >>> acquisition = guard.try_acquire("nightly")
        >>> guard.try_acquire("nightly") is None
        True
        >>> acquisition.release()
    """

    def __init__(self) -> None:
        self._mutexes: dict[str, FifoMutex] = {}

    def _mutex_for(self, key: str) -> FifoMutex:
        mutex = self._mutexes.get(key)
        if mutex is None:
            mutex = FifoMutex(on_unlock=lambda: self._discard(key))
            self._mutexes[key] = mutex
        return mutex

    def _discard(self, key: str) -> None:
        mutex = self._mutexes.get(key)
        if mutex is not None and not mutex.locked:
            del self._mutexes[key]

    def is_held(self, key: str) -> bool:
        """Whether an execution currently holds the slot for ``key``."""
        mutex = self._mutexes.get(key)
        return mutex is not None and mutex.locked

    def try_acquire(self, key: str) -> Acquisition | None:
        """Take the slot for ``key`` if it is free, without waiting."""
        acquisition = self._mutex_for(key).try_acquire()
        logger.debug("Guard try-acquire", key=key, acquired=acquisition is not None)
        return acquisition

    async def acquire(self, key: str) -> Acquisition:
        """Wait (FIFO) for the slot for ``key``."""
        acquisition = await self._mutex_for(key).acquire()
        logger.debug("Guard acquired", key=key)
        return acquisition
