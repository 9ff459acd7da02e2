"""Bounded-concurrency gate in front of the persisted store.

Every persistence call, whichever flow issues it, goes through
``ConnectionThrottle.run``. The gate hands permits out in FIFO order and is
shared by reference (one instance per process, injected into the
reconcilers), so the store never sees more than ``max_concurrent`` operations
at once.
"""

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import config
from services.errors import ThrottleClosed

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottleStatus:
    active: int
    queued: int
    max: int


class ConnectionThrottle:
    def __init__(self, max_concurrent: Optional[int] = None, *, close_callback: Optional[Callable[[], Any]] = None):
        max_concurrent = config.DB_MAX_CONCURRENT_OPERATIONS if max_concurrent is None else int(max_concurrent)
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._close_callback = close_callback
        self._active = 0
        self._waiters: deque = deque()
        self._drained: Optional[asyncio.Event] = None
        self._closed_future: Optional[asyncio.Future] = None
        self._closing = False
        self.closed = False

    async def _acquire(self) -> None:
        if self._closing:
            raise ThrottleClosed("throttle is draining or closed; no new operations are accepted")
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The permit was already handed over; pass it on.
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self) -> None:
        # Hand the permit straight to the oldest live waiter; active stays the same.
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1
        if self._active == 0 and self._drained is not None:
            self._drained.set()

    async def run(self, operation: Callable[..., Any], *args, **kwargs) -> Any:
        """Run ``operation`` under a permit.

        Coroutine functions are awaited on the loop; plain callables (the
        blocking psycopg2 repositories) run on a worker thread.
        """
        await self._acquire()
        try:
            if inspect.iscoroutinefunction(operation):
                result = await operation(*args, **kwargs)
            else:
                result = await asyncio.to_thread(operation, *args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result
        finally:
            self._release()

    def status(self) -> ThrottleStatus:
        queued = sum(1 for waiter in self._waiters if not waiter.done())
        return ThrottleStatus(active=self._active, queued=queued, max=self.max_concurrent)

    async def drain_and_close(self) -> None:
        """Wait for every in-flight and queued operation, then release the store.

        Concurrent callers share one drain; the close callback runs once.
        """
        if self.closed:
            return
        self._closing = True
        if self._closed_future is None:
            self._closed_future = asyncio.ensure_future(self._drain_then_close())
        await asyncio.shield(self._closed_future)

    async def _drain_then_close(self) -> None:
        if self._active > 0:
            LOGGER.info("Draining %s in-flight store operation(s) before shutdown...", self._active)
            self._drained = asyncio.Event()
            await self._drained.wait()

        if self._close_callback is not None:
            outcome: Optional[Awaitable] = self._close_callback()
            if inspect.isawaitable(outcome):
                await outcome
        self.closed = True
        LOGGER.info("Connection throttle drained and closed.")
