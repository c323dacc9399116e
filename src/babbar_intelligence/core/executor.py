"""Bounded fan-out for pipelines that issue many provider calls."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BoundedExecutor:
    """Runs coroutines with at most ``max_concurrency`` of them in flight.

    Waiters are admitted in submission order. A finishing unit, successful or
    not, hands its slot to exactly one waiter. Each caller awaits its own
    result, so one failing unit never affects its siblings.
    """

    def __init__(self, max_concurrency: int):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self._active = 0
        self._peak = 0
        self._waiters: deque[asyncio.Future] = deque()

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    @property
    def peak(self) -> int:
        """Highest number of simultaneously running units seen so far."""
        return self._peak

    async def _acquire(self) -> None:
        if self._active < self.max_concurrency and not self._waiters:
            self._active += 1
        else:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
                elif not waiter.cancelled():
                    # The slot was already handed over to us.
                    self._release()
                raise
        self._peak = max(self._peak, self._active)

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot passes straight to the waiter; active count is unchanged.
                waiter.set_result(None)
                return
        self._active -= 1

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn()`` once a slot is free and return its result."""
        await self._acquire()
        try:
            return await fn()
        finally:
            self._release()

    async def map(
        self,
        fn: Callable[[T], Awaitable[R]],
        items: Iterable[T],
        return_exceptions: bool = True,
    ) -> list[Any]:
        """Apply ``fn`` to every item through the executor.

        Results come back in item order; with ``return_exceptions`` a failed
        unit yields its exception in place of a result.
        """
        tasks = [self.run(lambda item=item: fn(item)) for item in items]
        return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
