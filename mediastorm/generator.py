from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from .config import LoadSpec
from .metrics import OperationRecord

logger = logging.getLogger(__name__)


class RateScheduler:
    """Fixed-period ticker.

    Deadlines sit on a grid anchored when the scheduler is created. A consumer
    that shows up late gets one tick straight away; the rest of the missed ticks
    are dropped rather than replayed as a burst. Every call yields to the loop.
    """

    def __init__(self, rate: float):
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        self.interval = 1.0 / rate
        self._loop = asyncio.get_running_loop()
        self._next = self._loop.time() + self.interval

    async def next(self) -> None:
        now = self._loop.time()
        if now < self._next:
            await asyncio.sleep(self._next - now)
            self._next += self.interval
            return
        missed = int((now - self._next) // self.interval)
        self._next += (missed + 1) * self.interval
        # the overdue tick fires now, but launched operations still get a turn
        await asyncio.sleep(0)


class Dispatcher:
    """Open-loop issuing path.

    Launches one executor task per tick and never waits on a launched task before
    the next launch. With a bounded count it stops after ``count`` launches and
    then joins every task it started.
    """

    def __init__(
        self,
        spec: LoadSpec,
        executor: Callable[[OperationRecord], Awaitable[OperationRecord]],
        scheduler: Optional[RateScheduler] = None,
    ):
        self.spec = spec
        self.executor = executor
        self.scheduler = scheduler
        self.issued = 0
        self._in_flight: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _launch(self) -> asyncio.Task:
        self.issued += 1
        record = OperationRecord.issue(self.issued)
        task = asyncio.create_task(self.executor(record), name=f"put-{self.issued}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def run(self) -> int:
        scheduler = self.scheduler or RateScheduler(self.spec.rate)
        while not self.spec.bounded or self.issued < self.spec.count:
            self._launch()
            await scheduler.next()

        if self._in_flight:
            logger.debug("waiting on %d in-flight operations", len(self._in_flight))
            await asyncio.gather(*self._in_flight)
        return self.issued
