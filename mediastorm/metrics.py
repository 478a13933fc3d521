from __future__ import annotations

import asyncio
import enum
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional, Tuple

from .config import format_utc

REPORT_INTERVAL = 5.0


class Outcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


# ----------------------------- Per-operation record -----------------------------

@dataclass
class OperationRecord:
    seq: int
    issued_at: datetime
    issued_mono: float
    completed_at: Optional[datetime] = None
    outcome: Optional[Outcome] = None
    error_stage: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def issue(cls, seq: int) -> "OperationRecord":
        return cls(seq=seq, issued_at=datetime.now(timezone.utc), issued_mono=time.monotonic())

    def complete(self) -> None:
        # wall clock can step backwards; the monotonic delta cannot
        elapsed = max(0.0, time.monotonic() - self.issued_mono)
        self.completed_at = self.issued_at + timedelta(seconds=elapsed)

    def succeed(self) -> None:
        self.outcome = Outcome.SUCCESS

    def fail(self, stage: str, error: BaseException) -> None:
        self.outcome = Outcome.FAILURE
        self.error_stage = stage
        self.error = str(error)

    @property
    def duration_ms(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.issued_at) / timedelta(milliseconds=1)

    def metrics_line(self) -> str:
        return (
            f"METRICS {int(self.issued_at.timestamp())} {self.duration_ms:.6f} "
            f"{format_utc(self.issued_at)} {format_utc(self.completed_at)}"
        )


# ----------------------------- Aggregation -----------------------------

class MetricsAggregator:
    """Run-wide success counter.

    Executors all run on the one event loop and the increment never awaits, so
    no increment can be lost and no lock is needed.
    """

    def __init__(self):
        self._start = time.monotonic()
        self._successes = 0

    @property
    def successes(self) -> int:
        return self._successes

    def record_success(self) -> None:
        self._successes += 1

    def snapshot(self) -> Tuple[int, float]:
        return self._successes, time.monotonic() - self._start

    def throughput(self) -> float:
        total, elapsed = self.snapshot()
        return total / elapsed if elapsed > 0 else 0.0

    @contextmanager
    def pending(self, record: OperationRecord) -> Iterator[OperationRecord]:
        """Guard one in-flight operation; its METRICS line is printed on every exit path."""
        try:
            yield record
        finally:
            record.complete()
            print(record.metrics_line(), flush=True)


# ----------------------------- Rolling throughput -----------------------------

class ThroughputReporter:
    """Background loop printing the average success rate since start."""

    def __init__(self, aggregator: MetricsAggregator, interval: float = REPORT_INTERVAL):
        self.aggregator = aggregator
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def line(self) -> str:
        return f"=> @ {self.aggregator.throughput():.1f} TPS"

    async def _run(self):
        while True:
            print(self.line(), flush=True)
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
