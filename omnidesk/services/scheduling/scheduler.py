"""In-process job scheduler driven by an injectable clock."""

import asyncio
import heapq
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Protocol

import structlog

from omnidesk.models.common import ensure_utc, utcnow

logger = structlog.get_logger()

Job = Callable[[], Awaitable[None]]


class Clock(Protocol):
    """Source of time for anything that waits."""

    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall-clock UTC time and real sleeping."""

    def now(self) -> datetime:
        return utcnow()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass(order=True)
class ScheduledJob:
    """Handle for a queued job; pass it to ``Scheduler.cancel``."""

    due_at: datetime
    seq: int
    job: Job = field(compare=False)
    name: str = field(compare=False, default="job")
    interval: float | None = field(compare=False, default=None)
    cancelled: bool = field(compare=False, default=False)


class Scheduler:
    """Priority queue of timed jobs.

    ``run_due`` executes everything whose time has come; ``start`` spawns a
    driver task that calls it in a loop. A failing job is logged and, if
    periodic, still rescheduled.
    """

    def __init__(self, clock: Clock | None = None, poll_interval: float = 1.0) -> None:
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self._queue: list[ScheduledJob] = []
        self._seq = itertools.count()
        self._task: asyncio.Task | None = None
        self._running = False

    def __len__(self) -> int:
        return sum(1 for entry in self._queue if not entry.cancelled)

    @property
    def running(self) -> bool:
        return self._running

    def schedule_at(self, when: datetime, job: Job, name: str = "job") -> ScheduledJob:
        """Run ``job`` once at ``when``."""
        entry = ScheduledJob(ensure_utc(when), next(self._seq), job, name)
        heapq.heappush(self._queue, entry)
        return entry

    def schedule_every(
        self,
        seconds: float,
        job: Job,
        name: str = "job",
        first_at: datetime | None = None,
    ) -> ScheduledJob:
        """Run ``job`` every ``seconds``, first at ``first_at`` (default: one interval from now)."""
        if seconds <= 0:
            raise ValueError("Interval must be positive")
        due = ensure_utc(first_at) if first_at else self.clock.now() + timedelta(seconds=seconds)
        entry = ScheduledJob(due, next(self._seq), job, name, interval=seconds)
        heapq.heappush(self._queue, entry)
        return entry

    def cancel(self, entry: ScheduledJob) -> None:
        entry.cancelled = True

    def next_due(self) -> datetime | None:
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)
        return self._queue[0].due_at if self._queue else None

    async def run_due(self, now: datetime | None = None) -> int:
        """Run every job due at ``now``; returns how many ran."""
        now = ensure_utc(now) if now else self.clock.now()
        ran = 0
        while self._queue and self._queue[0].due_at <= now:
            entry = heapq.heappop(self._queue)
            if entry.cancelled:
                continue

            try:
                await entry.job()
            except Exception as e:
                logger.error("Scheduled job failed", job=entry.name, error=str(e), exc_info=True)
            ran += 1

            if entry.interval is not None and not entry.cancelled:
                next_due = entry.due_at + timedelta(seconds=entry.interval)
                if next_due <= now:
                    # Missed runs are not replayed
                    next_due = now + timedelta(seconds=entry.interval)
                entry.due_at = next_due
                entry.seq = next(self._seq)
                heapq.heappush(self._queue, entry)
        return ran

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Scheduler started", jobs=len(self))

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        while self._running:
            await self.run_due()
            delay = self.poll_interval
            next_due = self.next_due()
            if next_due is not None:
                delay = min(delay, max((next_due - self.clock.now()).total_seconds(), 0.0))
            await self.clock.sleep(delay)
