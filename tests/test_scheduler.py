"""Tests for the in-process scheduler."""

import asyncio
from datetime import timedelta

import pytest

from omnidesk.services.scheduling import Scheduler


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock)


@pytest.mark.asyncio
async def test_one_shot_job_runs_once_when_due(scheduler, clock):
    calls = []

    async def job():
        calls.append(clock.now())

    scheduler.schedule_at(clock.now() + timedelta(seconds=30), job)

    assert await scheduler.run_due() == 0
    clock.advance(30)
    assert await scheduler.run_due() == 1
    clock.advance(30)
    assert await scheduler.run_due() == 0
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_jobs_run_in_due_order(scheduler, clock):
    order = []

    def make(name):
        async def job():
            order.append(name)

        return job

    scheduler.schedule_at(clock.now() + timedelta(seconds=20), make("late"))
    scheduler.schedule_at(clock.now() + timedelta(seconds=10), make("early"))
    scheduler.schedule_at(clock.now() + timedelta(seconds=10), make("early-second"))

    clock.advance(20)
    await scheduler.run_due()
    assert order == ["early", "early-second", "late"]


@pytest.mark.asyncio
async def test_periodic_job_does_not_replay_missed_runs(scheduler, clock):
    calls = []

    async def job():
        calls.append(clock.now())

    scheduler.schedule_every(10, job)

    clock.advance(35)
    assert await scheduler.run_due() == 1
    assert scheduler.next_due() == clock.now() + timedelta(seconds=10)


@pytest.mark.asyncio
async def test_failing_periodic_job_is_rescheduled(scheduler, clock):
    attempts = []

    async def flaky():
        attempts.append(1)
        raise RuntimeError("boom")

    scheduler.schedule_every(10, flaky)
    for _ in range(3):
        clock.advance(10)
        await scheduler.run_due()

    assert len(attempts) == 3
    assert len(scheduler) == 1


@pytest.mark.asyncio
async def test_cancelled_job_never_runs(scheduler, clock):
    calls = []

    async def job():
        calls.append(1)

    entry = scheduler.schedule_every(5, job)
    scheduler.cancel(entry)
    clock.advance(60)

    assert await scheduler.run_due() == 0
    assert scheduler.next_due() is None
    assert calls == []


def test_interval_must_be_positive(scheduler):
    async def job():
        return None

    with pytest.raises(ValueError):
        scheduler.schedule_every(0, job)


@pytest.mark.asyncio
async def test_start_and_stop_with_system_clock():
    scheduler = Scheduler(poll_interval=0.01)
    ran = asyncio.Event()

    async def job():
        ran.set()

    scheduler.schedule_every(0.01, job)
    await scheduler.start()
    assert scheduler.running

    await asyncio.wait_for(ran.wait(), timeout=2)
    await scheduler.stop()
    assert not scheduler.running
