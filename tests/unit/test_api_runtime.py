"""Tests for the background job runner used by the API runtime."""

from __future__ import annotations

import asyncio
import threading

import pytest

from clanwars.api.runtime import PeriodicJob


@pytest.mark.asyncio
async def test_run_now_returns_result_and_records_it():
    job = PeriodicJob("answer", lambda: 42, interval_seconds=60)

    assert await job.run_now() == 42
    assert job.last_result == 42
    assert job.last_run_at is not None


@pytest.mark.asyncio
async def test_run_now_propagates_errors():
    def fail():
        raise ValueError("broken")

    job = PeriodicJob("broken", fail, interval_seconds=60)
    with pytest.raises(ValueError, match="broken"):
        await job.run_now()


@pytest.mark.asyncio
async def test_loop_runs_periodically_and_stops():
    calls: list[int] = []
    job = PeriodicJob("counter", lambda: calls.append(1), interval_seconds=0.1)

    job.start()
    assert job.running
    await asyncio.sleep(0.45)
    await job.stop()

    assert not job.running
    assert len(calls) >= 2
    count = len(calls)
    await asyncio.sleep(0.25)
    assert len(calls) == count


@pytest.mark.asyncio
async def test_failing_cycle_keeps_loop_alive(caplog):
    attempts: list[int] = []

    def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("database locked")
        return len(attempts)

    job = PeriodicJob("flaky", flaky, interval_seconds=0.1)
    job.start()
    await asyncio.sleep(0.35)
    await job.stop()

    assert len(attempts) >= 2
    assert "flaky job failed" in caplog.text


@pytest.mark.asyncio
async def test_runs_do_not_overlap():
    active = 0
    peak = 0
    guard = threading.Lock()

    def slow():
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        threading.Event().wait(0.05)
        with guard:
            active -= 1

    job = PeriodicJob("slow", slow, interval_seconds=60)
    await asyncio.gather(job.run_now(), job.run_now(), job.run_now())

    assert peak == 1


def test_interval_has_a_floor():
    job = PeriodicJob("fast", lambda: None, interval_seconds=0.0)
    assert job.interval_seconds == PeriodicJob.MIN_INTERVAL_SECONDS
    job.set_interval(5)
    assert job.interval_seconds == 5
