import asyncio
import time

import pytest

from birdroute.scheduler import RateLimitedScheduler, ScheduleConfig, SchedulerTaskFailure


def make_task(value, delay=0.0, starts=None, log=None):
    async def task():
        if starts is not None:
            starts.append(time.monotonic())
        if log is not None:
            log.append(("start", value))
        await asyncio.sleep(delay)
        if log is not None:
            log.append(("end", value))
        return value

    return task


def test_empty_batch_returns_empty_list():
    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=1, min_interval_ms=1000))
    started = time.monotonic()
    assert asyncio.run(scheduler.run([])) == []
    assert time.monotonic() - started < 0.5


def test_results_keep_input_order_when_completion_order_differs():
    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=3, min_interval_ms=0))
    tasks = [make_task("a", 0.06), make_task("b", 0.01), make_task("c", 0.03)]
    assert asyncio.run(scheduler.run(tasks)) == ["a", "b", "c"]


def test_starts_are_spaced_by_min_interval():
    starts = []
    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=4, min_interval_ms=50))
    tasks = [make_task(i, 0.0, starts=starts) for i in range(4)]
    t0 = time.monotonic()
    results = asyncio.run(scheduler.run(tasks))

    assert results == [0, 1, 2, 3]
    assert starts[0] - t0 < 0.04
    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.045 for gap in gaps), gaps


def test_concurrency_never_exceeds_cap():
    state = {"active": 0, "peak": 0}

    def tracked(value):
        async def task():
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            await asyncio.sleep(0.02)
            state["active"] -= 1
            return value

        return task

    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=2, min_interval_ms=0))
    results = asyncio.run(scheduler.run([tracked(i) for i in range(7)]))

    assert results == list(range(7))
    assert state["peak"] == 2


def test_spacing_and_cap_apply_together():
    starts = []
    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=1, min_interval_ms=20))
    tasks = [make_task(i, 0.05, starts=starts) for i in range(3)]
    asyncio.run(scheduler.run(tasks))

    # With one slot the 50ms task duration dominates the 20ms interval.
    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.045 for gap in gaps), gaps


def test_failure_fails_whole_batch_without_exposing_results():
    calls = []

    async def ok():
        calls.append("ok")
        return "first"

    async def boom():
        calls.append("boom")
        raise RuntimeError("provider down")

    async def later():
        calls.append("later")
        return "third"

    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=1, min_interval_ms=0))

    with pytest.raises(SchedulerTaskFailure) as excinfo:
        asyncio.run(scheduler.run([ok, boom, later]))

    assert excinfo.value.index == 1
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert "later" not in calls


def test_in_flight_tasks_are_not_cancelled_on_failure():
    finished = []

    async def slow():
        await asyncio.sleep(0.05)
        finished.append("slow")
        return "slow"

    async def boom():
        await asyncio.sleep(0.01)
        raise ValueError("bad payload")

    async def scenario():
        scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=2, min_interval_ms=0))
        with pytest.raises(SchedulerTaskFailure):
            await scheduler.run([slow, boom])
        await asyncio.sleep(0.08)

    asyncio.run(scenario())
    assert finished == ["slow"]


def test_injected_clock_and_sleep_drive_pacing():
    now = {"t": 100.0}
    sleeps = []

    def clock():
        return now["t"]

    async def fake_sleep(delay):
        sleeps.append(round(delay, 6))
        now["t"] += delay

    scheduler = RateLimitedScheduler(
        ScheduleConfig(max_concurrent=1, min_interval_ms=500), clock=clock, sleep=fake_sleep
    )
    results = asyncio.run(scheduler.run([make_task(i) for i in range(3)]))

    assert results == [0, 1, 2]
    assert sleeps == [0.5, 0.5]


def test_per_call_config_overrides_default():
    starts = []
    scheduler = RateLimitedScheduler(ScheduleConfig(max_concurrent=1, min_interval_ms=1000))
    tasks = [make_task(i, starts=starts) for i in range(3)]
    t0 = time.monotonic()
    asyncio.run(scheduler.run(tasks, ScheduleConfig(max_concurrent=3, min_interval_ms=0)))
    assert time.monotonic() - t0 < 0.5


@pytest.mark.parametrize(
    "kwargs",
    [{"max_concurrent": 0}, {"max_concurrent": 1, "min_interval_ms": -1}],
)
def test_schedule_config_validation(kwargs):
    with pytest.raises(ValueError):
        ScheduleConfig(**kwargs)


def test_early_timer_wakeups_do_not_shorten_the_interval():
    now = {"t": 0.0}
    starts = []

    def clock():
        return now["t"]

    async def early_sleep(delay):
        # Wake slightly before the requested delay, as coarse loop timers can.
        now["t"] += max(delay - 0.004, 0.001)

    def stamped(value):
        async def task():
            starts.append(now["t"])
            return value

        return task

    scheduler = RateLimitedScheduler(
        ScheduleConfig(max_concurrent=2, min_interval_ms=500), clock=clock, sleep=early_sleep
    )
    assert asyncio.run(scheduler.run([stamped(i) for i in range(3)])) == [0, 1, 2]

    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert all(gap >= 0.5 - 1e-9 for gap in gaps), gaps
