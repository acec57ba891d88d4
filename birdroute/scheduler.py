"""Concurrency-bounded, start-paced runner for independent async lookups."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Task = Callable[[], Awaitable[T]]


class SchedulerTaskFailure(RuntimeError):
    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(f"Scheduled task {index} failed: {cause!r}")
        self.index = index
        self.cause = cause


@dataclass(frozen=True)
class ScheduleConfig:
    max_concurrent: int = 2
    min_interval_ms: int = 500

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.min_interval_ms < 0:
            raise ValueError(f"min_interval_ms must be >= 0, got {self.min_interval_ms}")

    @property
    def min_interval_seconds(self) -> float:
        return self.min_interval_ms / 1000.0


class RateLimitedScheduler:
    """Run tasks with at most ``max_concurrent`` in flight and task starts
    spaced at least ``min_interval_ms`` apart.

    Pacing is global across slots: start ``i`` waits for start ``i - 1``
    plus the interval, so throughput is bounded by whichever constraint is
    tighter. Results come back in input order. The first failing task fails
    the whole batch with :class:`SchedulerTaskFailure`; queued tasks are
    never started and in-flight ones run to completion with their results
    dropped.
    """

    def __init__(
        self,
        config: Optional[ScheduleConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or ScheduleConfig()
        self._clock = clock
        self._sleep = sleep

    async def run(self, tasks: Sequence[Task[T]], config: Optional[ScheduleConfig] = None) -> List[T]:
        cfg = config or self.config
        if not tasks:
            return []

        batch = _Batch(cfg, self._clock, self._sleep)
        runners = [
            asyncio.ensure_future(batch.run_one(index, task)) for index, task in enumerate(tasks)
        ]
        try:
            done, pending = await asyncio.wait(runners, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            batch.abort()
            for runner in runners:
                runner.add_done_callback(_drop_result)
            raise

        failed = [r for r in runners if r in done and not r.cancelled() and r.exception() is not None]
        if failed:
            batch.abort()
            for runner in pending:
                runner.add_done_callback(_drop_result)
            error = failed[0].exception()
            logger.warning("Scheduler batch of %s aborted: %s", len(tasks), error)
            raise error

        return [r.result() for r in runners]


class _Batch:
    def __init__(
        self,
        config: ScheduleConfig,
        clock: Callable[[], float],
        sleep: Callable[[float], Awaitable[None]],
    ) -> None:
        self._interval = config.min_interval_seconds
        self._slots = asyncio.Semaphore(config.max_concurrent)
        self._pacing = asyncio.Lock()
        self._clock = clock
        self._sleep = sleep
        self._last_start: Optional[float] = None
        self._aborted = False

    def abort(self) -> None:
        self._aborted = True

    async def run_one(self, index: int, task: Task[T]) -> Optional[T]:
        async with self._slots:
            if self._aborted:
                return None
            await self._wait_for_turn()
            if self._aborted:
                return None
            logger.debug("Starting task %s", index)
            try:
                return await task()
            except Exception as exc:
                # Abort before the slot is released so no queued task starts.
                self._aborted = True
                raise SchedulerTaskFailure(index, exc) from exc

    async def _wait_for_turn(self) -> None:
        async with self._pacing:
            if self._last_start is not None and self._interval > 0:
                # Loop timers can fire early; re-check before starting.
                delay = self._last_start + self._interval - self._clock()
                while delay > 0:
                    await self._sleep(delay)
                    delay = self._last_start + self._interval - self._clock()
            self._last_start = self._clock()


def _drop_result(future: "asyncio.Future") -> None:
    if not future.cancelled():
        future.exception()
