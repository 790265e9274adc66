"""Periodic task scheduling for the worker.

The worker has no job queue: periodic tasks are coroutines run in-process
whenever their interval has elapsed. A freshly started scheduler treats
every task as due, so tasks must be safe to repeat.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Definition of a periodic task.

    Attributes:
        name: Task name, for logs.
        interval: Time between runs.
        func: Coroutine function run when the task is due.
        enabled: Whether this task is active.
        last_run: When the task last started.
    """

    name: str
    interval: timedelta
    func: Callable[[], Awaitable[dict[str, Any] | None]]
    enabled: bool = True
    last_run: datetime | None = None


class Scheduler:
    """Runs scheduled tasks that are due.

    Example:
        scheduler = Scheduler()
        scheduler.add_task(ScheduledTask("expiry_sweep", timedelta(days=1), sweep))
        await scheduler.tick()
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._tasks: list[ScheduledTask] = []
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def tasks(self) -> list[ScheduledTask]:
        return list(self._tasks)

    def add_task(self, task: ScheduledTask) -> None:
        self._tasks.append(task)
        logger.debug("Added task: name=%s, interval=%s", task.name, task.interval)

    async def tick(self) -> list[str]:
        """Run every task that is due.

        A failing task is logged and retried at its next interval.

        Returns:
            Names of the tasks that ran successfully.
        """
        now = self._clock()
        completed: list[str] = []

        for task in self._tasks:
            if not task.enabled or not self._is_due(task, now):
                continue

            task.last_run = now
            try:
                result = await task.func()
            except Exception as e:
                logger.exception("Scheduled task failed: name=%s, error=%s", task.name, e)
                continue

            completed.append(task.name)
            logger.info(
                "Scheduled task completed: name=%s, result=%s, next_due=%s",
                task.name,
                result,
                (now + task.interval).isoformat(),
            )

        return completed

    def next_due_in(self) -> float | None:
        """Seconds until the next enabled task is due, None without tasks."""
        now = self._clock()
        waits = [
            0.0
            if task.last_run is None
            else max(0.0, (task.last_run + task.interval - now).total_seconds())
            for task in self._tasks
            if task.enabled
        ]
        return min(waits) if waits else None

    def _is_due(self, task: ScheduledTask, now: datetime) -> bool:
        if task.last_run is None:
            return True
        return now >= task.last_run + task.interval


async def run_scheduler_loop(
    scheduler: Scheduler,
    check_interval: float = 60.0,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Tick the scheduler until shutdown is requested.

    Args:
        scheduler: Scheduler holding the periodic tasks.
        check_interval: Upper bound on seconds between checks.
        shutdown_event: Event to signal shutdown.
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    logger.info(
        "Scheduler starting: check_interval=%ss, tasks=%d",
        check_interval,
        len(scheduler.tasks),
    )

    while not shutdown_event.is_set():
        try:
            await scheduler.tick()
        except Exception as e:
            logger.exception("Error in scheduler loop: %s", e)

        wait = scheduler.next_due_in()
        timeout = check_interval if wait is None else min(max(wait, 1.0), check_interval)
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=timeout)

    logger.info("Scheduler stopped")
