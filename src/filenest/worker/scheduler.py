"""Periodic pass scheduling for the worker.

Each ``ScheduledPass`` runs in its own asyncio task. A loop runs its pass to
completion and only then waits for the interval, so two runs of the same
pass never overlap; different passes may run concurrently.

Default schedules:
- expiry: at start, then every ``expiry_interval_hours``
- reminders: after ``reminder_startup_delay_seconds``, then every
  ``reminder_interval_hours``
- integrity: once at start
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from filenest.services.context import PassContext

logger = logging.getLogger(__name__)

# A pass receives its cancellation context and returns a summary dict
PassRunner = Callable[[PassContext], Awaitable[dict[str, Any] | None]]


@dataclass
class ScheduledPass:
    """Definition of a periodic reconciliation pass.

    Attributes:
        name: Pass name used in logs.
        runner: Coroutine function running one pass.
        interval: Time between the end of one run and the start of the next.
            None runs the pass once.
        initial_delay: Wait before the first run.
        enabled: Whether the pass is scheduled at all.
        run_on_start: Run right after ``initial_delay``; otherwise wait one
            interval first.
        last_run: When the pass last started.
        runs: Completed runs.
        failures: Runs that raised.
    """

    name: str
    runner: PassRunner
    interval: timedelta | None
    initial_delay: timedelta = timedelta(0)
    enabled: bool = True
    run_on_start: bool = True
    last_run: datetime | None = None
    runs: int = 0
    failures: int = 0

    def next_due(self) -> datetime | None:
        if self.last_run is None or self.interval is None:
            return None
        return self.last_run + self.interval


async def wait_for_shutdown(shutdown_event: asyncio.Event, delay: timedelta) -> bool:
    """Sleep for ``delay`` unless shutdown is requested first.

    Returns:
        True if shutdown was requested.
    """
    if delay > timedelta(0):
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=delay.total_seconds())
    return shutdown_event.is_set()


async def run_once(schedule: ScheduledPass, ctx: PassContext) -> dict[str, Any] | None:
    """Run a pass, logging and absorbing its failure."""
    schedule.last_run = datetime.now(UTC)
    try:
        result = await schedule.runner(ctx)
    except Exception as e:
        schedule.failures += 1
        logger.exception("Pass failed: name=%s, error=%s", schedule.name, e)
        return None

    schedule.runs += 1
    logger.info(
        "Pass finished: name=%s, result=%s, next_due=%s",
        schedule.name,
        result,
        next_due.isoformat() if (next_due := schedule.next_due()) else None,
    )
    return result


async def run_periodic(schedule: ScheduledPass, shutdown_event: asyncio.Event) -> None:
    """Run ``schedule`` until shutdown is requested.

    Args:
        schedule: The pass to run.
        shutdown_event: Event that ends the loop; also handed to the pass so
            it can stop between rows.
    """
    if not schedule.enabled:
        logger.info("Pass disabled: name=%s", schedule.name)
        return

    ctx = PassContext(shutdown_event=shutdown_event)
    logger.info(
        "Pass scheduled: name=%s, interval=%s, initial_delay=%s",
        schedule.name,
        schedule.interval,
        schedule.initial_delay,
    )

    if await wait_for_shutdown(shutdown_event, schedule.initial_delay):
        return
    if not schedule.run_on_start:
        if schedule.interval is None:
            return
        if await wait_for_shutdown(shutdown_event, schedule.interval):
            return

    while not shutdown_event.is_set():
        await run_once(schedule, ctx)
        if schedule.interval is None:
            break
        if await wait_for_shutdown(shutdown_event, schedule.interval):
            break

    logger.info("Pass loop stopped: name=%s, runs=%d", schedule.name, schedule.runs)
