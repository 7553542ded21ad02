"""Tests for worker pass scheduling.

Tests cover:
- Interruptible waits
- Failure absorption and run counters
- Run-once, disabled and delayed schedules
- Sequential runs until shutdown
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from filenest.services.context import PassContext
from filenest.worker.scheduler import (
    ScheduledPass,
    run_once,
    run_periodic,
    wait_for_shutdown,
)


def _schedule(runner, interval=timedelta(milliseconds=5), **kwargs) -> ScheduledPass:
    return ScheduledPass(name="test", runner=runner, interval=interval, **kwargs)


class TestScheduledPass:
    def test_defaults(self):
        schedule = _schedule(AsyncMock())

        assert schedule.enabled is True
        assert schedule.run_on_start is True
        assert schedule.initial_delay == timedelta(0)
        assert schedule.next_due() is None

    @pytest.mark.asyncio
    async def test_next_due_after_run(self):
        schedule = _schedule(AsyncMock(return_value={}), interval=timedelta(hours=12))

        await run_once(schedule, PassContext())

        assert schedule.next_due() == schedule.last_run + timedelta(hours=12)

    def test_run_once_schedule_has_no_next_due(self):
        assert _schedule(AsyncMock(), interval=None).next_due() is None


class TestWaitForShutdown:
    @pytest.mark.asyncio
    async def test_returns_immediately_when_set(self):
        event = asyncio.Event()
        event.set()

        assert await asyncio.wait_for(wait_for_shutdown(event, timedelta(hours=1)), 1) is True

    @pytest.mark.asyncio
    async def test_times_out_when_not_set(self):
        assert await wait_for_shutdown(asyncio.Event(), timedelta(milliseconds=5)) is False

    @pytest.mark.asyncio
    async def test_zero_delay(self):
        assert await wait_for_shutdown(asyncio.Event(), timedelta(0)) is False


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_success_counts_run(self):
        runner = AsyncMock(return_value={"expired_count": 2})
        schedule = _schedule(runner)

        result = await run_once(schedule, PassContext())

        assert result == {"expired_count": 2}
        assert schedule.runs == 1
        assert schedule.failures == 0
        assert schedule.last_run is not None

    @pytest.mark.asyncio
    async def test_failure_is_absorbed(self, caplog):
        schedule = _schedule(AsyncMock(side_effect=RuntimeError("boom")))

        result = await run_once(schedule, PassContext())

        assert result is None
        assert schedule.runs == 0
        assert schedule.failures == 1
        assert "Pass failed" in caplog.text


class TestRunPeriodic:
    @pytest.mark.asyncio
    async def test_disabled_never_runs(self):
        runner = AsyncMock()

        await run_periodic(_schedule(runner, enabled=False), asyncio.Event())

        runner.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_once_schedule(self):
        runner = AsyncMock(return_value={})

        await asyncio.wait_for(run_periodic(_schedule(runner, interval=None), asyncio.Event()), 1)

        runner.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runs_until_shutdown(self):
        event = asyncio.Event()
        calls = 0

        async def runner(ctx: PassContext):
            nonlocal calls
            calls += 1
            if calls == 3:
                event.set()
            return {}

        await asyncio.wait_for(run_periodic(_schedule(runner), event), 1)

        assert calls == 3

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_loop(self):
        event = asyncio.Event()
        calls = 0

        async def runner(ctx: PassContext):
            nonlocal calls
            calls += 1
            if calls == 2:
                event.set()
            raise RuntimeError("transient")

        schedule = _schedule(runner)
        await asyncio.wait_for(run_periodic(schedule, event), 1)

        assert schedule.failures == 2

    @pytest.mark.asyncio
    async def test_shutdown_during_initial_delay(self):
        runner = AsyncMock()
        event = asyncio.Event()
        event.set()

        await asyncio.wait_for(
            run_periodic(_schedule(runner, initial_delay=timedelta(hours=1)), event), 1
        )

        runner.assert_not_called()

    @pytest.mark.asyncio
    async def test_initial_delay_is_waited(self):
        event = asyncio.Event()
        runner = AsyncMock(side_effect=lambda ctx: event.set())

        task = asyncio.create_task(
            run_periodic(_schedule(runner, initial_delay=timedelta(milliseconds=50)), event)
        )
        await asyncio.sleep(0.01)
        assert runner.await_count == 0

        await asyncio.wait_for(task, 1)
        runner.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_on_start_false_waits_one_interval(self):
        event = asyncio.Event()
        runner = AsyncMock()

        task = asyncio.create_task(
            run_periodic(
                _schedule(runner, interval=timedelta(hours=1), run_on_start=False), event
            )
        )
        await asyncio.sleep(0.01)
        event.set()
        await asyncio.wait_for(task, 1)

        runner.assert_not_called()

    @pytest.mark.asyncio
    async def test_context_reflects_shutdown(self):
        event = asyncio.Event()
        seen: list[bool] = []

        async def runner(ctx: PassContext):
            seen.append(ctx.should_stop)
            event.set()
            seen.append(ctx.should_stop)

        await asyncio.wait_for(run_periodic(_schedule(runner), event), 1)

        assert seen == [False, True]
