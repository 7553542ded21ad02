"""Tests for the FileNest background worker.

Tests cover:
- WorkerConfig derived from settings
- Schedules built from reconciler flags
- Pass handlers wired to the reconcilers
- Start/stop lifecycle
- Uptime formatting
"""

from __future__ import annotations

import asyncio
import signal
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from filenest.core.config import ReconcilerSettings
from filenest.services.context import PassContext
from filenest.worker.handlers import (
    expiry_pass_handler,
    integrity_check_handler,
    integrity_fix_handler,
    reminder_pass_handler,
)
from filenest.worker import main as worker_main
from filenest.worker.main import Worker, WorkerConfig, _handle_shutdown
from tests.factories import T0, make_request


@pytest.fixture
def session_factory():
    """Session factory whose sessions are async context managers."""
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = MagicMock()
    return factory


@pytest.fixture
def worker(settings, notifier, session_factory) -> Worker:
    return Worker(settings, notifier=notifier, session_factory=session_factory)


class TestWorkerConfig:
    def test_defaults(self):
        config = WorkerConfig()

        assert config.worker_id.startswith("worker-")
        assert config.expiry_interval == timedelta(hours=24)
        assert config.reminder_interval == timedelta(hours=12)
        assert config.reminder_startup_delay == timedelta(seconds=60)
        assert config.shutdown_timeout == 30.0

    def test_worker_ids_are_unique(self):
        assert WorkerConfig().worker_id != WorkerConfig().worker_id

    def test_from_settings(self, settings):
        settings.reconciler = ReconcilerSettings(
            expiry_interval_hours=6,
            reminder_interval_hours=3,
            reminder_startup_delay_seconds=5,
            reminders_enabled=False,
            integrity_on_startup=False,
        )

        config = WorkerConfig.from_settings(settings)

        assert config.expiry_interval == timedelta(hours=6)
        assert config.reminder_interval == timedelta(hours=3)
        assert config.reminder_startup_delay == timedelta(seconds=5)
        assert config.reminders_enabled is False
        assert config.integrity_on_startup is False


class TestBuildSchedules:
    def test_default_schedules(self, worker):
        schedules = {s.name: s for s in worker.schedules}

        assert list(schedules) == ["integrity", "expiry", "reminders"]
        assert schedules["integrity"].interval is None
        assert schedules["expiry"].interval == timedelta(hours=24)
        assert schedules["expiry"].initial_delay == timedelta(0)
        assert schedules["reminders"].interval == timedelta(hours=12)
        assert schedules["reminders"].initial_delay == timedelta(seconds=60)
        assert all(s.enabled for s in worker.schedules)

    def test_flags_disable_passes(self, settings, notifier, session_factory):
        config = WorkerConfig(reminders_enabled=False, integrity_on_startup=False)

        worker = Worker(settings, config, notifier=notifier, session_factory=session_factory)
        enabled = {s.name: s.enabled for s in worker.schedules}

        assert enabled == {"integrity": False, "expiry": True, "reminders": False}


class TestPassDelegation:
    @pytest.mark.asyncio
    @patch("filenest.worker.main.expiry_pass_handler", new_callable=AsyncMock)
    async def test_expiry_pass_opens_session(self, mock_handler, worker, session_factory):
        mock_handler.return_value = {"expired_count": 0}
        ctx = PassContext()

        result = await worker._expiry_pass(ctx)

        assert result == {"expired_count": 0}
        session = session_factory.return_value.__aenter__.return_value
        mock_handler.assert_awaited_once_with(session, worker.settings, worker.notifier, ctx)

    @pytest.mark.asyncio
    @patch("filenest.worker.main.reminder_pass_handler", new_callable=AsyncMock)
    async def test_reminder_pass(self, mock_handler, worker):
        mock_handler.return_value = {"sent_count": 1}

        assert await worker._reminder_pass(PassContext()) == {"sent_count": 1}

    @pytest.mark.asyncio
    @patch("filenest.worker.main.integrity_fix_handler", new_callable=AsyncMock)
    async def test_integrity_pass(self, mock_handler, worker):
        mock_handler.return_value = {"linked_count": 0}

        assert await worker._integrity_pass(PassContext()) == {"linked_count": 0}


class TestHandlers:
    """Handlers build the reconciler over a repository bound to the session."""

    @pytest.mark.asyncio
    async def test_expiry_handler(self, settings, repository, notifier):
        request = make_request(created_at=T0 - timedelta(days=8))
        repository.add(request)

        with patch("filenest.worker.handlers.expiry.RequestRepository", return_value=repository):
            result = await expiry_pass_handler(MagicMock(), settings, notifier, now=T0)

        assert result["expired_count"] == 1
        assert result["expired_ids"] == [str(request.request_id)]
        assert result["checked_at"] == T0.isoformat()

    @pytest.mark.asyncio
    async def test_reminder_handler(self, settings, repository, notifier):
        repository.add(make_request())

        with patch(
            "filenest.worker.handlers.reminders.RequestRepository", return_value=repository
        ):
            result = await reminder_pass_handler(MagicMock(), settings, notifier, now=T0)

        assert result["sent_count"] == 1
        args = repository.calls_to("list_pending_requests_nearing_deadline")[0]
        assert args == (T0, timedelta(hours=48), T0 - timedelta(hours=12))

    @pytest.mark.asyncio
    async def test_integrity_handlers(self, repository):
        repository.add(make_request(recipient_email="x@example.com"))

        with patch(
            "filenest.worker.handlers.integrity.RequestRepository", return_value=repository
        ):
            report = await integrity_check_handler(MagicMock())
            fixed = await integrity_fix_handler(MagicMock())

        assert report["orphaned_requests"] == 1
        assert fixed["linked_count"] == 1
        assert fixed["users_created"] == 1


class TestWorkerLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_passes_until_stop(self, settings, notifier, session_factory):
        config = WorkerConfig(
            expiry_interval=timedelta(hours=1),
            reminders_enabled=False,
        )
        worker = Worker(settings, config, notifier=notifier, session_factory=session_factory)

        with (
            patch("filenest.worker.main.expiry_pass_handler", new_callable=AsyncMock) as expiry,
            patch("filenest.worker.main.integrity_fix_handler", new_callable=AsyncMock) as fix,
        ):
            expiry.return_value = {}
            fix.return_value = {}
            task = asyncio.create_task(worker.start())
            await asyncio.sleep(0.05)
            await worker.stop()
            await asyncio.wait_for(task, 1)

        expiry.assert_awaited_once()
        fix.assert_awaited_once()
        runs = {s.name: s.runs for s in worker.schedules}
        assert runs == {"integrity": 1, "expiry": 1, "reminders": 0}

    @pytest.mark.asyncio
    async def test_stop_sets_shutdown_event(self, worker):
        await worker.stop()

        assert worker._shutdown_event.is_set()


class TestSignalHandling:
    @pytest.mark.asyncio
    async def test_sigterm_sets_shutdown_event(self, monkeypatch):
        event = asyncio.Event()
        monkeypatch.setattr(worker_main, "_shutdown_event", event)
        monkeypatch.setattr(worker_main, "_shutdown_loop", asyncio.get_running_loop())

        _handle_shutdown(signal.SIGTERM, None)
        await asyncio.wait_for(event.wait(), 1)

        assert event.is_set()

    def test_signal_before_loop_starts_is_ignored(self, monkeypatch):
        monkeypatch.setattr(worker_main, "_shutdown_event", None)
        monkeypatch.setattr(worker_main, "_shutdown_loop", None)

        _handle_shutdown(signal.SIGINT, None)


class TestWorkerUptime:
    def test_not_started(self, worker):
        assert worker._get_uptime() == "0s"

    def test_seconds(self, worker):
        worker._started_at = datetime.now(UTC) - timedelta(seconds=30)
        assert worker._get_uptime() in ("30s", "31s")

    def test_minutes(self, worker):
        worker._started_at = datetime.now(UTC) - timedelta(minutes=5, seconds=10)
        assert worker._get_uptime().startswith("5m")

    def test_hours(self, worker):
        worker._started_at = datetime.now(UTC) - timedelta(hours=2, minutes=3)
        assert worker._get_uptime().startswith("2h 3m")
