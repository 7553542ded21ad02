"""FileNest worker service entry point.

This module provides the main Worker class that:
- Builds the async engine and one session per pass
- Runs the expiry, reminder and start-up integrity passes on their schedules
- Handles graceful shutdown via SIGTERM/SIGINT
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, NoReturn

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from filenest.db import create_engine_from_settings
from filenest.services.notifier import EmailNotifier
from filenest.worker.handlers import (
    expiry_pass_handler,
    integrity_fix_handler,
    reminder_pass_handler,
)
from filenest.worker.scheduler import ScheduledPass, run_periodic

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from filenest.core.config import Settings
    from filenest.services.context import PassContext
    from filenest.services.notifier import Notifier

logger = logging.getLogger(__name__)


@dataclass
class WorkerConfig:
    """Schedule configuration for the worker process.

    Attributes:
        worker_id: Identifier used in logs.
        expiry_interval: Time between expiry passes.
        reminder_interval: Time between reminder passes.
        reminder_startup_delay: Wait before the first reminder pass.
        reminders_enabled: Whether reminder passes run at all.
        integrity_on_startup: Run the integrity repair once at start.
        shutdown_timeout: Seconds to wait for in-flight passes on shutdown.
    """

    worker_id: str = field(default_factory=lambda: f"worker-{uuid.uuid4().hex[:8]}")
    expiry_interval: timedelta = timedelta(hours=24)
    reminder_interval: timedelta = timedelta(hours=12)
    reminder_startup_delay: timedelta = timedelta(seconds=60)
    reminders_enabled: bool = True
    integrity_on_startup: bool = True
    shutdown_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkerConfig:
        reconciler = settings.reconciler
        return cls(
            expiry_interval=reconciler.expiry_interval,
            reminder_interval=reconciler.reminder_interval,
            reminder_startup_delay=timedelta(seconds=reconciler.reminder_startup_delay_seconds),
            reminders_enabled=reconciler.reminders_enabled,
            integrity_on_startup=reconciler.integrity_on_startup,
            shutdown_timeout=reconciler.shutdown_timeout,
        )


class Worker:
    """Background worker running the reconciliation passes.

    Example:
        worker = Worker(get_settings())
        await worker.start()
    """

    def __init__(
        self,
        settings: Settings,
        config: WorkerConfig | None = None,
        *,
        notifier: Notifier | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            settings: Application settings.
            config: Schedule configuration; derived from settings if omitted.
            notifier: Notification sender; SMTP from settings if omitted.
            session_factory: Session factory; an engine is created on start
                if omitted.
        """
        self.settings = settings
        self.config = config or WorkerConfig.from_settings(settings)
        self.notifier = notifier or EmailNotifier(settings.smtp, app_name=settings.app_name)
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = None
        self._shutdown_event = asyncio.Event()
        self._started_at: datetime | None = None
        self.schedules = self.build_schedules()

    def build_schedules(self) -> list[ScheduledPass]:
        """The passes this worker runs, in start order."""
        return [
            ScheduledPass(
                name="integrity",
                runner=self._integrity_pass,
                interval=None,
                enabled=self.config.integrity_on_startup,
            ),
            ScheduledPass(
                name="expiry",
                runner=self._expiry_pass,
                interval=self.config.expiry_interval,
            ),
            ScheduledPass(
                name="reminders",
                runner=self._reminder_pass,
                interval=self.config.reminder_interval,
                initial_delay=self.config.reminder_startup_delay,
                enabled=self.config.reminders_enabled,
            ),
        ]

    async def start(self) -> None:
        """Start the worker and run the passes until stop() is called."""
        self._started_at = datetime.now(UTC)
        logger.info(
            "Worker starting: worker_id=%s, policy_hash=%s",
            self.config.worker_id,
            self.settings.get_policy_hash()[:16],
        )

        if self._session_factory is None:
            self._engine = create_engine_from_settings(self.settings.database)
            self._session_factory = async_sessionmaker(
                self._engine,
                expire_on_commit=False,
            )

        try:
            await asyncio.gather(
                *(run_periodic(schedule, self._shutdown_event) for schedule in self.schedules)
            )
        finally:
            if self._engine:
                await self._engine.dispose()

            logger.info(
                "Worker stopped: worker_id=%s, runs=%s, failures=%s, uptime=%s",
                self.config.worker_id,
                {s.name: s.runs for s in self.schedules},
                {s.name: s.failures for s in self.schedules},
                self._get_uptime(),
            )

    async def stop(self) -> None:
        """Request graceful shutdown; passes stop between rows."""
        logger.info("Worker shutdown requested: worker_id=%s", self.config.worker_id)
        self._shutdown_event.set()

    async def _expiry_pass(self, ctx: PassContext) -> dict[str, Any]:
        async with self._session_factory() as session:
            return await expiry_pass_handler(session, self.settings, self.notifier, ctx)

    async def _reminder_pass(self, ctx: PassContext) -> dict[str, Any]:
        async with self._session_factory() as session:
            return await reminder_pass_handler(session, self.settings, self.notifier, ctx)

    async def _integrity_pass(self, ctx: PassContext) -> dict[str, Any]:
        async with self._session_factory() as session:
            return await integrity_fix_handler(session, ctx)

    def _get_uptime(self) -> str:
        """Calculate worker uptime as a human-readable string."""
        if self._started_at is None:
            return "0s"
        delta = datetime.now(UTC) - self._started_at
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        minutes, seconds = divmod(remainder, 60)
        if hours > 0:
            return f"{hours}h {minutes}m {seconds}s"
        if minutes > 0:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"


# Shutdown event and its loop, set once the worker loop is running
_shutdown_event: asyncio.Event | None = None
_shutdown_loop: asyncio.AbstractEventLoop | None = None


def _handle_shutdown(signum: int, _frame: object) -> None:
    """Handle shutdown signals gracefully."""
    logger.info("Shutdown signal received (signal=%d)", signum)
    if _shutdown_event is not None and _shutdown_loop is not None:
        _shutdown_loop.call_soon_threadsafe(_shutdown_event.set)


async def _async_main(settings: Settings, shutdown_event: asyncio.Event) -> None:
    """Async entry point for the worker.

    Args:
        settings: Application settings.
        shutdown_event: Event to signal shutdown request.
    """
    worker = Worker(settings)
    worker_task = asyncio.create_task(worker.start())

    # Either a signal arrives or every pass loop finishes on its own
    waiter = asyncio.create_task(shutdown_event.wait())
    await asyncio.wait({worker_task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    waiter.cancel()

    await worker.stop()

    try:
        await asyncio.wait_for(worker_task, timeout=worker.config.shutdown_timeout)
    except TimeoutError:
        logger.warning("Worker did not stop within timeout, forcing shutdown")
        worker_task.cancel()


def run() -> NoReturn:
    """Run the worker process.

    This is the main entry point for the worker. It:
    - Sets up logging
    - Loads settings (exits on invalid configuration)
    - Registers signal handlers for graceful shutdown
    - Runs the pass loops until a signal arrives
    """
    from filenest.core.settings import get_settings

    log_level = os.environ.get("FILENEST_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level)

    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    logger.info("FileNest worker starting...")

    async def _run_with_event() -> None:
        global _shutdown_event, _shutdown_loop
        _shutdown_loop = asyncio.get_running_loop()
        _shutdown_event = asyncio.Event()
        await _async_main(settings, _shutdown_event)

    try:
        asyncio.run(_run_with_event())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    except Exception as e:
        logger.exception("Worker failed: %s", e)
        sys.exit(1)

    logger.info("FileNest worker shutdown complete")
    sys.exit(0)


if __name__ == "__main__":
    run()
