"""Reminder pass handler."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from filenest.services.context import NO_STOP, PassContext
from filenest.services.reminders import ReminderNotifier
from filenest.services.repository import RequestRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from filenest.core.config import Settings
    from filenest.services.notifier import Notifier


async def reminder_pass_handler(
    session: AsyncSession,
    settings: Settings,
    notifier: Notifier,
    ctx: PassContext = NO_STOP,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run one reminder pass.

    The reminder interval doubles as the per-request reminder period.

    Returns:
        Pass summary with selected, sent, skipped and failed counts.
    """
    now = now or datetime.now(UTC)
    notifier_pass = ReminderNotifier(
        RequestRepository(session),
        notifier,
        settings.frontend_url,
        lead_window=settings.reconciler.reminder_lead_window,
        period=settings.reconciler.reminder_interval,
    )
    result = await notifier_pass.run_pass(now, ctx)
    return {**result.to_dict(), "checked_at": now.isoformat()}
