"""Expiry pass handler."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from filenest.services.context import NO_STOP, PassContext
from filenest.services.expiry import ExpiryReconciler
from filenest.services.repository import RequestRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from filenest.core.config import Settings
    from filenest.services.notifier import Notifier


async def expiry_pass_handler(
    session: AsyncSession,
    settings: Settings,
    notifier: Notifier,
    ctx: PassContext = NO_STOP,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run one expiry pass.

    Args:
        session: Database session for the pass.
        settings: Application settings (frontend URL, warning window).
        notifier: Sends the expiry warnings.
        ctx: Cancellation handle.
        now: Reference time; defaults to the current UTC time.

    Returns:
        Pass summary with expired, warned and failed counts.
    """
    now = now or datetime.now(UTC)
    reconciler = ExpiryReconciler(
        RequestRepository(session),
        notifier,
        settings.frontend_url,
        warning_window=settings.reconciler.expiry_warning_window,
    )
    result = await reconciler.run_pass(now, ctx)
    return {**result.to_dict(), "checked_at": now.isoformat()}
