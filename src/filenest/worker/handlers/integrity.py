"""Integrity check and repair handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from filenest.services.context import NO_STOP, PassContext
from filenest.services.integrity import IntegrityReconciler
from filenest.services.repository import RequestRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def integrity_check_handler(session: AsyncSession) -> dict[str, Any]:
    """Report orphaned requests and files without changing anything."""
    report = await IntegrityReconciler(RequestRepository(session)).check()
    return report.to_dict()


async def integrity_fix_handler(
    session: AsyncSession,
    ctx: PassContext = NO_STOP,
) -> dict[str, Any]:
    """Link orphaned requests to users by recipient email."""
    result = await IntegrityReconciler(RequestRepository(session)).fix(ctx)
    return result.to_dict()
