"""Admin API router.

Operator endpoints, all behind the X-API-Key admin key:
- GET /admin/integrity: report orphaned requests and files
- POST /admin/integrity/fix: link orphaned requests to users
- POST /admin/passes/expiry: run one expiry pass now
- POST /admin/passes/reminders: run one reminder pass now
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from filenest.api.dependencies import AppNotifier, AppSettings, Repository
from filenest.api.middleware.auth import require_admin_key
from filenest.api.schemas.admin import (
    IntegrityFixResponse,
    IntegrityReportResponse,
    PassRunResponse,
)
from filenest.services.expiry import ExpiryReconciler
from filenest.services.integrity import IntegrityReconciler
from filenest.services.reminders import ReminderNotifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin_key)],
    responses={401: {"description": "Admin API key required"}},
)


@router.get("/integrity", response_model=IntegrityReportResponse)
async def integrity_check(repository: Repository) -> IntegrityReportResponse:
    """Report integrity anomalies without changing anything."""
    report = await IntegrityReconciler(repository).check()
    return IntegrityReportResponse(**report.to_dict())


@router.post("/integrity/fix", response_model=IntegrityFixResponse)
async def integrity_fix(repository: Repository) -> IntegrityFixResponse:
    """Link orphaned requests to users by recipient email."""
    logger.info("Integrity fix requested via admin API")
    result = await IntegrityReconciler(repository).fix()
    return IntegrityFixResponse(**result.to_dict())


@router.post("/passes/expiry", response_model=PassRunResponse)
async def run_expiry_pass(
    repository: Repository,
    notifier: AppNotifier,
    settings: AppSettings,
) -> PassRunResponse:
    """Run one expiry pass immediately."""
    reconciler = ExpiryReconciler(
        repository,
        notifier,
        settings.frontend_url,
        warning_window=settings.reconciler.expiry_warning_window,
    )
    result = await reconciler.run_pass(datetime.now(UTC))
    return PassRunResponse(name="expiry", result=result.to_dict())


@router.post("/passes/reminders", response_model=PassRunResponse)
async def run_reminder_pass(
    repository: Repository,
    notifier: AppNotifier,
    settings: AppSettings,
) -> PassRunResponse:
    """Run one reminder pass immediately, even if scheduled reminders are disabled."""
    reminders = ReminderNotifier(
        repository,
        notifier,
        settings.frontend_url,
        lead_window=settings.reconciler.reminder_lead_window,
        period=settings.reconciler.reminder_interval,
    )
    result = await reminders.run_pass(datetime.now(UTC))
    return PassRunResponse(name="reminders", result=result.to_dict())
