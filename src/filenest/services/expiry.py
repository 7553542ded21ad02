"""Expiry reconciliation for file requests.

Each pass recomputes the effective expiry of every active request from its
``created_at`` and the owner's current tier, deactivates the ones past it in
one guarded batch, and sends a best-effort warning for the ones inside the
warning window.

The effective expiry never reads the stored ``expires_at``: a tier change
after creation moves the expiry of existing requests with it.

There is no watermark for the warning, so a request inside the window is
warned again on every pass until it expires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from filenest.services.admission import UNAVAILABLE_ERRORS, resolve_tier
from filenest.services.context import NO_STOP, PassContext
from filenest.services.notifier import TemplateKind, hash_email
from filenest.services.requests import build_upload_link
from filenest.services.tier_policy import limits_for

if TYPE_CHECKING:
    from uuid import UUID

    from filenest.db.models.base import SubscriptionTier
    from filenest.db.models.requests import FileRequest
    from filenest.services.notifier import Notifier
    from filenest.services.repository import RequestRepository

logger = logging.getLogger(__name__)

DEFAULT_WARNING_WINDOW = timedelta(hours=24)


class ExpiryClass(str, Enum):
    """Where a request stands relative to its effective expiry."""

    ACTIVE = "active"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


def effective_expiry(created_at: datetime, tier: SubscriptionTier | str | None) -> datetime:
    """Expiry of a request created at ``created_at`` under ``tier``."""
    return created_at + limits_for(tier).lifetime


def classify(
    expiry: datetime,
    now: datetime,
    warning_window: timedelta = DEFAULT_WARNING_WINDOW,
) -> ExpiryClass:
    """Classify a request by its effective expiry.

    Returns:
        EXPIRED when ``now`` is strictly after ``expiry``; EXPIRING_SOON when
        ``expiry - warning_window < now <= expiry``; ACTIVE otherwise.
    """
    if now > expiry:
        return ExpiryClass.EXPIRED
    if now > expiry - warning_window:
        return ExpiryClass.EXPIRING_SOON
    return ExpiryClass.ACTIVE


@dataclass(slots=True)
class ExpiryPassResult:
    """Outcome of one expiry pass.

    Attributes:
        checked: Active requests examined.
        expired_ids: Requests deactivated by this pass.
        warned_ids: Requests whose expiry warning was accepted by the notifier.
        failed_ids: Requests skipped because of an error.
        stopped: True when the pass ended early on shutdown.
    """

    checked: int = 0
    expired_ids: list[UUID] = field(default_factory=list)
    warned_ids: list[UUID] = field(default_factory=list)
    failed_ids: list[UUID] = field(default_factory=list)
    stopped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked": self.checked,
            "expired_count": len(self.expired_ids),
            "warned_count": len(self.warned_ids),
            "failed_count": len(self.failed_ids),
            "expired_ids": [str(i) for i in self.expired_ids],
            "stopped": self.stopped,
        }


class ExpiryReconciler:
    """Deactivates requests past their tier lifetime and warns before it.

    Example:
        reconciler = ExpiryReconciler(RequestRepository(session), notifier, frontend_url)
        result = await reconciler.run_pass(datetime.now(UTC))
    """

    def __init__(
        self,
        repository: RequestRepository,
        notifier: Notifier,
        frontend_url: str,
        warning_window: timedelta = DEFAULT_WARNING_WINDOW,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.frontend_url = frontend_url
        self.warning_window = warning_window

    async def run_pass(self, now: datetime, ctx: PassContext = NO_STOP) -> ExpiryPassResult:
        """Run one expiry pass at ``now``.

        Listing failures propagate; everything after that is handled per row.

        Args:
            now: Reference time of the pass.
            ctx: Cancellation handle checked between rows.

        Returns:
            Summary of the pass.
        """
        result = ExpiryPassResult()
        requests = await self.repository.list_active_requests()

        expired: list[FileRequest] = []
        expiring: list[tuple[FileRequest, datetime]] = []
        tiers: dict[UUID | None, SubscriptionTier] = {}

        for request in requests:
            if ctx.should_stop:
                result.stopped = True
                break
            result.checked += 1
            try:
                if request.user_id not in tiers:
                    tiers[request.user_id] = await resolve_tier(self.repository, request.user_id)
                expiry = effective_expiry(request.created_at, tiers[request.user_id])
            except Exception:
                logger.exception("Failed to resolve expiry: request_id=%s", request.request_id)
                result.failed_ids.append(request.request_id)
                continue

            state = classify(expiry, now, self.warning_window)
            if state == ExpiryClass.EXPIRED:
                expired.append(request)
            elif state == ExpiryClass.EXPIRING_SOON:
                expiring.append((request, expiry))

        if expired:
            await self._deactivate(expired, result)

        for request, expiry in expiring:
            if ctx.should_stop:
                result.stopped = True
                break
            await self._warn(request, expiry, result)

        logger.info(
            "Expiry pass complete: checked=%d, expired=%d, warned=%d, failed=%d",
            result.checked,
            len(result.expired_ids),
            len(result.warned_ids),
            len(result.failed_ids),
        )
        return result

    async def _deactivate(self, expired: list[FileRequest], result: ExpiryPassResult) -> None:
        ids = [request.request_id for request in expired]
        try:
            changed = await self.repository.update_requests_inactive(ids)
        except UNAVAILABLE_ERRORS:
            logger.exception("Failed to deactivate expired requests: count=%d", len(ids))
            result.failed_ids.extend(ids)
            return

        result.expired_ids.extend(ids)
        if changed != len(ids):
            # Rows deactivated concurrently still count as expired
            logger.info("Deactivated %d of %d expired requests", changed, len(ids))
        logger.info("Expired requests: %s", [str(i) for i in ids[:10]])

    async def _warn(self, request: FileRequest, expiry: datetime, result: ExpiryPassResult) -> None:
        try:
            address = await self._warning_address(request)
            if address is None:
                logger.warning(
                    "No address for expiry warning: request_id=%s", request.request_id
                )
                return

            sent = await self.notifier.send(
                address,
                TemplateKind.EXPIRY_WARNING,
                {
                    "description": request.description,
                    "upload_link": build_upload_link(self.frontend_url, request.unique_link),
                    "expires_at": expiry,
                    "deadline": request.deadline,
                },
            )
        except Exception:
            logger.exception("Expiry warning failed: request_id=%s", request.request_id)
            result.failed_ids.append(request.request_id)
            return

        if sent:
            result.warned_ids.append(request.request_id)
            logger.info(
                "Expiry warning sent: request_id=%s, recipient_hash=%s",
                request.request_id,
                hash_email(address)[:16],
            )
        else:
            logger.warning("Expiry warning not delivered: request_id=%s", request.request_id)
            result.failed_ids.append(request.request_id)

    async def _warning_address(self, request: FileRequest) -> str | None:
        """Owner's email, falling back to the recipient email."""
        if request.user_id is not None:
            user = await self.repository.get_user(request.user_id)
            if user is not None and user.email:
                return user.email
        return request.recipient_email or None
