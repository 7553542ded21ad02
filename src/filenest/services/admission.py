"""Admission control for request creation and uploads.

Decides, synchronously to the creation path, whether an owner may create
another file request this calendar month, and whether a batch of files fits
a request's tier. Rejections are typed decisions, not exceptions; the HTTP
edge turns them into a 403 ``quota_exceeded`` body.

Repository failures fail closed: the decision is ``allowed=False`` with
reason ``UNAVAILABLE``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from filenest.db.models.base import SubscriptionTier
from filenest.services.tier_policy import (
    BYTES_PER_MB,
    Limits,
    coerce_tier,
    higher_tiers,
    limits_for,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from filenest.db.models.requests import FileRequest
    from filenest.services.repository import RequestRepository

logger = logging.getLogger(__name__)

# Errors that mean "could not decide" rather than "no"
UNAVAILABLE_ERRORS: tuple[type[BaseException], ...] = (SQLAlchemyError, OSError)


class AdmissionReason(str, Enum):
    """Why an admission decision came out the way it did."""

    ALLOWED = "allowed"
    QUOTA_EXCEEDED = "quota_exceeded"
    TOO_MANY_FILES = "too_many_files"
    FILE_TOO_LARGE = "file_too_large"
    STORAGE_EXCEEDED = "storage_exceeded"
    UNKNOWN_USER = "unknown_user"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class OwnerIdentity:
    """Who a new request is charged to.

    Either an authenticated ``user_id`` or, for the recipient-email flow, an
    ``email`` that is resolved through find-or-create.
    """

    user_id: UUID | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        if self.user_id is None and not self.email:
            msg = "OwnerIdentity needs a user_id or an email"
            raise ValueError(msg)


@dataclass(frozen=True, slots=True)
class AdmissionDecision:
    """Outcome of a request-creation admission check.

    Attributes:
        allowed: Whether the request may be created.
        limits: Limits of the resolved tier (None when undecidable).
        current_count: Requests already created this month.
        limit: Monthly request limit of the resolved tier.
        tier: Resolved subscription tier (None when undecidable).
        user_id: Resolved owner (None when undecidable).
        reason: Reason code.
        upgrade_available: True when a higher tier would admit the request.
    """

    allowed: bool
    limits: Limits | None
    current_count: int
    limit: int
    tier: SubscriptionTier | None
    user_id: UUID | None
    reason: AdmissionReason
    upgrade_available: bool = False


@dataclass(frozen=True, slots=True)
class UploadDecision:
    """Outcome of an upload admission check.

    ``limit``, ``current`` and ``needed`` are in megabytes (rounded to two
    decimals) for size reasons and in files for ``TOO_MANY_FILES``.
    """

    allowed: bool
    reason: AdmissionReason
    tier: SubscriptionTier | None
    limit: float = 0
    current: float = 0
    needed: float = 0
    upgrade_available: bool = False


def first_day_of_month(now: datetime) -> datetime:
    """Midnight UTC on the first day of ``now``'s calendar month."""
    now = now.astimezone(UTC)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def to_mb(size_bytes: int) -> float:
    return round(size_bytes / BYTES_PER_MB, 2)


async def resolve_tier(repository: RequestRepository, user_id: UUID | None) -> SubscriptionTier:
    """Tier of a user's active subscription.

    No user or no active subscription means FREE. Repository errors
    propagate to the caller.
    """
    if user_id is None:
        return SubscriptionTier.FREE
    subscription = await repository.find_subscription(user_id)
    if subscription is None:
        return SubscriptionTier.FREE
    return coerce_tier(subscription.tier)


class AdmissionController:
    """Quota checks in front of the creation and upload paths."""

    def __init__(self, repository: RequestRepository) -> None:
        self.repository = repository

    async def admit(self, owner: OwnerIdentity, now: datetime) -> AdmissionDecision:
        """Decide whether ``owner`` may create a request at ``now``.

        Args:
            owner: Authenticated user id, or email to find-or-create.
            now: Reference time; the month window is the UTC calendar month.

        Returns:
            The decision. Never raises for repository failures. An
            authenticated ``user_id`` with no user row is ``UNKNOWN_USER``.
        """
        try:
            user_id = owner.user_id
            if user_id is None:
                user, _ = await self.repository.find_or_create_user(owner.email)
                user_id = user.user_id
            elif await self.repository.get_user(user_id) is None:
                logger.info("Admission rejected, unknown user: user_id=%s", user_id)
                return AdmissionDecision(
                    allowed=False,
                    limits=None,
                    current_count=0,
                    limit=0,
                    tier=None,
                    user_id=user_id,
                    reason=AdmissionReason.UNKNOWN_USER,
                )

            tier = await resolve_tier(self.repository, user_id)
            limits = limits_for(tier)
            current_count = await self.repository.count_requests_since(
                user_id, first_day_of_month(now)
            )
        except UNAVAILABLE_ERRORS:
            logger.exception("Admission check failed, rejecting request creation")
            return AdmissionDecision(
                allowed=False,
                limits=None,
                current_count=0,
                limit=0,
                tier=None,
                user_id=owner.user_id,
                reason=AdmissionReason.UNAVAILABLE,
            )

        limit = limits.max_requests_per_month
        if current_count < limit:
            return AdmissionDecision(
                allowed=True,
                limits=limits,
                current_count=current_count,
                limit=limit,
                tier=tier,
                user_id=user_id,
                reason=AdmissionReason.ALLOWED,
            )

        upgrade_available = any(
            current_count < limits_for(higher).max_requests_per_month
            for higher in higher_tiers(tier)
        )
        logger.info(
            "Request quota exceeded: user_id=%s, tier=%s, count=%d, limit=%d",
            user_id,
            tier.value,
            current_count,
            limit,
        )
        return AdmissionDecision(
            allowed=False,
            limits=limits,
            current_count=current_count,
            limit=limit,
            tier=tier,
            user_id=user_id,
            reason=AdmissionReason.QUOTA_EXCEEDED,
            upgrade_available=upgrade_available,
        )

    async def admit_upload(
        self,
        request: FileRequest,
        incoming_sizes: Sequence[int],
    ) -> UploadDecision:
        """Decide whether a batch of files may be stored on ``request``.

        Checks, in order: batch file count, largest file size, and total
        stored plus incoming bytes against the owner's tier.

        Args:
            request: Target request.
            incoming_sizes: Byte size of each file in the batch.

        Returns:
            The decision. Never raises for repository failures.
        """
        try:
            tier = await resolve_tier(self.repository, request.user_id)
            stored = await self.repository.sum_file_sizes(request.request_id)
        except UNAVAILABLE_ERRORS:
            logger.exception(
                "Upload admission failed, rejecting upload: request_id=%s",
                request.request_id,
            )
            return UploadDecision(allowed=False, reason=AdmissionReason.UNAVAILABLE, tier=None)

        limits = limits_for(tier)
        higher = [limits_for(t) for t in higher_tiers(tier)]
        count = len(incoming_sizes)

        if count > limits.max_upload_files:
            return UploadDecision(
                allowed=False,
                reason=AdmissionReason.TOO_MANY_FILES,
                tier=tier,
                limit=limits.max_upload_files,
                current=count,
                needed=count,
                upgrade_available=any(count <= h.max_upload_files for h in higher),
            )

        largest = max(incoming_sizes, default=0)
        if largest > limits.max_file_size_mb * BYTES_PER_MB:
            return UploadDecision(
                allowed=False,
                reason=AdmissionReason.FILE_TOO_LARGE,
                tier=tier,
                limit=limits.max_file_size_mb,
                current=to_mb(largest),
                needed=to_mb(largest),
                upgrade_available=any(
                    largest <= h.max_file_size_mb * BYTES_PER_MB for h in higher
                ),
            )

        incoming = sum(incoming_sizes)
        if stored + incoming > limits.max_storage_mb * BYTES_PER_MB:
            logger.info(
                "Storage limit exceeded: request_id=%s, tier=%s, stored_mb=%s, needed_mb=%s",
                request.request_id,
                tier.value,
                to_mb(stored),
                to_mb(incoming),
            )
            return UploadDecision(
                allowed=False,
                reason=AdmissionReason.STORAGE_EXCEEDED,
                tier=tier,
                limit=limits.max_storage_mb,
                current=to_mb(stored),
                needed=to_mb(incoming),
                upgrade_available=any(
                    stored + incoming <= h.max_storage_mb * BYTES_PER_MB for h in higher
                ),
            )

        return UploadDecision(
            allowed=True,
            reason=AdmissionReason.ALLOWED,
            tier=tier,
            limit=limits.max_storage_mb,
            current=to_mb(stored),
            needed=to_mb(incoming),
        )
