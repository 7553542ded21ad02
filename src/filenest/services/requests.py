"""File request creation and public lookup.

Creation runs admission first and stamps the lifetime of the resolved tier:
``expires_at = created_at + expiry_days``. The stored ``expires_at`` is a
display value; the expiry reconciler recomputes the effective expiry from
``created_at`` on every pass.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from filenest.db.models.base import RequestStatus
from filenest.db.models.requests import FileRequest
from filenest.services.admission import AdmissionController, AdmissionReason
from filenest.services.repository import normalize_email

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from filenest.services.admission import AdmissionDecision, OwnerIdentity
    from filenest.services.repository import RequestRepository

logger = logging.getLogger(__name__)

# 9 random bytes encode to exactly 12 URL-safe characters
UNIQUE_LINK_BYTES = 9
MAX_LINK_ATTEMPTS = 3
UNIQUE_LINK_CONSTRAINT = "uq_file_requests_unique_link"


class RequestError(Exception):
    """Base exception for file request operations."""

    pass


class QuotaExceededError(RequestError):
    """Raised when admission rejects a new request."""

    def __init__(self, decision: AdmissionDecision) -> None:
        self.decision = decision
        if decision.reason == AdmissionReason.UNAVAILABLE:
            message = "Request quota could not be checked"
        else:
            message = (
                f"Monthly request limit reached ({decision.current_count}/{decision.limit})"
            )
        super().__init__(message)


class UnknownOwnerError(RequestError):
    """Raised when the owning user_id has no user row."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class RequestNotFoundError(RequestError):
    """Raised when no request matches a link."""

    def __init__(self, unique_link: str) -> None:
        self.unique_link = unique_link
        super().__init__(f"File request {unique_link} not found")


class RequestExpiredError(RequestError):
    """Raised when a request exists but is no longer accepting uploads."""

    def __init__(self, request_id: UUID, expires_at: datetime) -> None:
        self.request_id = request_id
        self.expires_at = expires_at
        super().__init__(f"File request {request_id} has expired")


def generate_unique_link() -> str:
    return secrets.token_urlsafe(UNIQUE_LINK_BYTES)


def is_link_collision(exc: IntegrityError) -> bool:
    """Whether an insert failed on the unique_link index."""
    diag = getattr(exc.orig, "diag", None)
    return getattr(diag, "constraint_name", None) == UNIQUE_LINK_CONSTRAINT


def build_upload_link(frontend_url: str, unique_link: str) -> str:
    """Public upload URL for a request."""
    return f"{frontend_url.rstrip('/')}/upload/{unique_link}"


async def create_file_request(
    repository: RequestRepository,
    owner: OwnerIdentity,
    description: str,
    now: datetime,
    *,
    recipient_email: str | None = None,
    deadline: datetime | None = None,
) -> FileRequest:
    """Create a file request charged to ``owner``.

    Args:
        repository: Data access gateway.
        owner: Authenticated user, or an email resolved via find-or-create.
        description: What the requester is asking for.
        now: Creation time.
        recipient_email: Address the upload reminders go to.
        deadline: Optional upload deadline.

    Returns:
        The inserted request.

    Raises:
        UnknownOwnerError: If ``owner.user_id`` names no user.
        QuotaExceededError: If admission rejects the request or cannot decide.
        IntegrityError: If the insert violates anything but the link index,
            or the link collides on every attempt.
    """
    decision = await AdmissionController(repository).admit(owner, now)
    if decision.reason == AdmissionReason.UNKNOWN_USER:
        raise UnknownOwnerError(decision.user_id)
    if not decision.allowed:
        raise QuotaExceededError(decision)

    if recipient_email:
        recipient_email = normalize_email(recipient_email)

    for attempt in range(1, MAX_LINK_ATTEMPTS + 1):
        request = FileRequest(
            user_id=decision.user_id,
            recipient_email=recipient_email,
            description=description,
            deadline=deadline,
            status=RequestStatus.PENDING,
            unique_link=generate_unique_link(),
            created_at=now,
            expires_at=now + decision.limits.lifetime,
            is_active=True,
        )
        try:
            await repository.add_request(request)
        except IntegrityError as exc:
            if not is_link_collision(exc) or attempt == MAX_LINK_ATTEMPTS:
                raise
            logger.warning("Unique link collision, retrying: attempt=%d", attempt)
            continue

        logger.info(
            "File request created: request_id=%s, user_id=%s, tier=%s, expires_at=%s",
            request.request_id,
            request.user_id,
            decision.tier.value,
            request.expires_at.isoformat(),
        )
        return request

    # Unreachable: the loop either returns or re-raises
    raise RuntimeError("unique link generation failed")


async def get_active_request_by_link(
    repository: RequestRepository,
    unique_link: str,
    now: datetime,
) -> FileRequest:
    """Look up a request for the public upload page.

    Raises:
        RequestNotFoundError: If no request has this link.
        RequestExpiredError: If the request is inactive or past ``expires_at``.
    """
    request = await repository.get_request_by_link(unique_link)
    if request is None:
        raise RequestNotFoundError(unique_link)
    if not request.is_active or request.expires_at <= now:
        raise RequestExpiredError(request.request_id, request.expires_at)
    return request
