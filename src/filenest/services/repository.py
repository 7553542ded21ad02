"""Repository: the reconcilers' only gateway to persisted entities.

List reads return detached ORM rows; every write is a single guarded UPDATE or
INSERT committed on its own, so a pass interrupted between rows never
leaves a partially written row behind. The guards make each write safe to
repeat:

- ``is_active`` only moves true -> false
- ``user_id`` only moves null -> value
- ``last_reminder_sent_at`` is a watermark and may be overwritten
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from filenest.db.models.base import RequestStatus
from filenest.db.models.requests import FileRequest, UploadedFile
from filenest.db.models.users import Subscription, User

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime, timedelta
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_Row = TypeVar("_Row", FileRequest, UploadedFile)


def normalize_email(email: str) -> str:
    """Canonical form used for the unique email index."""
    return email.strip().lower()


class RequestRepository:
    """Entity-shaped reads and writes over an AsyncSession.

    Attributes:
        session: SQLAlchemy async session. Writes commit it.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # -------------------------------------------------------------------------
    # File requests
    # -------------------------------------------------------------------------

    async def list_active_requests(self) -> list[FileRequest]:
        """All requests that have not been expired yet."""
        stmt = (
            select(FileRequest)
            .where(FileRequest.is_active.is_(True))
            .order_by(FileRequest.created_at)
        )
        result = await self.session.execute(stmt)
        return self._detach(result.scalars().all())

    async def list_pending_requests_nearing_deadline(
        self,
        now: datetime,
        window: timedelta,
        reminded_before: datetime | None = None,
    ) -> list[FileRequest]:
        """Requests that should get an upload reminder.

        A request qualifies when it is pending, active, not past its stored
        ``expires_at``, and either has no deadline or a deadline before
        ``now + window``.

        Args:
            now: Reference time of the pass.
            window: Reminder lead window.
            reminded_before: When set, also exclude rows whose
                ``last_reminder_sent_at`` is later than this instant.

        Returns:
            Matching requests, oldest first.
        """
        conditions = [
            FileRequest.status == RequestStatus.PENDING,
            FileRequest.is_active.is_(True),
            FileRequest.expires_at > now,
            or_(FileRequest.deadline.is_(None), FileRequest.deadline < now + window),
        ]
        if reminded_before is not None:
            conditions.append(
                or_(
                    FileRequest.last_reminder_sent_at.is_(None),
                    FileRequest.last_reminder_sent_at <= reminded_before,
                )
            )

        stmt = select(FileRequest).where(*conditions).order_by(FileRequest.created_at)
        result = await self.session.execute(stmt)
        return self._detach(result.scalars().all())

    async def list_orphaned_requests(self) -> list[FileRequest]:
        """Requests without an owning user."""
        stmt = (
            select(FileRequest)
            .where(FileRequest.user_id.is_(None))
            .order_by(FileRequest.created_at)
        )
        result = await self.session.execute(stmt)
        return self._detach(result.scalars().all())

    async def get_request_by_link(self, unique_link: str) -> FileRequest | None:
        stmt = select(FileRequest).where(FileRequest.unique_link == unique_link)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_requests_since(self, user_id: UUID, since: datetime) -> int:
        """Count requests created by ``user_id`` at or after ``since``."""
        stmt = select(func.count(FileRequest.request_id)).where(
            FileRequest.user_id == user_id,
            FileRequest.created_at >= since,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def add_request(self, request: FileRequest) -> FileRequest:
        """Insert a new request and commit."""
        self.session.add(request)
        await self._commit()
        return request

    async def update_request_active(self, request_id: UUID, is_active: bool) -> bool:
        """Deactivate one request.

        Args:
            request_id: Request to update.
            is_active: Must be False; requests are never reactivated.

        Returns:
            True if the row changed, False if it was already inactive.

        Raises:
            ValueError: If asked to reactivate a request.
        """
        if is_active:
            msg = "Requests are never reactivated"
            raise ValueError(msg)
        return await self.update_requests_inactive([request_id]) == 1

    async def update_requests_inactive(self, request_ids: Sequence[UUID]) -> int:
        """Batch-deactivate requests that are still active.

        Returns:
            Number of rows that changed.
        """
        if not request_ids:
            return 0
        stmt = (
            update(FileRequest)
            .where(
                FileRequest.request_id.in_(list(request_ids)),
                FileRequest.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self._commit()
        return result.rowcount or 0

    async def update_request_last_reminder(self, request_id: UUID, sent_at: datetime) -> None:
        """Record the reminder watermark."""
        stmt = (
            update(FileRequest)
            .where(FileRequest.request_id == request_id)
            .values(last_reminder_sent_at=sent_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        await self._commit()

    async def update_request_owner(self, request_id: UUID, user_id: UUID) -> bool:
        """Link an orphaned request to a user.

        Only rows whose ``user_id`` is still null are touched, so a value set
        concurrently by the creation path is never overwritten.

        Returns:
            True if the request was linked by this call.
        """
        stmt = (
            update(FileRequest)
            .where(
                FileRequest.request_id == request_id,
                FileRequest.user_id.is_(None),
            )
            .values(user_id=user_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self._commit()
        return (result.rowcount or 0) == 1

    # -------------------------------------------------------------------------
    # Uploaded files
    # -------------------------------------------------------------------------

    async def list_orphaned_files(self) -> list[UploadedFile]:
        """Files with no request, or pointing at a request that does not exist."""
        stmt = (
            select(UploadedFile)
            .outerjoin(FileRequest, UploadedFile.request_id == FileRequest.request_id)
            .where(
                or_(
                    UploadedFile.request_id.is_(None),
                    FileRequest.request_id.is_(None),
                )
            )
            .order_by(UploadedFile.uploaded_at)
        )
        result = await self.session.execute(stmt)
        return self._detach(result.scalars().all())

    async def sum_file_sizes(self, request_id: UUID) -> int:
        """Total stored bytes for a request."""
        stmt = select(func.coalesce(func.sum(UploadedFile.file_size), 0)).where(
            UploadedFile.request_id == request_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    # -------------------------------------------------------------------------
    # Users and subscriptions
    # -------------------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def find_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(self, email: str) -> User:
        """Insert a user and commit.

        Raises:
            IntegrityError: If a user with this email already exists.
        """
        user = User(email=normalize_email(email))
        self.session.add(user)
        await self._commit()
        logger.info("Created user: user_id=%s", user.user_id)
        return user

    async def find_or_create_user(self, email: str) -> tuple[User, bool]:
        """Resolve the user for an email, creating it if needed.

        The insert runs inside a savepoint backed by the unique email index.
        A concurrent creator winning the race surfaces as an IntegrityError,
        which rolls back only the savepoint and falls back to a re-read.

        Returns:
            Tuple of (user, created).
        """
        user = await self.find_user_by_email(email)
        if user is not None:
            return user, False

        try:
            async with self.session.begin_nested():
                user = User(email=normalize_email(email))
                self.session.add(user)
        except IntegrityError:
            logger.info("User created concurrently, re-reading by email")
            user = await self.find_user_by_email(email)
            if user is None:
                raise
            return user, False

        await self._commit()
        logger.info("Created user: user_id=%s", user.user_id)
        return user, True

    async def find_subscription(self, user_id: UUID) -> Subscription | None:
        """The user's active subscription, if any."""
        stmt = (
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.is_active.is_(True),
            )
            .order_by(Subscription.start_date.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _detach(self, rows: Sequence[_Row]) -> list[_Row]:
        """Detach listed rows; a rollback of a later row write leaves them readable."""
        for row in rows:
            self.session.expunge(row)
        return list(rows)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
