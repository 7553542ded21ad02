"""Referential-integrity reconciliation.

Finds requests with no owning user and files with no (or a dangling) request.
Repair links an orphaned request to the user owning its recipient email,
creating that user if needed. A request without a recipient email cannot be
re-attributed and is only reported; orphaned files are only reported.

Repair never overwrites an existing ``user_id``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from filenest.services.context import NO_STOP, PassContext

if TYPE_CHECKING:
    from uuid import UUID

    from filenest.services.repository import RequestRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """Read-only snapshot of integrity anomalies.

    Attributes:
        repairable_request_ids: Orphaned requests with a recipient email.
        unrepairable_request_ids: Orphaned requests without one.
        orphaned_file_ids: Files with a null or dangling request reference.
    """

    repairable_request_ids: list[UUID] = field(default_factory=list)
    unrepairable_request_ids: list[UUID] = field(default_factory=list)
    orphaned_file_ids: list[UUID] = field(default_factory=list)

    @property
    def orphaned_request_count(self) -> int:
        return len(self.repairable_request_ids) + len(self.unrepairable_request_ids)

    @property
    def is_clean(self) -> bool:
        return self.orphaned_request_count == 0 and not self.orphaned_file_ids

    def to_dict(self) -> dict[str, Any]:
        return {
            "orphaned_requests": self.orphaned_request_count,
            "repairable_requests": [str(i) for i in self.repairable_request_ids],
            "unrepairable_requests": [str(i) for i in self.unrepairable_request_ids],
            "orphaned_files": [str(i) for i in self.orphaned_file_ids],
        }


@dataclass(slots=True)
class IntegrityFixResult:
    """Outcome of a repair run.

    Attributes:
        linked_ids: Requests linked to a user by this run.
        skipped_ids: Requests that gained an owner concurrently.
        unrepairable_ids: Orphaned requests without a recipient email.
        failed_ids: Requests skipped because of an error.
        users_created: Users created by find-or-create.
        orphaned_file_ids: Orphaned files, reported only.
        stopped: True when the run ended early on shutdown.
    """

    linked_ids: list[UUID] = field(default_factory=list)
    skipped_ids: list[UUID] = field(default_factory=list)
    unrepairable_ids: list[UUID] = field(default_factory=list)
    failed_ids: list[UUID] = field(default_factory=list)
    users_created: int = 0
    orphaned_file_ids: list[UUID] = field(default_factory=list)
    stopped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "linked_count": len(self.linked_ids),
            "skipped_count": len(self.skipped_ids),
            "unrepairable_count": len(self.unrepairable_ids),
            "failed_count": len(self.failed_ids),
            "users_created": self.users_created,
            "orphaned_files": [str(i) for i in self.orphaned_file_ids],
            "stopped": self.stopped,
        }


class IntegrityReconciler:
    """Reports and repairs orphaned requests and files."""

    def __init__(self, repository: RequestRepository) -> None:
        self.repository = repository

    async def check(self) -> IntegrityReport:
        """Report anomalies without changing anything."""
        requests = await self.repository.list_orphaned_requests()
        files = await self.repository.list_orphaned_files()

        report = IntegrityReport(
            repairable_request_ids=[r.request_id for r in requests if r.recipient_email],
            unrepairable_request_ids=[r.request_id for r in requests if not r.recipient_email],
            orphaned_file_ids=[f.file_id for f in files],
        )
        logger.info(
            "Integrity check: orphaned_requests=%d, unrepairable=%d, orphaned_files=%d",
            report.orphaned_request_count,
            len(report.unrepairable_request_ids),
            len(report.orphaned_file_ids),
        )
        return report

    async def fix(self, ctx: PassContext = NO_STOP) -> IntegrityFixResult:
        """Link orphaned requests to users, then report orphaned files.

        Args:
            ctx: Cancellation handle checked between rows.

        Returns:
            Summary of the run.
        """
        result = IntegrityFixResult()

        for request in await self.repository.list_orphaned_requests():
            if ctx.should_stop:
                result.stopped = True
                break

            if not request.recipient_email:
                logger.warning(
                    "Orphaned request has no recipient email, cannot repair: request_id=%s",
                    request.request_id,
                )
                result.unrepairable_ids.append(request.request_id)
                continue

            try:
                user, created = await self.repository.find_or_create_user(request.recipient_email)
                if created:
                    result.users_created += 1
                linked = await self.repository.update_request_owner(
                    request.request_id, user.user_id
                )
            except Exception:
                logger.exception(
                    "Failed to repair orphaned request: request_id=%s", request.request_id
                )
                result.failed_ids.append(request.request_id)
                continue

            if linked:
                result.linked_ids.append(request.request_id)
                logger.info(
                    "Linked orphaned request: request_id=%s, user_id=%s",
                    request.request_id,
                    user.user_id,
                )
            else:
                result.skipped_ids.append(request.request_id)

        if not result.stopped:
            files = await self.repository.list_orphaned_files()
            result.orphaned_file_ids = [f.file_id for f in files]
            for orphan in files:
                logger.warning(
                    "Orphaned file: file_id=%s, request_id=%s, storage_path=%s",
                    orphan.file_id,
                    orphan.request_id,
                    orphan.storage_path,
                )

        logger.info(
            "Integrity fix complete: linked=%d, unrepairable=%d, failed=%d, "
            "users_created=%d, orphaned_files=%d",
            len(result.linked_ids),
            len(result.unrepairable_ids),
            len(result.failed_ids),
            result.users_created,
            len(result.orphaned_file_ids),
        )
        return result
