"""Upload reminders for pending file requests.

A pending, active, unexpired request whose deadline is missing or within the
lead window gets one reminder per period. ``last_reminder_sent_at`` is the
watermark: it is written only after the notifier accepts the message, so a
failed send is retried on the next pass and a crash between send and write
can produce a duplicate (at-least-once).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from filenest.services.context import NO_STOP, PassContext
from filenest.services.notifier import TemplateKind, hash_email
from filenest.services.requests import build_upload_link

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from filenest.db.models.requests import FileRequest
    from filenest.services.notifier import Notifier
    from filenest.services.repository import RequestRepository

logger = logging.getLogger(__name__)

DEFAULT_LEAD_WINDOW = timedelta(hours=48)
DEFAULT_PERIOD = timedelta(hours=12)


@dataclass(slots=True)
class ReminderPassResult:
    """Outcome of one reminder pass."""

    selected: int = 0
    sent_ids: list[UUID] = field(default_factory=list)
    skipped_ids: list[UUID] = field(default_factory=list)
    failed_ids: list[UUID] = field(default_factory=list)
    stopped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "selected": self.selected,
            "sent_count": len(self.sent_ids),
            "skipped_count": len(self.skipped_ids),
            "failed_count": len(self.failed_ids),
            "stopped": self.stopped,
        }


class ReminderNotifier:
    """Sends upload reminders and advances the per-request watermark."""

    def __init__(
        self,
        repository: RequestRepository,
        notifier: Notifier,
        frontend_url: str,
        lead_window: timedelta = DEFAULT_LEAD_WINDOW,
        period: timedelta = DEFAULT_PERIOD,
    ) -> None:
        self.repository = repository
        self.notifier = notifier
        self.frontend_url = frontend_url
        self.lead_window = lead_window
        self.period = period

    async def run_pass(self, now: datetime, ctx: PassContext = NO_STOP) -> ReminderPassResult:
        """Run one reminder pass at ``now``.

        Args:
            now: Reference time; also the watermark value written.
            ctx: Cancellation handle checked between rows.

        Returns:
            Summary of the pass.
        """
        result = ReminderPassResult()
        requests = await self.repository.list_pending_requests_nearing_deadline(
            now,
            self.lead_window,
            reminded_before=now - self.period,
        )
        result.selected = len(requests)

        for request in requests:
            if ctx.should_stop:
                result.stopped = True
                break
            try:
                await self._remind(request, now, result)
            except Exception:
                logger.exception("Reminder failed: request_id=%s", request.request_id)
                result.failed_ids.append(request.request_id)

        logger.info(
            "Reminder pass complete: selected=%d, sent=%d, skipped=%d, failed=%d",
            result.selected,
            len(result.sent_ids),
            len(result.skipped_ids),
            len(result.failed_ids),
        )
        return result

    async def _remind(self, request: FileRequest, now: datetime, result: ReminderPassResult) -> None:
        address = await self._reminder_address(request)
        if address is None:
            logger.warning("No address for reminder: request_id=%s", request.request_id)
            result.skipped_ids.append(request.request_id)
            return

        sent = await self.notifier.send(
            address,
            TemplateKind.REMINDER,
            {
                "description": request.description,
                "upload_link": build_upload_link(self.frontend_url, request.unique_link),
                "deadline": request.deadline,
            },
        )
        if not sent:
            logger.warning("Reminder not delivered: request_id=%s", request.request_id)
            result.failed_ids.append(request.request_id)
            return

        await self.repository.update_request_last_reminder(request.request_id, now)
        result.sent_ids.append(request.request_id)
        logger.info(
            "Reminder sent: request_id=%s, recipient_hash=%s",
            request.request_id,
            hash_email(address)[:16],
        )

    async def _reminder_address(self, request: FileRequest) -> str | None:
        """Recipient email, falling back to the owner's email."""
        if request.recipient_email:
            return request.recipient_email
        if request.user_id is not None:
            user = await self.repository.get_user(request.user_id)
            if user is not None and user.email:
                return user.email
        return None
