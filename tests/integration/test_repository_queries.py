"""Repository queries run against PostgreSQL.

Covers the predicates the in-memory repository only imitates: the reminder
window with its watermark, and the outer join that finds orphaned files.
"""

from __future__ import annotations

import os
from datetime import timedelta

import pytest
from sqlalchemy import delete

from filenest.db.models import FileRequest, RequestStatus
from filenest.services.repository import RequestRepository
from tests.factories import T0, make_file, make_request

pytestmark = pytest.mark.skipif(
    "TEST_DATABASE_URL" not in os.environ,
    reason="Requires database - set TEST_DATABASE_URL",
)

NOW = T0 + timedelta(days=1)
WINDOW = timedelta(hours=48)


class TestPendingRequestsNearingDeadline:
    @pytest.mark.asyncio
    async def test_window_and_watermark(self, db_session):
        due = make_request(deadline=NOW + timedelta(hours=47))
        too_far = make_request(deadline=NOW + timedelta(hours=49))
        open_ended = make_request()
        reminded_recently = make_request(last_reminder_sent_at=NOW - timedelta(hours=1))
        on_watermark = make_request(last_reminder_sent_at=NOW - timedelta(hours=12))
        completed = make_request(status=RequestStatus.COMPLETED)
        inactive = make_request(is_active=False)
        past_expiry = make_request(created_at=T0 - timedelta(days=10))
        db_session.add_all(
            [
                due,
                too_far,
                open_ended,
                reminded_recently,
                on_watermark,
                completed,
                inactive,
                past_expiry,
            ]
        )
        await db_session.commit()

        rows = await RequestRepository(db_session).list_pending_requests_nearing_deadline(
            NOW, WINDOW, reminded_before=NOW - timedelta(hours=12)
        )

        assert {r.request_id for r in rows} == {
            due.request_id,
            open_ended.request_id,
            on_watermark.request_id,
        }

    @pytest.mark.asyncio
    async def test_without_watermark_ignores_last_reminder(self, db_session):
        reminded = make_request(last_reminder_sent_at=NOW - timedelta(minutes=5))
        db_session.add(reminded)
        await db_session.commit()

        rows = await RequestRepository(db_session).list_pending_requests_nearing_deadline(
            NOW, WINDOW
        )

        assert [r.request_id for r in rows] == [reminded.request_id]


class TestOrphanedFiles:
    @pytest.mark.asyncio
    async def test_unattached_and_deleted_request_files(self, db_session):
        kept = make_request()
        gone = make_request()
        attached = make_file(kept.request_id)
        loose = make_file(None)
        left_behind = make_file(gone.request_id)
        db_session.add_all([kept, gone])
        await db_session.flush()
        db_session.add_all([attached, loose, left_behind])
        await db_session.commit()

        # ON DELETE SET NULL detaches the file in the database
        await db_session.execute(
            delete(FileRequest).where(FileRequest.request_id == gone.request_id)
        )
        await db_session.commit()

        rows = await RequestRepository(db_session).list_orphaned_files()

        assert {f.file_id for f in rows} == {loose.file_id, left_behind.file_id}
