"""Tests for the reminder notifier.

Tests cover:
- Selection: pending, active, unexpired, deadline within the lead window
- De-duplication through the last_reminder_sent_at watermark
- Address selection with owner fallback
- Failed sends leave the watermark untouched
"""

from datetime import timedelta

import pytest

from filenest.db.models.base import RequestStatus
from filenest.services.notifier import TemplateKind
from filenest.services.reminders import ReminderNotifier
from tests.factories import T0, make_request

FRONTEND = "https://files.example.com"
NOW = T0 + timedelta(days=1)


@pytest.fixture
def reminders(repository, notifier) -> ReminderNotifier:
    return ReminderNotifier(
        repository,
        notifier,
        FRONTEND,
        lead_window=timedelta(hours=48),
        period=timedelta(hours=12),
    )


class TestSelection:
    @pytest.mark.asyncio
    async def test_deadline_inside_lead_window(self, repository, notifier, reminders):
        request = make_request(deadline=NOW + timedelta(hours=47))
        repository.add(request)

        result = await reminders.run_pass(NOW)

        assert result.sent_ids == [request.request_id]
        assert notifier.sent_to(TemplateKind.REMINDER) == ["recipient@example.com"]

    @pytest.mark.asyncio
    async def test_deadline_outside_lead_window(self, repository, notifier, reminders):
        repository.add(make_request(deadline=NOW + timedelta(hours=49)))

        result = await reminders.run_pass(NOW)

        assert result.selected == 0
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_no_deadline_is_reminded(self, repository, reminders):
        repository.add(make_request(deadline=None))

        result = await reminders.run_pass(NOW)

        assert len(result.sent_ids) == 1

    @pytest.mark.asyncio
    async def test_completed_inactive_and_expired_are_excluded(self, repository, reminders):
        repository.add(
            make_request(status=RequestStatus.COMPLETED),
            make_request(is_active=False),
            make_request(created_at=T0 - timedelta(days=10)),
        )

        result = await reminders.run_pass(NOW)

        assert result.selected == 0

    @pytest.mark.asyncio
    async def test_watermark_inside_period_is_skipped(self, repository, reminders):
        repository.add(make_request(last_reminder_sent_at=NOW - timedelta(hours=11)))

        result = await reminders.run_pass(NOW)

        assert result.selected == 0

    @pytest.mark.asyncio
    async def test_watermark_older_than_period_is_reminded(self, repository, reminders):
        repository.add(make_request(last_reminder_sent_at=NOW - timedelta(hours=12)))

        result = await reminders.run_pass(NOW)

        assert len(result.sent_ids) == 1


class TestWatermark:
    @pytest.mark.asyncio
    async def test_success_sets_watermark(self, repository, reminders):
        request = make_request()
        repository.add(request)

        await reminders.run_pass(NOW)

        assert request.last_reminder_sent_at == NOW

    @pytest.mark.asyncio
    async def test_one_reminder_per_period(self, repository, notifier, reminders):
        repository.add(make_request())

        await reminders.run_pass(NOW)
        await reminders.run_pass(NOW + timedelta(hours=6))
        await reminders.run_pass(NOW + timedelta(hours=12))

        assert len(notifier.sent) == 2

    @pytest.mark.asyncio
    async def test_rejected_send_leaves_watermark(self, repository, notifier, reminders):
        request = make_request(recipient_email="bounce@example.com")
        repository.add(request)
        notifier.reject.add("bounce@example.com")

        result = await reminders.run_pass(NOW)

        assert result.failed_ids == [request.request_id]
        assert request.last_reminder_sent_at is None
        assert repository.calls_to("update_request_last_reminder") == []

    @pytest.mark.asyncio
    async def test_failed_send_is_retried_next_pass(self, repository, notifier, reminders):
        request = make_request(recipient_email="flaky@example.com")
        repository.add(request)
        notifier.explode.add("flaky@example.com")

        first = await reminders.run_pass(NOW)
        notifier.explode.clear()
        second = await reminders.run_pass(NOW + timedelta(minutes=5))

        assert first.failed_ids == [request.request_id]
        assert second.sent_ids == [request.request_id]


class TestAddress:
    @pytest.mark.asyncio
    async def test_falls_back_to_owner_email(self, repository, notifier, reminders):
        user = repository.add_user("owner@example.com")
        repository.add(make_request(user_id=user.user_id, recipient_email=None))

        await reminders.run_pass(NOW)

        assert notifier.sent_to(TemplateKind.REMINDER) == ["owner@example.com"]

    @pytest.mark.asyncio
    async def test_no_address_is_skipped(self, repository, notifier, reminders):
        request = make_request(recipient_email=None)
        repository.add(request)

        result = await reminders.run_pass(NOW)

        assert result.skipped_ids == [request.request_id]
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_payload(self, repository, notifier, reminders):
        deadline = NOW + timedelta(hours=20)
        request = make_request(description="Bank statements", deadline=deadline)
        repository.add(request)

        await reminders.run_pass(NOW)

        _, _, payload = notifier.sent[0]
        assert payload == {
            "description": "Bank statements",
            "upload_link": f"{FRONTEND}/upload/{request.unique_link}",
            "deadline": deadline,
        }

    @pytest.mark.asyncio
    async def test_failing_row_does_not_stop_pass(self, repository, notifier, reminders):
        user = repository.add_user()
        unreachable = make_request(created_at=T0, recipient_email=None)
        broken = make_request(
            created_at=T0 + timedelta(minutes=1), user_id=user.user_id, recipient_email=None
        )
        healthy = make_request(created_at=T0 + timedelta(minutes=2))
        repository.add(unreachable, broken, healthy)
        repository.fail("get_user", OSError("db down"), key=user.user_id)

        result = await reminders.run_pass(NOW)

        assert result.skipped_ids == [unreachable.request_id]
        assert result.failed_ids == [broken.request_id]
        assert result.sent_ids == [healthy.request_id]
