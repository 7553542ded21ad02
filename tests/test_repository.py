"""Tests for RequestRepository against a mocked AsyncSession.

Tests cover:
- Detached list reads
- Guarded writes (no reactivation, rowcount handling)
- Commit failure rollback
- find_or_create_user savepoint race handling
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from filenest.services.repository import RequestRepository, normalize_email
from tests.factories import T0, integrity_error, make_request, make_user


def _result(rows=None, scalar=None, rowcount=None):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows or []
    result.scalar_one_or_none.return_value = scalar
    result.scalar_one.return_value = scalar
    result.rowcount = rowcount
    return result


class _Savepoint:
    """Async context manager standing in for ``session.begin_nested()``."""

    def __init__(self, exc: BaseException | None = None) -> None:
        self.exc = exc

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.exc is not None:
            raise self.exc
        return False


@pytest.fixture
def mock_session():
    """Create a mock database session."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.get = AsyncMock()
    session.add = MagicMock()
    session.expunge = MagicMock()
    session.begin_nested = MagicMock(return_value=_Savepoint())
    return session


@pytest.fixture
def repo(mock_session) -> RequestRepository:
    return RequestRepository(mock_session)


class TestNormalizeEmail:
    def test_strips_and_lowercases(self):
        assert normalize_email("  Someone@Example.COM ") == "someone@example.com"


class TestListReads:
    @pytest.mark.asyncio
    async def test_active_requests_are_detached(self, repo, mock_session):
        rows = [make_request(), make_request()]
        mock_session.execute.return_value = _result(rows=rows)

        listed = await repo.list_active_requests()

        assert listed == rows
        assert mock_session.expunge.call_count == 2

    @pytest.mark.asyncio
    async def test_nearing_deadline_filters_on_watermark(self, repo, mock_session):
        mock_session.execute.return_value = _result(rows=[])

        await repo.list_pending_requests_nearing_deadline(
            T0, timedelta(hours=48), reminded_before=T0 - timedelta(hours=12)
        )

        stmt = mock_session.execute.call_args.args[0]
        assert "last_reminder_sent_at" in str(stmt)

    @pytest.mark.asyncio
    async def test_nearing_deadline_without_watermark(self, repo, mock_session):
        mock_session.execute.return_value = _result(rows=[])

        await repo.list_pending_requests_nearing_deadline(T0, timedelta(hours=48))

        stmt = mock_session.execute.call_args.args[0]
        assert "last_reminder_sent_at" not in str(stmt.whereclause)

    @pytest.mark.asyncio
    async def test_count_requests_since(self, repo, mock_session):
        mock_session.execute.return_value = _result(scalar=7)

        assert await repo.count_requests_since(make_user().user_id, T0) == 7


class TestGuardedWrites:
    @pytest.mark.asyncio
    async def test_reactivation_is_rejected(self, repo, mock_session):
        with pytest.raises(ValueError, match="never reactivated"):
            await repo.update_request_active(make_request().request_id, True)

        mock_session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_deactivate_one(self, repo, mock_session):
        mock_session.execute.return_value = _result(rowcount=1)

        assert await repo.update_request_active(make_request().request_id, False) is True
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deactivate_already_inactive(self, repo, mock_session):
        mock_session.execute.return_value = _result(rowcount=0)

        assert await repo.update_request_active(make_request().request_id, False) is False

    @pytest.mark.asyncio
    async def test_batch_deactivate_empty_is_a_no_op(self, repo, mock_session):
        assert await repo.update_requests_inactive([]) == 0
        mock_session.execute.assert_not_called()
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_batch_deactivate_returns_rowcount(self, repo, mock_session):
        mock_session.execute.return_value = _result(rowcount=2)
        ids = [make_request().request_id for _ in range(3)]

        assert await repo.update_requests_inactive(ids) == 2

    @pytest.mark.asyncio
    async def test_owner_update_skips_linked_rows(self, repo, mock_session):
        mock_session.execute.return_value = _result(rowcount=0)

        linked = await repo.update_request_owner(make_request().request_id, make_user().user_id)

        assert linked is False
        stmt = mock_session.execute.call_args.args[0]
        assert "user_id IS NULL" in str(stmt)

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self, repo, mock_session):
        mock_session.execute.return_value = _result(rowcount=1)
        mock_session.commit.side_effect = OperationalError("COMMIT", {}, Exception("lost"))

        with pytest.raises(OperationalError):
            await repo.update_request_last_reminder(make_request().request_id, T0)

        mock_session.rollback.assert_awaited_once()


class TestFindOrCreateUser:
    @pytest.mark.asyncio
    async def test_existing_user(self, repo, mock_session):
        user = make_user("a@example.com")
        mock_session.execute.return_value = _result(scalar=user)

        found, created = await repo.find_or_create_user("A@example.com")

        assert found is user
        assert created is False
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_creates_user(self, repo, mock_session):
        mock_session.execute.return_value = _result(scalar=None)

        user, created = await repo.find_or_create_user(" New@Example.com")

        assert created is True
        assert user.email == "new@example.com"
        mock_session.add.assert_called_once_with(user)
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_creator_wins(self, repo, mock_session):
        winner = make_user("race@example.com")
        mock_session.execute.side_effect = [_result(scalar=None), _result(scalar=winner)]
        mock_session.begin_nested.return_value = _Savepoint(integrity_error())

        user, created = await repo.find_or_create_user("race@example.com")

        assert user is winner
        assert created is False
        mock_session.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_integrity_error_without_row_propagates(self, repo, mock_session):
        mock_session.execute.side_effect = [_result(scalar=None), _result(scalar=None)]
        mock_session.begin_nested.return_value = _Savepoint(integrity_error())

        with pytest.raises(IntegrityError):
            await repo.find_or_create_user("ghost@example.com")
