"""Tests for last-access tracking."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.activity.service import ActivityService


SEEN = datetime(2025, 3, 1, 8, 30, tzinfo=UTC)


@pytest.fixture
def session() -> MagicMock:
    mock = MagicMock()
    mock.aexecute = AsyncMock()
    return mock


@pytest.fixture
def service(session) -> ActivityService:
    return ActivityService(session, "test_ks")


class TestRecordAccess:
    """Tests for ActivityService.record_access."""

    @pytest.mark.asyncio
    async def test_site_only(self, service, session) -> None:
        user_id = uuid4()

        await service.record_access(user_id, at=SEEN)

        session.aexecute.assert_awaited_once_with(
            service._upsert_user_access, [SEEN, user_id]
        )

    @pytest.mark.asyncio
    async def test_with_course(self, service, session) -> None:
        user_id, course_id = uuid4(), uuid4()

        await service.record_access(user_id, course_id, at=SEEN)

        assert session.aexecute.await_count == 2
        session.aexecute.assert_awaited_with(
            service._upsert_course_access, [SEEN, user_id, course_id]
        )


class TestReads:
    """Tests for the ActivityTracker reads."""

    @pytest.mark.asyncio
    async def test_never_seen(self, service, session) -> None:
        result = MagicMock()
        result.one.return_value = None
        session.aexecute.return_value = result

        assert await service.get_last_access(uuid4()) is None
        assert await service.get_course_access(uuid4(), uuid4()) is None

    @pytest.mark.asyncio
    async def test_naive_timestamp_made_utc(self, service, session) -> None:
        result = MagicMock()
        result.one.return_value = SimpleNamespace(last_access=datetime(2025, 3, 1, 8, 30))
        session.aexecute.return_value = result

        assert await service.get_last_access(uuid4()) == SEEN
