"""Tests for the cohort service."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.cohorts.service import CohortService
from src.core.exceptions import DatabaseError, NotFoundError


def _result(row=None) -> MagicMock:
    result = MagicMock()
    result.one.return_value = row
    return result


@pytest.fixture
def session() -> MagicMock:
    mock = MagicMock()
    mock.aexecute = AsyncMock(return_value=_result())
    return mock


@pytest.fixture
def service(session) -> CohortService:
    return CohortService(session, "test_ks")


class TestCohorts:
    """Tests for cohort lifecycle."""

    @pytest.mark.asyncio
    async def test_create(self, service, session) -> None:
        cohort = await service.create_cohort("Night class")

        assert cohort.name == "Night class"
        args = session.aexecute.call_args.args[1]
        assert args == [cohort.id, "Night class", cohort.created_at]

    @pytest.mark.asyncio
    async def test_create_failure_wrapped(self, service, session) -> None:
        session.aexecute.side_effect = RuntimeError("unavailable")

        with pytest.raises(DatabaseError):
            await service.create_cohort("Night class")

    @pytest.mark.asyncio
    async def test_get_missing(self, service) -> None:
        assert await service.get_cohort(uuid4()) is None

    @pytest.mark.asyncio
    async def test_get_existing(self, service, session) -> None:
        cohort_id = uuid4()
        session.aexecute.return_value = _result(
            SimpleNamespace(id=cohort_id, name="Night class", created_at=datetime(2025, 1, 1))
        )

        cohort = await service.get_cohort(cohort_id)

        assert cohort.id == cohort_id
        assert cohort.created_at.tzinfo is UTC

    @pytest.mark.asyncio
    async def test_delete_removes_members_first(self, service, session) -> None:
        cohort_id = uuid4()

        await service.delete_cohort(cohort_id)

        statements = [c.args[0] for c in session.aexecute.call_args_list]
        assert statements == [service._delete_members, service._delete_cohort]


class TestMembership:
    """Tests for cohort membership."""

    @pytest.mark.asyncio
    async def test_add_to_missing_cohort(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.add_member(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_add_member(self, service, session) -> None:
        cohort_id, user_id = uuid4(), uuid4()
        session.aexecute.return_value = _result(
            SimpleNamespace(id=cohort_id, name="Night class", created_at=None)
        )

        await service.add_member(cohort_id, user_id)

        args = session.aexecute.call_args.args[1]
        assert args[:2] == [cohort_id, user_id]

    @pytest.mark.asyncio
    async def test_is_member(self, service, session) -> None:
        session.aexecute.return_value = _result(SimpleNamespace(user_id=uuid4()))
        assert await service.is_member(uuid4(), uuid4()) is True

        session.aexecute.return_value = _result(None)
        assert await service.is_member(uuid4(), uuid4()) is False
