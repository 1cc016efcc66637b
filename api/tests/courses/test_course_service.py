"""Tests for the course service."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.core.exceptions import DatabaseError
from src.courses.service import CourseService


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
def service(session) -> CourseService:
    return CourseService(session, "test_ks")


class TestCourseService:
    """Tests for CourseService."""

    @pytest.mark.asyncio
    async def test_create(self, service, session) -> None:
        course = await service.create_course("Pharmacology 101", "PHA101")

        assert course.visible is True
        args = session.aexecute.call_args.args[1]
        assert args[:4] == [course.id, "Pharmacology 101", "PHA101", True]

    @pytest.mark.asyncio
    async def test_create_failure(self, service, session) -> None:
        session.aexecute.side_effect = RuntimeError("timeout")

        with pytest.raises(DatabaseError):
            await service.create_course("Pharmacology 101")

    @pytest.mark.asyncio
    async def test_get_defaults_visibility(self, service, session) -> None:
        course_id = uuid4()
        session.aexecute.return_value = _result(
            SimpleNamespace(
                id=course_id,
                full_name="Pharmacology 101",
                short_name=None,
                visible=None,
                created_at=None,
            )
        )

        course = await service.get_course(course_id)

        assert course.visible is True
        assert course.short_name == ""

    @pytest.mark.asyncio
    async def test_get_missing(self, service) -> None:
        assert await service.get_course(uuid4()) is None
