"""Tests for the user service."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.auth.service import UserService
from src.core.exceptions import ConflictError, DatabaseError


def _user_row(**overrides) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "email": "ana@example.com",
        "first_name": "Ana",
        "last_name": "Souza",
        "role": "student",
        "is_active": True,
        "created_at": None,
        "updated_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _result(*rows) -> MagicMock:
    result = MagicMock()
    result.__iter__.return_value = iter(rows)
    result.one.return_value = rows[0] if rows else None
    return result


@pytest.fixture
def session() -> MagicMock:
    mock = MagicMock()
    mock.aexecute = AsyncMock(return_value=_result())
    return mock


@pytest.fixture
def service(session) -> UserService:
    return UserService(session, "test_ks")


class TestCreateUser:
    """Tests for UserService.create_user."""

    @pytest.mark.asyncio
    async def test_creates_student(self, service, session) -> None:
        user = await service.create_user("Ana@Example.com", "Ana", "Souza")

        assert user.email == "ana@example.com"
        assert user.role == "student"
        assert session.aexecute.await_count == 2

    @pytest.mark.asyncio
    async def test_duplicate_email(self, service, session) -> None:
        session.aexecute.return_value = _result(_user_row())

        with pytest.raises(ConflictError):
            await service.create_user("ana@example.com", "Ana", "Souza")

    @pytest.mark.asyncio
    async def test_write_failure(self, service, session) -> None:
        session.aexecute.side_effect = [_result(), RuntimeError("timeout")]

        with pytest.raises(DatabaseError):
            await service.create_user("ana@example.com", "Ana", "Souza")


class TestLookups:
    """Tests for user lookups."""

    @pytest.mark.asyncio
    async def test_get_users_keyed_by_id(self, service, session) -> None:
        ana = _user_row()
        bruno = _user_row(email="bruno@example.com", first_name="Bruno")
        session.aexecute.return_value = _result(ana, bruno)

        users = await service.get_users([ana.id, bruno.id, uuid4()])

        assert set(users) == {ana.id, bruno.id}
        assert users[bruno.id].full_name == "Bruno Souza"

    @pytest.mark.asyncio
    async def test_get_users_empty(self, service, session) -> None:
        assert await service.get_users([]) == {}
        session.aexecute.assert_not_awaited()
