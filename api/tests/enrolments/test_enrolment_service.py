"""Tests for instance configuration in the enrolment service."""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from src.core.exceptions import DatabaseError, NotFoundError, ValidationError
from src.enrolments.models import (
    EnrolmentInstance,
    ExpiryNotifyMode,
    InstanceStatus,
    WelcomeSendMode,
)
from src.enrolments.service import (
    EnrolmentService,
    instance_defaults,
    validate_instance,
)


def _rows(*rows):
    result = MagicMock()
    result.__iter__.return_value = iter(rows)
    result.one.return_value = rows[0] if rows else None
    return result


def _instance_row(instance: EnrolmentInstance) -> SimpleNamespace:
    columns = [
        "id",
        "course_id",
        "name",
        "status",
        "role",
        "enrol_start",
        "enrol_end",
        "enrol_period",
        "max_enrolled",
        "inactivity_timeout",
        "new_enrolments",
        "cohort_id",
        "expiry_notify",
        "expiry_threshold",
        "welcome_message",
        "welcome_send_mode",
        "created_at",
        "updated_at",
    ]
    return SimpleNamespace(**dict(zip(columns, instance.to_row_values(), strict=True)))


@pytest.fixture
def session() -> MagicMock:
    mock = MagicMock()
    mock.aexecute = AsyncMock(return_value=_rows())
    return mock


@pytest.fixture
def service(session, settings) -> EnrolmentService:
    return EnrolmentService(session, "test_ks", settings)


class TestValidateInstance:
    """Tests for instance configuration checks."""

    def test_end_before_start(self) -> None:
        start = datetime(2025, 3, 10, tzinfo=UTC)
        instance = EnrolmentInstance(
            course_id=uuid4(), enrol_start=start, enrol_end=start - timedelta(days=1)
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_instance(instance)

        assert exc_info.value.code == "enrolenddaterror"

    def test_threshold_below_one_day_with_notification(self) -> None:
        instance = EnrolmentInstance(
            course_id=uuid4(),
            expiry_notify=ExpiryNotifyMode.ENROLLER,
            expiry_threshold=timedelta(hours=23),
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_instance(instance)

        assert exc_info.value.code == "errorthresholdlow"

    def test_short_threshold_allowed_without_notification(self) -> None:
        instance = EnrolmentInstance(
            course_id=uuid4(), expiry_threshold=timedelta(hours=1)
        )
        validate_instance(instance)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("enrol_period", timedelta(seconds=-1)),
            ("inactivity_timeout", timedelta(seconds=-1)),
            ("max_enrolled", -1),
        ],
    )
    def test_negative_values(self, field: str, value) -> None:
        instance = EnrolmentInstance(course_id=uuid4(), **{field: value})
        with pytest.raises(ValidationError):
            validate_instance(instance)


class TestInstanceDefaults:
    """Tests for settings-driven defaults."""

    def test_defaults_from_settings(self, settings) -> None:
        settings.default_max_enrolled = 30
        settings.default_enrol_period_seconds = 86400 * 7
        settings.default_welcome_send_mode = "no_reply"

        defaults = instance_defaults(settings)

        assert defaults["status"] == InstanceStatus.ENABLED
        assert defaults["role"] == "student"
        assert defaults["max_enrolled"] == 30
        assert defaults["enrol_period"] == timedelta(days=7)
        assert defaults["expiry_threshold"] == timedelta(days=1)
        assert defaults["welcome_send_mode"] == WelcomeSendMode.NO_REPLY


class TestCreateInstance:
    """Tests for EnrolmentService.create_instance."""

    @pytest.mark.asyncio
    async def test_create_fills_defaults(self, service, session) -> None:
        course_id = uuid4()

        instance = await service.create_instance(
            course_id, name="Spring intake", max_enrolled=None
        )

        assert instance.course_id == course_id
        assert instance.name == "Spring intake"
        assert instance.max_enrolled == 0
        assert instance.welcome_send_mode == WelcomeSendMode.COURSE_CONTACT
        assert session.aexecute.await_count == 2
        by_course = session.aexecute.call_args_list[1].args[1]
        assert by_course == [course_id, instance.created_at, instance.id]

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, service, session) -> None:
        with pytest.raises(ValidationError):
            await service.create_instance(uuid4(), password="secret")

        session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_configuration_not_saved(self, service, session) -> None:
        start = datetime(2025, 3, 10, tzinfo=UTC)

        with pytest.raises(ValidationError):
            await service.create_instance(
                uuid4(), enrol_start=start, enrol_end=start - timedelta(hours=1)
            )

        session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_wrapped(self, service, session) -> None:
        session.aexecute.side_effect = RuntimeError("write timeout")

        with pytest.raises(DatabaseError):
            await service.create_instance(uuid4())


class TestUpdateInstance:
    """Tests for EnrolmentService.update_instance."""

    @pytest.mark.asyncio
    async def test_missing_instance(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.update_instance(uuid4(), name="Renamed")

    @pytest.mark.asyncio
    async def test_changes_applied(self, service, session) -> None:
        stored = EnrolmentInstance(course_id=uuid4(), name="Old")
        session.aexecute.return_value = _rows(_instance_row(stored))

        updated = await service.update_instance(
            stored.id, name="New", max_enrolled=25
        )

        assert updated.id == stored.id
        assert updated.name == "New"
        assert updated.max_enrolled == 25
        assert updated.updated_at is not None

    @pytest.mark.asyncio
    async def test_invalid_change_not_saved(self, service, session) -> None:
        stored = EnrolmentInstance(course_id=uuid4())
        session.aexecute.return_value = _rows(_instance_row(stored))

        with pytest.raises(ValidationError):
            await service.update_instance(
                stored.id,
                expiry_notify=ExpiryNotifyMode.ALL,
                expiry_threshold=timedelta(minutes=30),
            )

        assert session.aexecute.await_count == 1


class TestListInstances:
    """Tests for EnrolmentService.list_instances."""

    @pytest.mark.asyncio
    async def test_creation_order(self, service, session) -> None:
        course_id = uuid4()
        early = EnrolmentInstance(
            course_id=course_id, created_at=datetime(2025, 1, 1, tzinfo=UTC)
        )
        late = EnrolmentInstance(
            course_id=course_id, created_at=datetime(2025, 2, 1, tzinfo=UTC)
        )
        session.aexecute.side_effect = [
            _rows(SimpleNamespace(instance_id=late.id), SimpleNamespace(instance_id=early.id)),
            _rows(_instance_row(late), _instance_row(early)),
        ]

        instances = await service.list_instances(course_id)

        assert [i.id for i in instances] == [early.id, late.id]

    @pytest.mark.asyncio
    async def test_course_without_instances(self, service, session) -> None:
        assert await service.list_instances(uuid4()) == []
        assert session.aexecute.await_count == 1


class TestRoleAssignments:
    """Tests for manual role assignment."""

    @pytest.mark.asyncio
    async def test_assign_role(self, service, session) -> None:
        course_id, user_id = uuid4(), uuid4()

        assignment = await service.assign_role(course_id, user_id, "editingteacher")

        assert assignment.component == "manual"
        session.aexecute.assert_awaited_once_with(
            service._insert_role,
            [course_id, user_id, "editingteacher", "manual", assignment.assigned_at],
        )

    @pytest.mark.asyncio
    async def test_unassign_role(self, service, session) -> None:
        course_id, user_id = uuid4(), uuid4()

        await service.unassign_role(course_id, user_id, "editingteacher")

        session.aexecute.assert_awaited_once_with(
            service._delete_role, [course_id, user_id, "editingteacher", "manual"]
        )

    @pytest.mark.asyncio
    async def test_list_role_assignments(self, service, session) -> None:
        course_id, user_id = uuid4(), uuid4()
        session.aexecute.return_value = _rows(
            SimpleNamespace(
                course_id=course_id,
                user_id=user_id,
                role="manager",
                component="manual",
                assigned_at=datetime(2024, 1, 1),
            )
        )

        [assignment] = await service.list_role_assignments(course_id)

        assert assignment.role == "manager"
        assert assignment.assigned_at.tzinfo is UTC
