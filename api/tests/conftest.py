"""Shared fixtures: in-memory doubles for the Cassandra-backed services."""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.models import User
from src.auth.permissions import CourseRole
from src.cohorts.models import Cohort
from src.config.settings import Settings
from src.courses.models import Course
from src.enrolments.availability import AvailabilityEvaluator
from src.enrolments.capabilities import RoleCapabilityChecker
from src.enrolments.collaborators import ActivityTracker, CohortChecker, Messenger
from src.enrolments.contacts import ContactResolver
from src.enrolments.gateway import EnrolmentGateway
from src.enrolments.models import (
    MANUAL_COMPONENT,
    Contact,
    EnrolmentInstance,
    EnrolmentStatus,
    RoleAssignment,
    UserEnrolment,
    WelcomeSendMode,
)
from src.tokens.models import Token


INSTANCE_EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


# ==============================================================================
# In-memory services
# ==============================================================================


class InMemoryEnrolments:
    """Same contract as EnrolmentService, backed by dicts."""

    def __init__(self) -> None:
        self.instances: dict[UUID, EnrolmentInstance] = {}
        self.enrolments: dict[tuple[UUID, UUID], UserEnrolment] = {}
        self.roles: dict[tuple[UUID, UUID, str, str], RoleAssignment] = {}
        self.config: dict[str, str] = {}

    def add_instance(self, instance: EnrolmentInstance) -> EnrolmentInstance:
        self.instances[instance.id] = instance
        return instance

    async def get_instance(self, instance_id: UUID) -> EnrolmentInstance | None:
        return self.instances.get(instance_id)

    async def list_instances(
        self, course_id: UUID | None = None
    ) -> list[EnrolmentInstance]:
        instances = [
            i
            for i in self.instances.values()
            if course_id is None or i.course_id == course_id
        ]
        return sorted(instances, key=EnrolmentInstance.sort_key)

    async def get_user_enrolment(
        self, instance_id: UUID, user_id: UUID
    ) -> UserEnrolment | None:
        return self.enrolments.get((instance_id, user_id))

    async def list_enrolments(self, instance_id: UUID) -> list[UserEnrolment]:
        return [e for (iid, _), e in self.enrolments.items() if iid == instance_id]

    async def count_active(self, instance_id: UUID) -> int:
        return sum(1 for e in await self.list_enrolments(instance_id) if e.is_active)

    async def enrol_user(
        self,
        instance: EnrolmentInstance,
        user_id: UUID,
        time_start: datetime,
        time_end: datetime | None,
    ) -> UserEnrolment:
        enrolment = UserEnrolment(
            instance_id=instance.id,
            user_id=user_id,
            course_id=instance.course_id,
            role=instance.role,
            time_start=time_start,
            time_end=time_end,
        )
        self.enrolments[(instance.id, user_id)] = enrolment
        self._add_role(
            instance.course_id, user_id, instance.role, instance.role_component, time_start
        )
        return enrolment

    async def suspend_user(self, enrolment: UserEnrolment) -> None:
        key = (enrolment.instance_id, enrolment.user_id)
        self.enrolments[key] = replace(
            self.enrolments[key], status=EnrolmentStatus.SUSPENDED
        )
        self._remove_role(enrolment)

    async def unenrol_user(self, enrolment: UserEnrolment) -> None:
        self.enrolments.pop((enrolment.instance_id, enrolment.user_id), None)
        self._remove_role(enrolment)

    async def assign_role(
        self,
        course_id: UUID,
        user_id: UUID,
        role: str,
        component: str = MANUAL_COMPONENT,
        assigned_at: datetime | None = None,
    ) -> RoleAssignment:
        return self._add_role(
            course_id, user_id, role, component, assigned_at or datetime.now(UTC)
        )

    async def list_role_assignments(self, course_id: UUID) -> list[RoleAssignment]:
        return [a for a in self.roles.values() if a.course_id == course_id]

    async def list_user_roles(
        self, course_id: UUID, user_id: UUID
    ) -> list[RoleAssignment]:
        return [
            a
            for a in self.roles.values()
            if a.course_id == course_id and a.user_id == user_id
        ]

    async def get_config_value(self, key: str) -> str | None:
        return self.config.get(key)

    async def set_config_value(self, key: str, value: str) -> None:
        self.config[key] = value

    def _add_role(
        self,
        course_id: UUID,
        user_id: UUID,
        role: str,
        component: str,
        assigned_at: datetime,
    ) -> RoleAssignment:
        assignment = RoleAssignment(
            course_id=course_id,
            user_id=user_id,
            role=role,
            component=component,
            assigned_at=assigned_at,
        )
        self.roles[(course_id, user_id, role, component)] = assignment
        return assignment

    def _remove_role(self, enrolment: UserEnrolment) -> None:
        self.roles.pop(
            (
                enrolment.course_id,
                enrolment.user_id,
                enrolment.role,
                f"enrol_token:{enrolment.instance_id}",
            ),
            None,
        )


class InMemoryTokenStore:
    """Same contract as TokenStore; mark_used is a compare-and-set."""

    def __init__(self) -> None:
        self.tokens: dict[UUID, Token] = {}

    async def create(self, instance_id: UUID, secret: str) -> Token:
        token = Token(instance_id=instance_id, secret=secret)
        self.tokens[token.id] = token
        return token

    def add(self, instance_id: UUID, secret: str) -> Token:
        token = Token(instance_id=instance_id, secret=secret)
        self.tokens[token.id] = token
        return token

    async def get(self, token_id: UUID) -> Token | None:
        return self.tokens.get(token_id)

    async def find_unused(self, instance_id: UUID, secret: str) -> Token | None:
        candidates = [
            t
            for t in self.tokens.values()
            if t.instance_id == instance_id and t.secret == secret and not t.is_used
        ]
        # Yield so concurrent redemptions both see the token unused
        await asyncio.sleep(0)
        if not candidates:
            return None
        return min(candidates, key=lambda t: (t.created_at, str(t.id)))

    async def mark_used(self, token_id: UUID, user_id: UUID, timestamp: datetime) -> bool:
        token = self.tokens.get(token_id)
        if token is None or token.is_used:
            return False
        self.tokens[token_id] = replace(token, used_at=timestamp, used_by=user_id)
        return True

    async def release(self, token_id: UUID, user_id: UUID, used_at: datetime) -> bool:
        token = self.tokens.get(token_id)
        if token is None or token.used_by != user_id or token.used_at != used_at:
            return False
        self.tokens[token_id] = replace(token, used_at=None, used_by=None)
        return True

    async def delete(self, token_id: UUID) -> bool:
        token = self.tokens.get(token_id)
        if token is None or token.is_used:
            return False
        del self.tokens[token_id]
        return True

    async def list_tokens(self, instance_id: UUID, **_filters: Any) -> list[Token]:
        return [t for t in self.tokens.values() if t.instance_id == instance_id]


class InMemoryUsers:
    def __init__(self) -> None:
        self.users: dict[UUID, User] = {}

    def add(self, user: User) -> User:
        self.users[user.id] = user
        return user

    async def get_user(self, user_id: UUID) -> User | None:
        return self.users.get(user_id)

    async def get_users(self, user_ids: list[UUID]) -> dict[UUID, User]:
        return {uid: self.users[uid] for uid in user_ids if uid in self.users}


class InMemoryCourses:
    def __init__(self) -> None:
        self.courses: dict[UUID, Course] = {}

    def add(self, course: Course) -> Course:
        self.courses[course.id] = course
        return course

    async def get_course(self, course_id: UUID) -> Course | None:
        return self.courses.get(course_id)


class InMemoryCohorts(CohortChecker):
    def __init__(self) -> None:
        self.cohorts: dict[UUID, Cohort] = {}
        self.members: set[tuple[UUID, UUID]] = set()

    async def get_cohort(self, cohort_id: UUID) -> Cohort | None:
        return self.cohorts.get(cohort_id)

    async def is_member(self, cohort_id: UUID, user_id: UUID) -> bool:
        return (cohort_id, user_id) in self.members


class InMemoryActivity(ActivityTracker):
    def __init__(self) -> None:
        self.last_access: dict[UUID, datetime] = {}
        self.course_access: dict[tuple[UUID, UUID], datetime] = {}

    async def get_last_access(self, user_id: UUID) -> datetime | None:
        return self.last_access.get(user_id)

    async def get_course_access(
        self, user_id: UUID, course_id: UUID
    ) -> datetime | None:
        return self.course_access.get((user_id, course_id))


class RecordingMessenger(Messenger):
    """Keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(
        self,
        sender: Contact,
        recipient: Contact,
        subject: str,
        body_text: str,
        body_html: str,
    ) -> bool:
        if self.fail:
            msg = "mail server unavailable"
            raise ConnectionError(msg)
        self.sent.append(
            {
                "sender": sender,
                "recipient": recipient,
                "subject": subject,
                "body_text": body_text,
                "body_html": body_html,
            }
        )
        return True


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="testing",
        email_enabled=False,
        scheduler_enabled=False,
        expiry_notify_hour=6,
        timezone="UTC",
    )


@pytest.fixture
def enrolments() -> InMemoryEnrolments:
    return InMemoryEnrolments()


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def users() -> InMemoryUsers:
    return InMemoryUsers()


@pytest.fixture
def courses() -> InMemoryCourses:
    return InMemoryCourses()


@pytest.fixture
def cohorts() -> InMemoryCohorts:
    return InMemoryCohorts()


@pytest.fixture
def activity() -> InMemoryActivity:
    return InMemoryActivity()


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def capabilities(enrolments: InMemoryEnrolments) -> RoleCapabilityChecker:
    return RoleCapabilityChecker(enrolments)


@pytest.fixture
def contacts(enrolments, users, capabilities, settings) -> ContactResolver:
    return ContactResolver(enrolments, users, capabilities, settings)


@pytest.fixture
def availability(enrolments, cohorts, capabilities) -> AvailabilityEvaluator:
    return AvailabilityEvaluator(enrolments, cohorts, capabilities)


@pytest.fixture
def gateway(
    enrolments,
    token_store,
    availability,
    courses,
    capabilities,
    contacts,
    messenger,
    settings,
) -> EnrolmentGateway:
    return EnrolmentGateway(
        enrolments=enrolments,
        tokens=token_store,
        availability=availability,
        courses=courses,
        capabilities=capabilities,
        contacts=contacts,
        messenger=messenger,
        settings=settings,
    )


@pytest.fixture
def course(courses: InMemoryCourses) -> Course:
    return courses.add(Course(full_name="Pharmacology 101", short_name="PHA101"))


@pytest.fixture
def make_user(users: InMemoryUsers):
    def _make(first: str = "Ana", last: str = "Souza", **kwargs: Any) -> User:
        email = kwargs.pop("email", f"{first}.{last}.{uuid4().hex[:6]}@example.com")
        return users.add(
            User(first_name=first, last_name=last, email=email.lower(), **kwargs)
        )

    return _make


@pytest.fixture
def make_instance(enrolments: InMemoryEnrolments, course: Course):
    def _make(**fields: Any) -> EnrolmentInstance:
        fields.setdefault("welcome_send_mode", WelcomeSendMode.DISABLED)
        fields.setdefault("course_id", course.id)
        # Distinct creation times keep instance order deterministic
        fields.setdefault(
            "created_at", INSTANCE_EPOCH + timedelta(seconds=len(enrolments.instances))
        )
        return enrolments.add_instance(EnrolmentInstance(**fields))

    return _make


@pytest.fixture
def teacher(make_user, enrolments: InMemoryEnrolments, course: Course) -> User:
    """Editing teacher of the course (manager capability and course contact)."""
    user = make_user("Carla", "Mendes")
    enrolments._add_role(
        course.id,
        user.id,
        CourseRole.EDITING_TEACHER.value,
        MANUAL_COMPONENT,
        datetime(2024, 1, 1, tzinfo=UTC),
    )
    return user


@pytest.fixture
def client() -> TestClient:
    from src.main import app

    return TestClient(app)
