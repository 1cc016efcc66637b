"""Token enrolment models and Cassandra schema.

Provides:
- EnrolmentInstance: one configured token method on a course
- UserEnrolment: one row per (instance, user)
- RoleAssignment: course roles, tagged with the component that owns them
- Contact: a message sender/recipient identity
- Cassandra table definitions
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from src.auth.models import User, ensure_utc_aware


if TYPE_CHECKING:
    from cassandra.cluster import Row


class InstanceStatus(str, Enum):
    """Whether an instance accepts enrolments at all."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class EnrolmentStatus(str, Enum):
    """Status of a user enrolment."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class ExpiryNotifyMode(str, Enum):
    """Who is told about enrolments that are about to expire."""

    NONE = "none"  # Nobody
    ENROLLER = "enroller"  # Course summary to the enroller only
    ALL = "all"  # Enroller summary plus one message per user


class WelcomeSendMode(str, Enum):
    """Sender of the welcome message, or no message."""

    DISABLED = "disabled"
    COURSE_CONTACT = "course_contact"
    KEY_HOLDER = "key_holder"
    NO_REPLY = "no_reply"


class ExpiredAction(str, Enum):
    """Disposition applied to enrolments past their end date."""

    KEEP = "keep"
    SUSPEND_NO_ROLES = "suspend_no_roles"
    UNENROL = "unenrol"


MANUAL_COMPONENT = "manual"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

TOKEN_ENROL_INSTANCES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.token_enrol_instances (
    id UUID PRIMARY KEY,
    course_id UUID,
    name TEXT,
    status TEXT,
    role TEXT,
    enrol_start TIMESTAMP,
    enrol_end TIMESTAMP,
    enrol_period INT,
    max_enrolled INT,
    inactivity_timeout INT,
    new_enrolments BOOLEAN,
    cohort_id UUID,
    expiry_notify TEXT,
    expiry_threshold INT,
    welcome_message TEXT,
    welcome_send_mode TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

TOKEN_ENROL_INSTANCES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.token_enrol_instances_by_course (
    course_id UUID,
    created_at TIMESTAMP,
    instance_id UUID,
    PRIMARY KEY (course_id, created_at, instance_id)
) WITH CLUSTERING ORDER BY (created_at ASC, instance_id ASC)
"""

USER_ENROLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.user_enrolments (
    instance_id UUID,
    user_id UUID,
    course_id UUID,
    role TEXT,
    status TEXT,
    time_start TIMESTAMP,
    time_end TIMESTAMP,
    created_at TIMESTAMP,
    modified_at TIMESTAMP,
    PRIMARY KEY (instance_id, user_id)
)
"""

ROLE_ASSIGNMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.role_assignments (
    course_id UUID,
    user_id UUID,
    role TEXT,
    component TEXT,
    assigned_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id, role, component)
)
"""

TOKEN_ENROL_CONFIG_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.token_enrol_config (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TIMESTAMP
)
"""

ENROLMENTS_TABLES_CQL = [
    TOKEN_ENROL_INSTANCES_TABLE_CQL,
    TOKEN_ENROL_INSTANCES_BY_COURSE_TABLE_CQL,
    USER_ENROLMENTS_TABLE_CQL,
    ROLE_ASSIGNMENTS_TABLE_CQL,
    TOKEN_ENROL_CONFIG_TABLE_CQL,
]


def seconds_to_timedelta(value: int | None) -> timedelta:
    return timedelta(seconds=value or 0)


def timedelta_to_seconds(value: timedelta) -> int:
    return int(value.total_seconds())


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class EnrolmentInstance:
    """Configuration of the token enrolment method on one course.

    Durations are timedeltas; a zero duration means "unlimited" for
    enrol_period and "disabled" for inactivity_timeout. max_enrolled of 0
    means unlimited.
    """

    course_id: UUID
    id: UUID = field(default_factory=uuid4)
    name: str | None = None
    status: InstanceStatus = InstanceStatus.ENABLED
    role: str = "student"
    enrol_start: datetime | None = None
    enrol_end: datetime | None = None
    enrol_period: timedelta = field(default_factory=timedelta)
    max_enrolled: int = 0
    inactivity_timeout: timedelta = field(default_factory=timedelta)
    new_enrolments: bool = True
    cohort_id: UUID | None = None
    expiry_notify: ExpiryNotifyMode = ExpiryNotifyMode.NONE
    expiry_threshold: timedelta = field(default_factory=lambda: timedelta(days=1))
    welcome_message: str | None = None
    welcome_send_mode: WelcomeSendMode = WelcomeSendMode.COURSE_CONTACT
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    @property
    def display_name(self) -> str:
        """Instance name, or a default naming the role it grants."""
        if self.name:
            return self.name
        return f"Token enrolment ({self.role.replace('_', ' ').capitalize()})"

    @property
    def is_enabled(self) -> bool:
        return self.status == InstanceStatus.ENABLED

    @property
    def role_component(self) -> str:
        """Component tag on role assignments owned by this instance."""
        return f"enrol_token:{self.id}"

    def sort_key(self) -> tuple[datetime, str]:
        """Creation order, id as tie-break."""
        return (self.created_at, str(self.id))

    @classmethod
    def from_row(cls, row: "Row") -> "EnrolmentInstance":
        """Create instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            name=row.name,
            status=InstanceStatus(row.status),
            role=row.role,
            enrol_start=ensure_utc_aware(row.enrol_start),
            enrol_end=ensure_utc_aware(row.enrol_end),
            enrol_period=seconds_to_timedelta(row.enrol_period),
            max_enrolled=row.max_enrolled or 0,
            inactivity_timeout=seconds_to_timedelta(row.inactivity_timeout),
            new_enrolments=bool(row.new_enrolments),
            cohort_id=row.cohort_id,
            expiry_notify=ExpiryNotifyMode(row.expiry_notify or "none"),
            expiry_threshold=seconds_to_timedelta(row.expiry_threshold),
            welcome_message=row.welcome_message,
            welcome_send_mode=WelcomeSendMode(
                row.welcome_send_mode or WelcomeSendMode.COURSE_CONTACT.value
            ),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            updated_at=ensure_utc_aware(row.updated_at),
        )

    def to_row_values(self) -> list[Any]:
        """Values in token_enrol_instances column order."""
        return [
            self.id,
            self.course_id,
            self.name,
            self.status.value,
            self.role,
            self.enrol_start,
            self.enrol_end,
            timedelta_to_seconds(self.enrol_period),
            self.max_enrolled,
            timedelta_to_seconds(self.inactivity_timeout),
            self.new_enrolments,
            self.cohort_id,
            self.expiry_notify.value,
            timedelta_to_seconds(self.expiry_threshold),
            self.welcome_message,
            self.welcome_send_mode.value,
            self.created_at,
            self.updated_at,
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "course_id": self.course_id,
            "name": self.display_name,
            "status": self.status.value,
            "role": self.role,
            "enrol_start": self.enrol_start.isoformat() if self.enrol_start else None,
            "enrol_end": self.enrol_end.isoformat() if self.enrol_end else None,
            "enrol_period_seconds": timedelta_to_seconds(self.enrol_period),
            "max_enrolled": self.max_enrolled,
            "inactivity_timeout_seconds": timedelta_to_seconds(
                self.inactivity_timeout
            ),
            "new_enrolments": self.new_enrolments,
            "cohort_id": self.cohort_id,
            "expiry_notify": self.expiry_notify.value,
            "expiry_threshold_seconds": timedelta_to_seconds(self.expiry_threshold),
            "welcome_send_mode": self.welcome_send_mode.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class UserEnrolment:
    """A user's enrolment through one instance.

    time_end of None means the enrolment never expires.
    """

    instance_id: UUID
    user_id: UUID
    course_id: UUID
    role: str
    status: EnrolmentStatus = EnrolmentStatus.ACTIVE
    time_start: datetime = field(default_factory=lambda: datetime.now(UTC))
    time_end: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    modified_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == EnrolmentStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        """Past its end date (unlimited enrolments never expire)."""
        return self.time_end is not None and self.time_end < now

    @classmethod
    def from_row(cls, row: "Row") -> "UserEnrolment":
        """Create instance from Cassandra row."""
        return cls(
            instance_id=row.instance_id,
            user_id=row.user_id,
            course_id=row.course_id,
            role=row.role,
            status=EnrolmentStatus(row.status),
            time_start=ensure_utc_aware(row.time_start) or datetime.now(UTC),
            time_end=ensure_utc_aware(row.time_end),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            modified_at=ensure_utc_aware(row.modified_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "user_id": self.user_id,
            "course_id": self.course_id,
            "role": self.role,
            "status": self.status.value,
            "time_start": self.time_start.isoformat(),
            "time_end": self.time_end.isoformat() if self.time_end else None,
        }


@dataclass
class RoleAssignment:
    """A course role held by a user, owned by a component."""

    course_id: UUID
    user_id: UUID
    role: str
    component: str = MANUAL_COMPONENT
    assigned_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: "Row") -> "RoleAssignment":
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            role=row.role,
            component=row.component,
            assigned_at=ensure_utc_aware(row.assigned_at) or datetime.now(UTC),
        )


@dataclass(frozen=True)
class Contact:
    """Identity a message is sent from or to."""

    email: str
    name: str
    user_id: UUID | None = None

    @classmethod
    def from_user(cls, user: User) -> "Contact":
        return cls(email=user.email, name=user.full_name, user_id=user.id)
