# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Token enrolment storage service.

Business logic for:
- Instance create/update with defaults and validation
- User enrolment reads
- Enrol, suspend and unenrol, each as one logged batch covering
  the enrolment row and its role assignment
- Manual role assignments
- Plugin key/value config (notification cursor)
"""

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import UUID

from cassandra.query import BatchStatement, BatchType

from src.config.settings import Settings, get_settings
from src.core.exceptions import DatabaseError, NotFoundError, ValidationError
from src.core.logging import get_logger

from .models import (
    MANUAL_COMPONENT,
    EnrolmentInstance,
    EnrolmentStatus,
    ExpiryNotifyMode,
    InstanceStatus,
    RoleAssignment,
    UserEnrolment,
    WelcomeSendMode,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


# ==============================================================================
# Constants
# ==============================================================================

MIN_EXPIRY_THRESHOLD = timedelta(days=1)

# Fields an instance create/update may set
INSTANCE_FIELDS = frozenset(
    {
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
    }
)


def instance_defaults(settings: Settings) -> dict[str, Any]:
    """Field values for a new instance, taken from plugin settings."""
    return {
        "status": InstanceStatus(settings.default_instance_status),
        "role": settings.default_role,
        "enrol_period": timedelta(seconds=settings.default_enrol_period_seconds),
        "max_enrolled": settings.default_max_enrolled,
        "inactivity_timeout": timedelta(
            seconds=settings.default_inactivity_timeout_seconds
        ),
        "new_enrolments": settings.default_new_enrolments,
        "expiry_notify": ExpiryNotifyMode(settings.default_expiry_notify),
        "expiry_threshold": timedelta(
            seconds=settings.default_expiry_threshold_seconds
        ),
        "welcome_send_mode": WelcomeSendMode(settings.default_welcome_send_mode),
    }


def validate_instance(instance: EnrolmentInstance) -> None:
    """Reject inconsistent instance configuration.

    Raises:
        ValidationError: On the first invalid field
    """
    if (
        instance.enrol_start
        and instance.enrol_end
        and instance.enrol_end < instance.enrol_start
    ):
        raise ValidationError(
            "Enrolment end date cannot be earlier than start date",
            code="enrolenddaterror",
        )
    if instance.enrol_period < timedelta(0):
        raise ValidationError("Enrolment duration cannot be negative")
    if instance.inactivity_timeout < timedelta(0):
        raise ValidationError("Inactivity timeout cannot be negative")
    if instance.max_enrolled < 0:
        raise ValidationError("Maximum enrolled users cannot be negative")
    if (
        instance.expiry_notify != ExpiryNotifyMode.NONE
        and instance.expiry_threshold < MIN_EXPIRY_THRESHOLD
    ):
        raise ValidationError(
            "Notification threshold must be at least 1 day",
            code="errorthresholdlow",
        )


class EnrolmentService:
    """Cassandra-backed instances, user enrolments and role assignments."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        settings: Settings | None = None,
    ):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute support
            keyspace: Target keyspace
            settings: Plugin settings (instance defaults)
        """
        self.session = session
        self.keyspace = keyspace
        self.settings = settings or get_settings()
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        # Instances
        self._insert_instance = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.token_enrol_instances
            (id, course_id, name, status, role, enrol_start, enrol_end,
             enrol_period, max_enrolled, inactivity_timeout, new_enrolments,
             cohort_id, expiry_notify, expiry_threshold, welcome_message,
             welcome_send_mode, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_instance_by_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.token_enrol_instances_by_course
            (course_id, created_at, instance_id)
            VALUES (?, ?, ?)
        """)
        self._get_instance = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.token_enrol_instances WHERE id = ?"
        )
        self._get_instances_by_ids = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.token_enrol_instances WHERE id IN ?"
        )
        self._list_instance_ids_by_course = self.session.prepare(f"""
            SELECT instance_id FROM {self.keyspace}.token_enrol_instances_by_course
            WHERE course_id = ?
        """)
        self._list_all_instances = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.token_enrol_instances"
        )

        # User enrolments
        self._insert_enrolment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.user_enrolments
            (instance_id, user_id, course_id, role, status, time_start, time_end,
             created_at, modified_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_enrolment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.user_enrolments
            WHERE instance_id = ? AND user_id = ?
        """)
        self._list_enrolments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.user_enrolments
            WHERE instance_id = ?
        """)
        self._update_enrolment_status = self.session.prepare(f"""
            UPDATE {self.keyspace}.user_enrolments
            SET status = ?, modified_at = ?
            WHERE instance_id = ? AND user_id = ?
        """)
        self._delete_enrolment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.user_enrolments
            WHERE instance_id = ? AND user_id = ?
        """)

        # Role assignments
        self._insert_role = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.role_assignments
            (course_id, user_id, role, component, assigned_at)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._delete_role = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.role_assignments
            WHERE course_id = ? AND user_id = ? AND role = ? AND component = ?
        """)
        self._list_roles_by_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.role_assignments
            WHERE course_id = ?
        """)
        self._list_roles_by_user = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.role_assignments
            WHERE course_id = ? AND user_id = ?
        """)

        # Plugin config
        self._get_config = self.session.prepare(
            f"SELECT value FROM {self.keyspace}.token_enrol_config WHERE key = ?"
        )
        self._set_config = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.token_enrol_config (key, value, updated_at)
            VALUES (?, ?, ?)
        """)

    # ==========================================================================
    # Instances
    # ==========================================================================

    async def create_instance(self, course_id: UUID, **fields: Any) -> EnrolmentInstance:
        """Create an instance, filling unspecified fields from settings.

        Raises:
            ValidationError: If a field is unknown or the configuration is invalid
            DatabaseError: If database operation fails
        """
        self._check_fields(fields)
        values = instance_defaults(self.settings)
        values.update({k: v for k, v in fields.items() if v is not None})

        instance = EnrolmentInstance(course_id=course_id, **values)
        validate_instance(instance)

        try:
            await self.session.aexecute(self._insert_instance, instance.to_row_values())
            await self.session.aexecute(
                self._insert_instance_by_course,
                [instance.course_id, instance.created_at, instance.id],
            )
        except Exception as e:
            logger.exception(
                "database_error_create_instance",
                instance_id=str(instance.id),
                course_id=str(course_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError(
                "Failed to save enrolment instance", original_error=e
            ) from e

        logger.info(
            "token_instance_created",
            instance_id=str(instance.id),
            course_id=str(course_id),
            role=instance.role,
        )
        return instance

    async def update_instance(self, instance_id: UUID, **changes: Any) -> EnrolmentInstance:
        """Apply changes to an instance and re-validate.

        Raises:
            NotFoundError: If the instance does not exist
            ValidationError: If the resulting configuration is invalid
        """
        self._check_fields(changes)
        instance = await self.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("Enrolment instance not found", code="instance_not_found")

        for name, value in changes.items():
            setattr(instance, name, value)
        instance.updated_at = datetime.now(UTC)
        validate_instance(instance)

        try:
            await self.session.aexecute(self._insert_instance, instance.to_row_values())
        except Exception as e:
            logger.exception(
                "database_error_update_instance",
                instance_id=str(instance_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError(
                "Failed to save enrolment instance", original_error=e
            ) from e

        logger.info(
            "token_instance_updated",
            instance_id=str(instance_id),
            fields=sorted(changes),
        )
        return instance

    async def get_instance(self, instance_id: UUID) -> EnrolmentInstance | None:
        rows = await self.session.aexecute(self._get_instance, [instance_id])
        row = rows.one()
        return EnrolmentInstance.from_row(row) if row else None

    async def list_instances(self, course_id: UUID | None = None) -> list[EnrolmentInstance]:
        """List instances in creation order, optionally for one course."""
        if course_id is None:
            rows = await self.session.aexecute(self._list_all_instances)
            instances = [EnrolmentInstance.from_row(row) for row in rows]
        else:
            id_rows = await self.session.aexecute(
                self._list_instance_ids_by_course, [course_id]
            )
            instance_ids = [row.instance_id for row in id_rows]
            if not instance_ids:
                return []
            rows = await self.session.aexecute(self._get_instances_by_ids, [instance_ids])
            instances = [EnrolmentInstance.from_row(row) for row in rows]

        return sorted(instances, key=EnrolmentInstance.sort_key)

    def _check_fields(self, fields: dict[str, Any]) -> None:
        unknown = set(fields) - INSTANCE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown instance fields: {', '.join(sorted(unknown))}")

    # ==========================================================================
    # User Enrolments (reads)
    # ==========================================================================

    async def get_user_enrolment(
        self, instance_id: UUID, user_id: UUID
    ) -> UserEnrolment | None:
        rows = await self.session.aexecute(self._get_enrolment, [instance_id, user_id])
        row = rows.one()
        return UserEnrolment.from_row(row) if row else None

    async def list_enrolments(self, instance_id: UUID) -> list[UserEnrolment]:
        rows = await self.session.aexecute(self._list_enrolments, [instance_id])
        return [UserEnrolment.from_row(row) for row in rows]

    async def count_active(self, instance_id: UUID) -> int:
        """Number of active enrolments on an instance."""
        enrolments = await self.list_enrolments(instance_id)
        return sum(1 for e in enrolments if e.is_active)

    # ==========================================================================
    # User Enrolments (writes)
    # ==========================================================================

    async def enrol_user(
        self,
        instance: EnrolmentInstance,
        user_id: UUID,
        time_start: datetime,
        time_end: datetime | None,
    ) -> UserEnrolment:
        """Create or re-activate an enrolment and assign the instance role.

        Raises:
            DatabaseError: If the batch fails (nothing is written)
        """
        enrolment = UserEnrolment(
            instance_id=instance.id,
            user_id=user_id,
            course_id=instance.course_id,
            role=instance.role,
            status=EnrolmentStatus.ACTIVE,
            time_start=time_start,
            time_end=time_end,
            created_at=time_start,
            modified_at=time_start,
        )

        batch = self._new_batch()
        self._add_enrolment_row(batch, enrolment)
        batch.add(
            self._insert_role,
            [
                instance.course_id,
                user_id,
                instance.role,
                instance.role_component,
                time_start,
            ],
        )
        await self._execute_batch(batch, "enrol_user", instance.id, user_id)

        logger.info(
            "user_enrolled",
            instance_id=str(instance.id),
            course_id=str(instance.course_id),
            user_id=str(user_id),
            time_end=time_end.isoformat() if time_end else None,
        )
        return enrolment

    async def suspend_user(self, enrolment: UserEnrolment) -> None:
        """Suspend an enrolment and drop its role, keeping the row."""
        now = datetime.now(UTC)
        batch = self._new_batch()
        batch.add(
            self._update_enrolment_status,
            [
                EnrolmentStatus.SUSPENDED.value,
                now,
                enrolment.instance_id,
                enrolment.user_id,
            ],
        )
        self._add_role_removal(batch, enrolment)
        await self._execute_batch(
            batch, "suspend_user", enrolment.instance_id, enrolment.user_id
        )

        logger.info(
            "user_enrolment_suspended",
            instance_id=str(enrolment.instance_id),
            user_id=str(enrolment.user_id),
        )

    async def unenrol_user(self, enrolment: UserEnrolment) -> None:
        """Remove an enrolment and its role assignment."""
        batch = self._new_batch()
        batch.add(self._delete_enrolment, [enrolment.instance_id, enrolment.user_id])
        self._add_role_removal(batch, enrolment)
        await self._execute_batch(
            batch, "unenrol_user", enrolment.instance_id, enrolment.user_id
        )

        logger.info(
            "user_unenrolled",
            instance_id=str(enrolment.instance_id),
            course_id=str(enrolment.course_id),
            user_id=str(enrolment.user_id),
        )

    def _new_batch(self) -> BatchStatement:
        return BatchStatement(batch_type=BatchType.LOGGED)

    def _add_enrolment_row(self, batch: BatchStatement, enrolment: UserEnrolment) -> None:
        batch.add(
            self._insert_enrolment,
            [
                enrolment.instance_id,
                enrolment.user_id,
                enrolment.course_id,
                enrolment.role,
                enrolment.status.value,
                enrolment.time_start,
                enrolment.time_end,
                enrolment.created_at,
                enrolment.modified_at,
            ],
        )

    def _add_role_removal(self, batch: BatchStatement, enrolment: UserEnrolment) -> None:
        batch.add(
            self._delete_role,
            [
                enrolment.course_id,
                enrolment.user_id,
                enrolment.role,
                f"enrol_token:{enrolment.instance_id}",
            ],
        )

    async def _execute_batch(
        self,
        batch: BatchStatement,
        operation: str,
        instance_id: UUID,
        user_id: UUID,
    ) -> None:
        try:
            await self.session.aexecute(batch)
        except Exception as e:
            logger.exception(
                f"database_error_{operation}",
                instance_id=str(instance_id),
                user_id=str(user_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError(
                "Failed to update enrolment", original_error=e
            ) from e

    # ==========================================================================
    # Role Assignments
    # ==========================================================================

    async def assign_role(
        self,
        course_id: UUID,
        user_id: UUID,
        role: str,
        component: str = MANUAL_COMPONENT,
    ) -> RoleAssignment:
        """Assign a course role outside token enrolment (managers, teachers)."""
        assignment = RoleAssignment(
            course_id=course_id, user_id=user_id, role=role, component=component
        )
        await self.session.aexecute(
            self._insert_role,
            [course_id, user_id, role, component, assignment.assigned_at],
        )
        logger.info(
            "role_assigned",
            course_id=str(course_id),
            user_id=str(user_id),
            role=role,
            component=component,
        )
        return assignment

    async def unassign_role(
        self,
        course_id: UUID,
        user_id: UUID,
        role: str,
        component: str = MANUAL_COMPONENT,
    ) -> None:
        await self.session.aexecute(
            self._delete_role, [course_id, user_id, role, component]
        )
        logger.info(
            "role_unassigned",
            course_id=str(course_id),
            user_id=str(user_id),
            role=role,
            component=component,
        )

    async def list_role_assignments(self, course_id: UUID) -> list[RoleAssignment]:
        rows = await self.session.aexecute(self._list_roles_by_course, [course_id])
        return [RoleAssignment.from_row(row) for row in rows]

    async def list_user_roles(self, course_id: UUID, user_id: UUID) -> list[RoleAssignment]:
        rows = await self.session.aexecute(self._list_roles_by_user, [course_id, user_id])
        return [RoleAssignment.from_row(row) for row in rows]

    # ==========================================================================
    # Plugin Config
    # ==========================================================================

    async def get_config_value(self, key: str) -> str | None:
        rows = await self.session.aexecute(self._get_config, [key])
        row = rows.one()
        return row.value if row else None

    async def set_config_value(self, key: str, value: str) -> None:
        await self.session.aexecute(self._set_config, [key, value, datetime.now(UTC)])
