# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""User activity tracking.

Records when a user was last seen on the site and in each course. The
inactivity rule of the reconciliation job reads these timestamps.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.auth.models import ensure_utc_aware
from src.core.logging import get_logger
from src.enrolments.collaborators import ActivityTracker


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


class ActivityService(ActivityTracker):
    """Cassandra-backed last-access tracker."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._upsert_user_access = self.session.prepare(f"""
            UPDATE {self.keyspace}.user_last_access
            SET last_access = ?
            WHERE user_id = ?
        """)
        self._upsert_course_access = self.session.prepare(f"""
            UPDATE {self.keyspace}.course_last_access
            SET last_access = ?
            WHERE user_id = ? AND course_id = ?
        """)
        self._get_user_access = self.session.prepare(f"""
            SELECT last_access FROM {self.keyspace}.user_last_access
            WHERE user_id = ?
        """)
        self._get_course_access = self.session.prepare(f"""
            SELECT last_access FROM {self.keyspace}.course_last_access
            WHERE user_id = ? AND course_id = ?
        """)

    async def record_access(
        self,
        user_id: UUID,
        course_id: UUID | None = None,
        at: datetime | None = None,
    ) -> None:
        """Record that a user was active, optionally inside a course."""
        at = at or datetime.now(UTC)
        await self.session.aexecute(self._upsert_user_access, [at, user_id])
        if course_id is not None:
            await self.session.aexecute(
                self._upsert_course_access, [at, user_id, course_id]
            )
        logger.debug(
            "activity_recorded",
            user_id=str(user_id),
            course_id=str(course_id) if course_id else None,
        )

    async def get_last_access(self, user_id: UUID) -> datetime | None:
        rows = await self.session.aexecute(self._get_user_access, [user_id])
        row = rows.one()
        return ensure_utc_aware(row.last_access) if row else None

    async def get_course_access(self, user_id: UUID, course_id: UUID) -> datetime | None:
        rows = await self.session.aexecute(self._get_course_access, [user_id, course_id])
        row = rows.one()
        return ensure_utc_aware(row.last_access) if row else None
