# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Cohort service layer.

Business logic for:
- Creating and deleting cohorts
- Managing membership
- Membership checks for cohort-restricted enrolment
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.core.exceptions import DatabaseError, NotFoundError
from src.core.logging import get_logger
from src.enrolments.collaborators import CohortChecker

from .models import Cohort


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


class CohortService(CohortChecker):
    """Cassandra-backed cohorts."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_cohort = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.cohorts (id, name, created_at)
            VALUES (?, ?, ?)
        """)
        self._get_cohort = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.cohorts WHERE id = ?"
        )
        self._delete_cohort = self.session.prepare(
            f"DELETE FROM {self.keyspace}.cohorts WHERE id = ?"
        )
        self._delete_members = self.session.prepare(
            f"DELETE FROM {self.keyspace}.cohort_members WHERE cohort_id = ?"
        )
        self._insert_member = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.cohort_members (cohort_id, user_id, added_at)
            VALUES (?, ?, ?)
        """)
        self._delete_member = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.cohort_members
            WHERE cohort_id = ? AND user_id = ?
        """)
        self._get_member = self.session.prepare(f"""
            SELECT user_id FROM {self.keyspace}.cohort_members
            WHERE cohort_id = ? AND user_id = ?
        """)

    # ==========================================================================
    # Cohorts
    # ==========================================================================

    async def create_cohort(self, name: str) -> Cohort:
        """Create a cohort.

        Raises:
            DatabaseError: If the write fails
        """
        cohort = Cohort(name=name)
        try:
            await self.session.aexecute(
                self._insert_cohort, [cohort.id, cohort.name, cohort.created_at]
            )
        except Exception as e:
            logger.exception(
                "database_error_create_cohort",
                cohort_id=str(cohort.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError("Failed to create cohort", original_error=e) from e

        logger.info("cohort_created", cohort_id=str(cohort.id))
        return cohort

    async def get_cohort(self, cohort_id: UUID) -> Cohort | None:
        rows = await self.session.aexecute(self._get_cohort, [cohort_id])
        row = rows.one()
        return Cohort.from_row(row) if row else None

    async def delete_cohort(self, cohort_id: UUID) -> None:
        """Delete a cohort and its membership.

        Instances that still reference the cohort become unavailable.
        """
        await self.session.aexecute(self._delete_members, [cohort_id])
        await self.session.aexecute(self._delete_cohort, [cohort_id])
        logger.info("cohort_deleted", cohort_id=str(cohort_id))

    # ==========================================================================
    # Membership
    # ==========================================================================

    async def add_member(self, cohort_id: UUID, user_id: UUID) -> None:
        """Add a user to a cohort.

        Raises:
            NotFoundError: If the cohort does not exist
        """
        if await self.get_cohort(cohort_id) is None:
            raise NotFoundError("Cohort not found", code="cohort_not_found")

        await self.session.aexecute(
            self._insert_member, [cohort_id, user_id, datetime.now(UTC)]
        )
        logger.info(
            "cohort_member_added", cohort_id=str(cohort_id), user_id=str(user_id)
        )

    async def remove_member(self, cohort_id: UUID, user_id: UUID) -> None:
        await self.session.aexecute(self._delete_member, [cohort_id, user_id])
        logger.info(
            "cohort_member_removed", cohort_id=str(cohort_id), user_id=str(user_id)
        )

    async def is_member(self, cohort_id: UUID, user_id: UUID) -> bool:
        rows = await self.session.aexecute(self._get_member, [cohort_id, user_id])
        return rows.one() is not None
