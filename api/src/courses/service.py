# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Course service layer."""

from typing import TYPE_CHECKING
from uuid import UUID

from src.core.exceptions import DatabaseError
from src.core.logging import get_logger

from .models import Course


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


class CourseService:
    """Lookups and creation of course records."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (id, full_name, short_name, visible, created_at)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._get_course = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )

    async def create_course(
        self, full_name: str, short_name: str = "", visible: bool = True
    ) -> Course:
        """Create a course.

        Raises:
            DatabaseError: If the write fails
        """
        course = Course(full_name=full_name, short_name=short_name, visible=visible)
        try:
            await self.session.aexecute(
                self._insert_course,
                [
                    course.id,
                    course.full_name,
                    course.short_name,
                    course.visible,
                    course.created_at,
                ],
            )
        except Exception as e:
            logger.exception(
                "database_error_create_course",
                course_id=str(course.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError("Failed to create course", original_error=e) from e

        logger.info("course_created", course_id=str(course.id))
        return course

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get a course by ID."""
        rows = await self.session.aexecute(self._get_course, [course_id])
        row = rows.one()
        return Course.from_row(row) if row else None
