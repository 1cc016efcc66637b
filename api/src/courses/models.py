"""Database models for courses.

Only the course attributes the enrolment lifecycle needs: a display name
for messages and visibility.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from src.auth.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    full_name TEXT,
    short_name TEXT,
    visible BOOLEAN,
    created_at TIMESTAMP
)
"""

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
]


@dataclass
class Course:
    """A course that token enrolment instances attach to."""

    full_name: str
    short_name: str = ""
    id: UUID = field(default_factory=uuid4)
    visible: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            full_name=row.full_name or "",
            short_name=row.short_name or "",
            visible=row.visible if row.visible is not None else True,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "short_name": self.short_name,
            "visible": self.visible,
            "created_at": self.created_at.isoformat(),
        }
