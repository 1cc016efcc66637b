"""Cohort models and Cassandra schema.

A cohort is a named group of users. Instances may restrict token
enrolment to members of one cohort.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from src.auth.models import ensure_utc_aware


if TYPE_CHECKING:
    from cassandra.cluster import Row


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COHORTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.cohorts (
    id UUID PRIMARY KEY,
    name TEXT,
    created_at TIMESTAMP
)
"""

COHORT_MEMBERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.cohort_members (
    cohort_id UUID,
    user_id UUID,
    added_at TIMESTAMP,
    PRIMARY KEY (cohort_id, user_id)
)
"""

COHORTS_TABLES_CQL = [
    COHORTS_TABLE_CQL,
    COHORT_MEMBERS_TABLE_CQL,
]


@dataclass
class Cohort:
    """A named group of users."""

    name: str
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: "Row") -> "Cohort":
        """Create Cohort instance from Cassandra row."""
        return cls(
            id=row.id,
            name=row.name or "",
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
        }
