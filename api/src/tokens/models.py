"""Enrolment token models and Cassandra schema.

Provides:
- Token entity
- Cassandra table definitions for tokens and the per-instance lookup
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from src.auth.models import ensure_utc_aware


if TYPE_CHECKING:
    from cassandra.cluster import Row


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

ENROL_TOKENS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrol_tokens (
    id UUID PRIMARY KEY,
    instance_id UUID,
    secret TEXT,
    created_at TIMESTAMP,
    used_at TIMESTAMP,
    used_by UUID
)
"""

# Lookup by (instance, secret). Used state lives only in enrol_tokens.
ENROL_TOKENS_BY_INSTANCE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrol_tokens_by_instance (
    instance_id UUID,
    secret TEXT,
    token_id UUID,
    created_at TIMESTAMP,
    PRIMARY KEY (instance_id, secret, token_id)
)
"""

TOKENS_TABLES_CQL = [
    ENROL_TOKENS_TABLE_CQL,
    ENROL_TOKENS_BY_INSTANCE_TABLE_CQL,
]


# ==============================================================================
# Entity
# ==============================================================================


@dataclass
class Token:
    """A single-use enrolment secret.

    used_at and used_by are set together, once, on redemption.
    """

    instance_id: UUID
    secret: str
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    used_at: datetime | None = None
    used_by: UUID | None = None

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    @classmethod
    def from_row(cls, row: "Row") -> "Token":
        """Create instance from Cassandra row."""
        return cls(
            id=row.id,
            instance_id=row.instance_id,
            secret=row.secret,
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            used_at=ensure_utc_aware(row.used_at),
            used_by=row.used_by,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "secret": self.secret,
            "created_at": self.created_at.isoformat(),
            "used_at": self.used_at.isoformat() if self.used_at else None,
            "used_by": self.used_by,
        }
