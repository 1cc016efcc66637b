"""Database models for users.

Cassandra table definitions for:
- Users: identity, display name and site role
- UserLastAccess: last time the user was seen anywhere on the site

Note: Uses cassandra-driver directly (not ORM) for flexibility.
Tables are created via CQL statements in the database module.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from src.auth.permissions import UserRole


# CQL statements for table creation
USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    email TEXT,
    first_name TEXT,
    last_name TEXT,
    role TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

USER_EMAIL_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_email_idx ON {keyspace}.users (email)
"""

# All CQL statements for table setup
AUTH_TABLES_CQL = [
    USER_TABLE_CQL,
    USER_EMAIL_INDEX_CQL,
]


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class User:
    """User entity for enrolment and messaging.

    Attributes:
        id: Unique identifier (UUID)
        email: Email address used for notifications
        first_name: Given name
        last_name: Family name
        role: Site role (guest, user, student, teacher, admin)
        is_active: Account status
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: UUID | None = None,
        email: str = "",
        first_name: str = "",
        last_name: str = "",
        role: str = UserRole.USER.value,
        is_active: bool = True,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.email = email.lower().strip()
        self.first_name = first_name
        self.last_name = last_name
        self.role = role
        self.is_active = is_active
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def full_name(self) -> str:
        """Display name (given name then family name)."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_guest(self) -> bool:
        return self.role == UserRole.GUEST.value

    def sort_key(self) -> tuple[str, str, str]:
        """Deterministic ordering: family name, given name, id."""
        return (self.last_name.lower(), self.first_name.lower(), str(self.id))

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User instance from Cassandra row."""
        return cls(
            id=row.id,
            email=row.email or "",
            first_name=row.first_name or "",
            last_name=row.last_name or "",
            role=row.role or UserRole.USER.value,
            is_active=row.is_active if row.is_active is not None else True,
            created_at=row.created_at,
            updated_at=getattr(row, "updated_at", None),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
