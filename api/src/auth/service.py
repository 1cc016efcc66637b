# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""User service layer.

Business logic for:
- User creation (administrative)
- User lookups by id and email
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.auth.models import User
from src.auth.permissions import UserRole
from src.core.exceptions import ConflictError, DatabaseError
from src.core.logging import get_logger


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


class UserService:
    """Service for user records."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute support
            keyspace: Keyspace name for queries
        """
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for better performance."""
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_users_by_ids = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id IN ?"
        )
        self._get_user_by_email = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE email = ?"
        )
        self._insert_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.users
            (id, email, first_name, last_name, role, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # User Operations
    # ==========================================================================

    async def get_user(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        rows = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = rows.one()
        return User.from_row(row) if row else None

    async def get_users(self, user_ids: list[UUID]) -> dict[UUID, User]:
        """Load several users at once, keyed by id. Unknown ids are skipped."""
        if not user_ids:
            return {}
        rows = await self.session.aexecute(self._get_users_by_ids, [list(user_ids)])
        return {row.id: User.from_row(row) for row in rows}

    async def get_user_by_email(self, email: str) -> User | None:
        """Find user by email address."""
        rows = await self.session.aexecute(self._get_user_by_email, [email.lower()])
        row = rows.one()
        return User.from_row(row) if row else None

    async def create_user(
        self,
        email: str,
        first_name: str,
        last_name: str,
        role: str = UserRole.STUDENT.value,
    ) -> User:
        """Create a user.

        Raises:
            ConflictError: If the email is already registered
            DatabaseError: If the write fails
        """
        if await self.get_user_by_email(email):
            raise ConflictError("Email already registered", code="user_exists")

        user = User(email=email, first_name=first_name, last_name=last_name, role=role)
        now = datetime.now(UTC)

        try:
            await self.session.aexecute(
                self._insert_user,
                [
                    user.id,
                    user.email,
                    user.first_name,
                    user.last_name,
                    user.role,
                    user.is_active,
                    user.created_at,
                    now,
                ],
            )
        except Exception as e:
            logger.exception(
                "database_error_create_user",
                user_id=str(user.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError("Failed to create user", original_error=e) from e

        logger.info("user_created", user_id=str(user.id), role=user.role)
        return user
