# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Token storage.

Exclusive owner of token rows. Every write to enrol_tokens is a lightweight
transaction (Paxos), so concurrent redemptions of the same token serialize
on the `IF used_at = null` condition and exactly one caller wins.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.core.exceptions import DatabaseError
from src.core.logging import get_logger

from .models import Token


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)

# Max ids per IN (...) query
_FETCH_CHUNK_SIZE = 100


class TokenStore:
    """CRUD over enrolment tokens."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session.

        Args:
            session: Cassandra session with aexecute support
            keyspace: Target keyspace
        """
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_token = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrol_tokens
            (id, instance_id, secret, created_at, used_at, used_by)
            VALUES (?, ?, ?, ?, null, null)
            IF NOT EXISTS
        """)
        self._insert_lookup = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrol_tokens_by_instance
            (instance_id, secret, token_id, created_at)
            VALUES (?, ?, ?, ?)
        """)
        self._get_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.enrol_tokens WHERE id = ?"
        )
        self._get_by_ids = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.enrol_tokens WHERE id IN ?"
        )
        self._lookup_by_secret = self.session.prepare(f"""
            SELECT token_id FROM {self.keyspace}.enrol_tokens_by_instance
            WHERE instance_id = ? AND secret = ?
        """)
        self._lookup_by_instance = self.session.prepare(f"""
            SELECT token_id FROM {self.keyspace}.enrol_tokens_by_instance
            WHERE instance_id = ?
        """)
        self._mark_used = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrol_tokens
            SET used_at = ?, used_by = ?
            WHERE id = ?
            IF used_at = null
        """)
        self._release = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrol_tokens
            SET used_at = null, used_by = null
            WHERE id = ?
            IF used_by = ? AND used_at = ?
        """)
        self._delete_unused = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrol_tokens
            WHERE id = ?
            IF used_at = null
        """)
        self._delete_lookup = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrol_tokens_by_instance
            WHERE instance_id = ? AND secret = ? AND token_id = ?
        """)

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def create(self, instance_id: UUID, secret: str) -> Token:
        """Persist a new unused token.

        Raises:
            DatabaseError: If database operation fails
        """
        token = Token(instance_id=instance_id, secret=secret)

        try:
            result = await self.session.aexecute(
                self._insert_token,
                [token.id, token.instance_id, token.secret, token.created_at],
            )
            if not result.was_applied:
                raise DatabaseError("Token id already taken")
            await self.session.aexecute(
                self._insert_lookup,
                [token.instance_id, token.secret, token.id, token.created_at],
            )
        except DatabaseError:
            logger.error(
                "token_id_collision", token_id=str(token.id), instance_id=str(instance_id)
            )
            raise
        except Exception as e:
            logger.exception(
                "database_error_create_token",
                token_id=str(token.id),
                instance_id=str(instance_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DatabaseError(
                "Failed to store enrolment token", original_error=e
            ) from e

        return token

    async def mark_used(self, token_id: UUID, user_id: UUID, timestamp: datetime) -> bool:
        """Consume a token with a single conditional write.

        Returns:
            True if this call consumed the token, False if it was already used
            (or does not exist)
        """
        result = await self.session.aexecute(
            self._mark_used, [timestamp, user_id, token_id]
        )
        applied = bool(result.was_applied)

        if applied:
            logger.info("token_marked_used", token_id=str(token_id), user_id=str(user_id))
        else:
            logger.info("token_mark_used_lost", token_id=str(token_id), user_id=str(user_id))

        return applied

    async def release(self, token_id: UUID, user_id: UUID, used_at: datetime) -> bool:
        """Make a token unused again, only if it is still held by this redemption.

        Returns:
            True if released, False if the token is not in that state
        """
        result = await self.session.aexecute(self._release, [token_id, user_id, used_at])
        applied = bool(result.was_applied)
        logger.warning(
            "token_released", token_id=str(token_id), user_id=str(user_id), applied=applied
        )
        return applied

    async def delete(self, token_id: UUID) -> bool:
        """Delete a token that was never used.

        Returns:
            True if deleted, False if it has been used (or does not exist)
        """
        token = await self.get(token_id)
        if token is None:
            return False

        result = await self.session.aexecute(self._delete_unused, [token_id])
        if not result.was_applied:
            return False

        await self.session.aexecute(
            self._delete_lookup, [token.instance_id, token.secret, token.id]
        )
        logger.info("token_deleted", token_id=str(token_id))
        return True

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, token_id: UUID) -> Token | None:
        rows = await self.session.aexecute(self._get_by_id, [token_id])
        row = rows.one()
        return Token.from_row(row) if row else None

    async def find_unused(self, instance_id: UUID, secret: str) -> Token | None:
        """Find the oldest unused token with this secret on this instance."""
        rows = await self.session.aexecute(self._lookup_by_secret, [instance_id, secret])
        token_ids = [row.token_id for row in rows]

        candidates = [t for t in await self._fetch_many(token_ids) if not t.is_used]
        if not candidates:
            return None
        return min(candidates, key=lambda t: (t.created_at, str(t.id)))

    async def list_tokens(
        self,
        instance_id: UUID,
        secret_contains: str | None = None,
        used_from: datetime | None = None,
        used_to: datetime | None = None,
    ) -> list[Token]:
        """List tokens of an instance, oldest first.

        Args:
            instance_id: Instance to list
            secret_contains: Keep tokens whose secret contains this text
            used_from: Keep tokens used at or after this time
            used_to: Keep tokens used at or before this time

        A used range only matches used tokens.
        """
        rows = await self.session.aexecute(self._lookup_by_instance, [instance_id])
        tokens = await self._fetch_many([row.token_id for row in rows])

        filtered = []
        for token in tokens:
            if secret_contains and secret_contains.lower() not in token.secret.lower():
                continue
            if used_from or used_to:
                if token.used_at is None:
                    continue
                if used_from and token.used_at < used_from:
                    continue
                if used_to and token.used_at > used_to:
                    continue
            filtered.append(token)

        return sorted(filtered, key=lambda t: (t.created_at, str(t.id)))

    async def _fetch_many(self, token_ids: list[UUID]) -> list[Token]:
        tokens: list[Token] = []
        for start in range(0, len(token_ids), _FETCH_CHUNK_SIZE):
            chunk = token_ids[start : start + _FETCH_CHUNK_SIZE]
            rows = await self.session.aexecute(self._get_by_ids, [chunk])
            tokens.extend(Token.from_row(row) for row in rows)
        return tokens
