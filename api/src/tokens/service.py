"""Token management service.

Administrative operations over enrolment tokens:
- Generate a batch for an instance (amount and length validated here)
- Delete an unused token
- List tokens with secret / used-date filters
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from src.config.settings import Settings, get_settings
from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.core.logging import get_logger

from .issuer import TokenIssuer
from .models import Token
from .security import normalize_length
from .store import TokenStore


if TYPE_CHECKING:
    from src.enrolments.models import EnrolmentInstance
    from src.enrolments.service import EnrolmentService


logger = get_logger(__name__)

MIN_TOKENS_PER_BATCH = 1
MAX_TOKENS_PER_BATCH = 100


class TokenService:
    """Validates management requests before touching the token store."""

    def __init__(
        self,
        store: TokenStore,
        issuer: TokenIssuer,
        enrolments: "EnrolmentService",
        settings: Settings | None = None,
    ):
        self.store = store
        self.issuer = issuer
        self.enrolments = enrolments
        self.settings = settings or get_settings()

    async def generate_tokens(
        self,
        instance_id: UUID,
        amount: int,
        length: int | None = None,
    ) -> list[Token]:
        """Generate `amount` new tokens for an instance.

        Args:
            instance_id: Target instance
            amount: Number of tokens, 1 to 100
            length: Secret length, defaults to the configured token length
                and is rounded down to an even number

        Raises:
            ValidationError: If amount or length is out of range
            NotFoundError: If the instance does not exist
        """
        if not MIN_TOKENS_PER_BATCH <= amount <= MAX_TOKENS_PER_BATCH:
            raise ValidationError(
                "Invalid amount of tokens to generate. "
                "The amount must be between 1 and 100",
                code="invalid_token_amount",
            )
        length = normalize_length(
            self.settings.token_length if length is None else length
        )

        await self._require_instance(instance_id)
        return await self.issuer.generate(instance_id, amount, length)

    async def delete_token(self, token_id: UUID) -> None:
        """Delete a token that was never redeemed.

        Raises:
            NotFoundError: If the token does not exist
            ConflictError: If the token has been used
        """
        token = await self.store.get(token_id)
        if token is None:
            raise NotFoundError("Token not found", code="token_not_found")
        if token.is_used:
            raise ConflictError("Token used, cannot be deleted", code="token_used")

        if not await self.store.delete(token_id):
            # Redeemed between the read and the conditional delete
            raise ConflictError("Token used, cannot be deleted", code="token_used")

    async def list_tokens(
        self,
        instance_id: UUID,
        secret_contains: str | None = None,
        used_from: datetime | None = None,
        used_to: datetime | None = None,
    ) -> list[Token]:
        await self._require_instance(instance_id)
        return await self.store.list_tokens(
            instance_id,
            secret_contains=secret_contains,
            used_from=used_from,
            used_to=used_to,
        )

    async def get_token(self, token_id: UUID) -> Token:
        token = await self.store.get(token_id)
        if token is None:
            raise NotFoundError("Token not found", code="token_not_found")
        return token

    async def _require_instance(self, instance_id: UUID) -> "EnrolmentInstance":
        instance = await self.enrolments.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("Enrolment instance not found", code="instance_not_found")
        return instance
