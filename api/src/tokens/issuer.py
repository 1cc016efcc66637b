"""Batch token issuance."""

from uuid import UUID

from src.core.logging import get_logger

from .models import Token
from .security import generate_secret
from .store import TokenStore


logger = get_logger(__name__)


class TokenIssuer:
    """Generates batches of random tokens for an instance.

    Callers validate the amount and normalize the length beforehand. Secrets
    are unique within a batch; uniqueness across batches is left to the
    secret length.
    """

    def __init__(self, store: TokenStore):
        self.store = store

    async def generate(self, instance_id: UUID, count: int, length: int) -> list[Token]:
        seen: set[str] = set()
        tokens: list[Token] = []

        while len(tokens) < count:
            secret = generate_secret(length)
            if secret in seen:
                continue
            seen.add(secret)
            tokens.append(await self.store.create(instance_id, secret))

        logger.info(
            "tokens_generated",
            instance_id=str(instance_id),
            count=len(tokens),
            length=length,
        )
        return tokens
