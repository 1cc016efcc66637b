"""Pydantic schemas for token management.

Request/Response models for:
- Generating a batch of tokens
- Listing tokens
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import Token
from .security import MAX_TOKEN_LENGTH, MIN_TOKEN_LENGTH


class GenerateTokensRequest(BaseModel):
    """Request to generate tokens for an instance.

    The amount range is checked by the service so the error message is the
    same for every caller.
    """

    amount: int = Field(description="Number of tokens to generate (1-100)")
    length: int | None = Field(
        default=None,
        ge=MIN_TOKEN_LENGTH,
        le=MAX_TOKEN_LENGTH,
        description="Secret length, rounded down to an even number",
    )


class TokenResponse(BaseModel):
    """A single token."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    instance_id: UUID
    secret: str
    created_at: datetime
    used_at: datetime | None = None
    used_by: UUID | None = None

    @classmethod
    def from_token(cls, token: Token) -> "TokenResponse":
        return cls(
            id=token.id,
            instance_id=token.instance_id,
            secret=token.secret,
            created_at=token.created_at,
            used_at=token.used_at,
            used_by=token.used_by,
        )


class TokenListResponse(BaseModel):
    """Response for listing or generating tokens."""

    items: list[TokenResponse]
    total: int
