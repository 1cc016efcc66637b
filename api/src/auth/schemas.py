"""Pydantic schemas for authentication.

Request/Response models for the authenticated principal.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class CurrentUserResponse(BaseModel):
    """Principal extracted from the access token."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    role: str
    issued_at: datetime | None = None

