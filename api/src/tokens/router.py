"""FastAPI router for token management.

Endpoints:
- POST /v1/enrol-token/instances/{id}/tokens (Course manage) - Generate tokens
- GET /v1/enrol-token/instances/{id}/tokens (Course manage) - List tokens
- DELETE /v1/enrol-token/tokens/{token_id} (Course manage) - Delete unused token
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.auth.permissions import Capability
from src.enrolments.dependencies import (
    CapabilityCheckerDep,
    EnrolmentServiceDep,
    EnrollingUser,
    require_instance_capability,
)

from .dependencies import TokenServiceDep
from .schemas import GenerateTokensRequest, TokenListResponse, TokenResponse


router = APIRouter(
    prefix="/v1/enrol-token",
    tags=["enrol-token-tokens"],
)


@router.post(
    "/instances/{instance_id}/tokens",
    response_model=TokenListResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate tokens",
    description="Generate between 1 and 100 single-use tokens for an instance.",
)
async def generate_tokens(
    instance_id: UUID,
    request: GenerateTokensRequest,
    user: EnrollingUser,
    service: TokenServiceDep,
    enrolments: EnrolmentServiceDep,
    checker: CapabilityCheckerDep,
) -> TokenListResponse:
    await require_instance_capability(
        instance_id, user, Capability.MANAGE, enrolments, checker
    )
    tokens = await service.generate_tokens(instance_id, request.amount, request.length)
    return TokenListResponse(
        items=[TokenResponse.from_token(t) for t in tokens],
        total=len(tokens),
    )


@router.get(
    "/instances/{instance_id}/tokens",
    response_model=TokenListResponse,
    summary="List tokens",
    description="List tokens of an instance, filtered by secret substring or use date.",
)
async def list_tokens(
    instance_id: UUID,
    user: EnrollingUser,
    service: TokenServiceDep,
    enrolments: EnrolmentServiceDep,
    checker: CapabilityCheckerDep,
    secret_contains: str | None = Query(default=None, max_length=255),
    used_from: datetime | None = Query(default=None),
    used_to: datetime | None = Query(default=None),
) -> TokenListResponse:
    await require_instance_capability(
        instance_id, user, Capability.MANAGE, enrolments, checker
    )
    tokens = await service.list_tokens(
        instance_id,
        secret_contains=secret_contains,
        used_from=used_from,
        used_to=used_to,
    )
    return TokenListResponse(
        items=[TokenResponse.from_token(t) for t in tokens],
        total=len(tokens),
    )


@router.delete(
    "/tokens/{token_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete token",
    description="Delete a token that has not been used. Used tokens are kept.",
)
async def delete_token(
    token_id: UUID,
    user: EnrollingUser,
    service: TokenServiceDep,
    enrolments: EnrolmentServiceDep,
    checker: CapabilityCheckerDep,
) -> None:
    token = await service.get_token(token_id)
    await require_instance_capability(
        token.instance_id, user, Capability.MANAGE, enrolments, checker
    )
    await service.delete_token(token_id)
