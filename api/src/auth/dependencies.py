"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from JWT
- Role-based access control
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from src.auth.permissions import UserRole, has_permission
from src.auth.schemas import CurrentUserResponse
from src.auth.security import decode_access_token
from src.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Args:
        request: FastAPI request

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def _principal_from_payload(payload: dict) -> CurrentUserResponse:
    issued_at = payload.get("iat")
    return CurrentUserResponse(
        id=payload["sub"],
        email=payload.get("email", ""),
        role=payload.get("role", UserRole.USER.value),
        issued_at=datetime.fromtimestamp(issued_at, tz=UTC) if issued_at else None,
    )


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> CurrentUserResponse:
    """Get current authenticated user from JWT token.

    This is the main authentication dependency.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    # Set user_id in context for logging
    set_user_id(payload["sub"])

    return _principal_from_payload(payload)


def require_permission(required_role: UserRole):
    """Create dependency requiring at least a permission level.

    Uses hierarchical comparison: ADMIN >= TEACHER >= STUDENT >= USER >= GUEST

    Example:
        @router.get("/teacher-area")
        async def teacher_endpoint(
            user: Annotated[CurrentUserResponse, Depends(require_permission(UserRole.TEACHER))]
        ):
            ...
    """

    async def permission_checker(
        user: Annotated[CurrentUserResponse, Depends(get_current_user)],
    ) -> CurrentUserResponse:
        if not has_permission(user.role, required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission",
            )

        return user

    return permission_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

# Basic authenticated user (guests included)
CurrentUser = Annotated[CurrentUserResponse, Depends(get_current_user)]

# Role-specific dependencies
AdminUser = Annotated[CurrentUserResponse, Depends(require_permission(UserRole.ADMIN))]

