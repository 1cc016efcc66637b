"""FastAPI dependencies for token enrolment.

Provides dependency injection for:
- Enrolment services (gateway, instances, users, courses, batch jobs)
- The enrolling user, resolved from the access token
- Course capability checks
- Rate limiting of token redemption (Redis-backed)
"""

from collections.abc import Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status

from src.auth.dependencies import CurrentUser
from src.auth.models import User
from src.auth.permissions import Capability, UserRole
from src.auth.service import UserService
from src.config.settings import Settings, get_settings
from src.core.exceptions import AccessDeniedError, NotFoundError
from src.core.logging import get_logger
from src.core.redis import incr_window
from src.courses.service import CourseService
from src.jobs.expiry_notifier import ExpiryNotifier
from src.jobs.reconciliation import ReconciliationEngine

from .collaborators import CapabilityChecker
from .gateway import EnrolmentGateway
from .models import EnrolmentInstance
from .service import EnrolmentService


logger = get_logger(__name__)


# ==============================================================================
# Service Dependency Injection
# ==============================================================================

# Service getter functions (set from main.py)
_getters: dict[str, Callable[[], object]] = {}


def set_service_getter(name: str, getter: Callable[[], object]) -> None:
    """Register the getter for one service.

    Called from main.py to inject the service factories.
    """
    _getters[name] = getter


def _get_service(name: str) -> object:
    getter = _getters.get(name)
    if getter is None:
        msg = f"{name} not configured"
        raise RuntimeError(msg)
    return getter()


def get_enrolment_gateway() -> EnrolmentGateway:
    return _get_service("EnrolmentGateway")  # type: ignore[return-value]


def get_enrolment_service() -> EnrolmentService:
    return _get_service("EnrolmentService")  # type: ignore[return-value]


def get_user_service() -> UserService:
    return _get_service("UserService")  # type: ignore[return-value]


def get_course_service() -> CourseService:
    return _get_service("CourseService")  # type: ignore[return-value]


def get_capability_checker() -> CapabilityChecker:
    return _get_service("CapabilityChecker")  # type: ignore[return-value]


def get_reconciliation_engine() -> ReconciliationEngine:
    return _get_service("ReconciliationEngine")  # type: ignore[return-value]


def get_expiry_notifier() -> ExpiryNotifier:
    return _get_service("ExpiryNotifier")  # type: ignore[return-value]


# Type aliases for dependency injection
EnrolmentGatewayDep = Annotated[EnrolmentGateway, Depends(get_enrolment_gateway)]
EnrolmentServiceDep = Annotated[EnrolmentService, Depends(get_enrolment_service)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
CourseServiceDep = Annotated[CourseService, Depends(get_course_service)]
CapabilityCheckerDep = Annotated[CapabilityChecker, Depends(get_capability_checker)]
ReconciliationEngineDep = Annotated[
    ReconciliationEngine, Depends(get_reconciliation_engine)
]
ExpiryNotifierDep = Annotated[ExpiryNotifier, Depends(get_expiry_notifier)]


# ==============================================================================
# Enrolling User
# ==============================================================================


async def get_enrolling_user(
    principal: CurrentUser,
    users: UserServiceDep,
) -> User:
    """Resolve the token principal to a stored user.

    Guest sessions have no stored account; they get a transient guest User
    so the availability rules can reject them with the proper message.

    Raises:
        NotFoundError: If a non-guest principal has no account
    """
    user = await users.get_user(principal.id)
    if user is not None:
        return user

    if principal.role == UserRole.GUEST.value:
        return User(id=principal.id, email=principal.email, role=UserRole.GUEST.value)

    raise NotFoundError("User not found", code="user_not_found")


EnrollingUser = Annotated[User, Depends(get_enrolling_user)]


# ==============================================================================
# Capability Checks
# ==============================================================================


async def require_course_capability(
    user: User,
    course_id: UUID,
    capability: Capability,
    checker: CapabilityChecker,
) -> None:
    """Raise unless the user holds `capability` in the course.

    Raises:
        AccessDeniedError: If the capability is missing
    """
    if not await checker.has_capability(user, capability, course_id):
        logger.warning(
            "capability_denied",
            user_id=str(user.id),
            course_id=str(course_id),
            capability=capability.value,
        )
        raise AccessDeniedError(
            "Sorry, but you do not currently have permissions to do that",
            code="nopermissions",
        )


async def require_instance_capability(
    instance_id: UUID,
    user: User,
    capability: Capability,
    enrolments: EnrolmentService,
    checker: CapabilityChecker,
) -> EnrolmentInstance:
    """Load an instance and check the capability on its course.

    Raises:
        NotFoundError: If the instance does not exist
        AccessDeniedError: If the capability is missing
    """
    instance = await enrolments.get_instance(instance_id)
    if instance is None:
        raise NotFoundError("Enrolment instance not found", code="instance_not_found")
    await require_course_capability(user, instance.course_id, capability, checker)
    return instance


# ==============================================================================
# Rate Limiting (Redis-backed)
# ==============================================================================

RATE_LIMIT_WINDOW = 60  # seconds


async def _check_rate_limit(
    key: str,
    limit: int,
    window: int,
) -> tuple[bool, int, int]:
    """Check and update rate limit for a key.

    Uses Redis INCR with TTL for atomic rate limiting.

    Args:
        key: Rate limit key (e.g., "rate_limit:enrol_token:redeem:<user id>")
        limit: Maximum requests allowed in window
        window: Time window in seconds

    Returns:
        Tuple of (is_allowed, current_count, remaining)
    """
    try:
        current = await incr_window(key, window)
    except Exception as e:
        # Redis error - log and allow (fail-open)
        logger.error(
            "rate_limit_redis_error",
            key=key,
            error=str(e),
            action="allowing_request",
        )
        return True, 0, limit

    if current is None:
        logger.warning(
            "rate_limit_redis_unavailable",
            key=key,
            action="allowing_request",
        )
        return True, 0, limit

    is_allowed = current <= limit
    remaining = max(0, limit - current)

    if not is_allowed:
        logger.warning(
            "rate_limit_exceeded",
            key=key,
            current=current,
            limit=limit,
        )

    return is_allowed, current, remaining


async def rate_limit_redeem(
    principal: CurrentUser,
    settings: Annotated[Settings, Depends(get_settings)],
) -> None:
    """Rate limit token redemption per user.

    Slows down guessing of token secrets. The limit comes from
    settings.redeem_rate_limit_per_minute.

    Raises:
        HTTPException(429): If rate limit exceeded
    """
    limit = settings.redeem_rate_limit_per_minute
    key = f"rate_limit:enrol_token:redeem:{principal.id}"

    is_allowed, current, remaining = await _check_rate_limit(
        key=key,
        limit=limit,
        window=RATE_LIMIT_WINDOW,
    )

    if not is_allowed:
        logger.warning(
            "rate_limit_redeem_blocked",
            user_id=str(principal.id),
            requests=current,
            limit=limit,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many enrolment attempts. Please wait a minute before trying again.",
            headers={
                "Retry-After": str(RATE_LIMIT_WINDOW),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": str(remaining),
            },
        )


RateLimitRedeem = Annotated[None, Depends(rate_limit_redeem)]
