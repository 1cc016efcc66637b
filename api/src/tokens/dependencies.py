"""FastAPI dependencies for token management."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from .service import TokenService


# Service getter function (set from main.py)
_service_getter: Callable[[], TokenService] | None = None


def set_service_getter(getter: Callable[[], TokenService]) -> None:
    """Set the service getter function.

    Called from main.py to inject the service factory.
    """
    global _service_getter  # noqa: PLW0603 - necessary for DI pattern
    _service_getter = getter


def get_token_service() -> TokenService:
    """Get TokenService instance.

    Raises:
        RuntimeError: If service is not configured
    """
    if _service_getter is None:
        msg = "TokenService not configured"
        raise RuntimeError(msg)
    return _service_getter()


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
