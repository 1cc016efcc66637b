"""Request and enrolment context using contextvars.

Each request gets an id, and authenticated requests a user id. Code working
on one course or instance (token redemption, batch jobs) binds those ids with
EnrolmentContext so every log line inside carries them without passing them
down explicitly.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)
instance_id_var: ContextVar[str | None] = ContextVar("instance_id", default=None)
job_var: ContextVar[str | None] = ContextVar("job", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def get_context() -> dict[str, Any]:
    """Get the non-empty context variables as a dictionary."""
    values = {
        "request_id": request_id_var.get(),
        "user_id": user_id_var.get(),
        "course_id": course_id_var.get(),
        "instance_id": instance_id_var.get(),
        "job": job_var.get(),
    }
    return {key: value for key, value in values.items() if value}


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request so values never leak into the next one.
    """
    request_id_var.set("")
    user_id_var.set(None)
    course_id_var.set(None)
    instance_id_var.set(None)
    job_var.set(None)


class EnrolmentContext:
    """Bind course, instance and job ids for a block of work.

    Usage:
        with EnrolmentContext(course_id=course.id, instance_id=instance.id):
            logger.info("token_redeemed")  # carries course_id and instance_id

    Only the values given are set; on exit each one is reset to what it was
    before, so nested blocks (a job, then one instance inside it) unwind
    cleanly.
    """

    def __init__(
        self,
        course_id: UUID | None = None,
        instance_id: UUID | None = None,
        job: str | None = None,
    ) -> None:
        self._values: list[tuple[ContextVar[str | None], str]] = []
        if course_id is not None:
            self._values.append((course_id_var, str(course_id)))
        if instance_id is not None:
            self._values.append((instance_id_var, str(instance_id)))
        if job is not None:
            self._values.append((job_var, job))
        self._tokens: list[tuple[ContextVar[str | None], Token]] = []

    def __enter__(self) -> "EnrolmentContext":
        self._tokens = [(var, var.set(value)) for var, value in self._values]
        return self

    def __exit__(self, *_: object) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []
