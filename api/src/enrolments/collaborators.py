"""Contracts the enrolment engine depends on.

The gateway, availability evaluator and batch jobs only talk to these
abstract services. Production wiring uses the Cassandra/email backed
implementations; tests substitute in-memory doubles.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from src.auth.models import User
from src.auth.permissions import Capability
from src.cohorts.models import Cohort

from .models import Contact


class CapabilityChecker(ABC):
    """Answers "may this user do X in this course?"."""

    @abstractmethod
    async def has_capability(
        self, user: User, capability: Capability, course_id: UUID
    ) -> bool:
        """Check a capability for a user in a course context."""
        ...

    @abstractmethod
    def role_has_capability(self, role: str, capability: Capability) -> bool:
        """Check whether a course role grants a capability."""
        ...


class CohortChecker(ABC):
    """Cohort lookup and membership."""

    @abstractmethod
    async def get_cohort(self, cohort_id: UUID) -> Cohort | None:
        """Return the cohort, or None if it no longer exists."""
        ...

    @abstractmethod
    async def is_member(self, cohort_id: UUID, user_id: UUID) -> bool:
        """Check cohort membership."""
        ...


class ActivityTracker(ABC):
    """Last-access timestamps used by the inactivity rule."""

    @abstractmethod
    async def get_last_access(self, user_id: UUID) -> datetime | None:
        """Last time the user was seen anywhere, None if never."""
        ...

    @abstractmethod
    async def get_course_access(self, user_id: UUID, course_id: UUID) -> datetime | None:
        """Last time the user accessed the course, None if never."""
        ...


class Messenger(ABC):
    """Message delivery."""

    @abstractmethod
    async def send(
        self,
        sender: Contact,
        recipient: Contact,
        subject: str,
        body_text: str,
        body_html: str,
    ) -> bool:
        """Deliver one message.

        Returns:
            True if the message was accepted for delivery
        """
        ...
