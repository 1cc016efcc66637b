"""Capability checks backed by course role assignments."""

from typing import TYPE_CHECKING
from uuid import UUID

from src.auth.models import User
from src.auth.permissions import (
    SELF_SERVICE_CAPABILITIES,
    Capability,
    is_admin,
    role_grants,
)

from .collaborators import CapabilityChecker


if TYPE_CHECKING:
    from .service import EnrolmentService


class RoleCapabilityChecker(CapabilityChecker):
    """Resolves capabilities from site role and course roles.

    - Site admins hold every capability.
    - Guests hold none.
    - Any other authenticated user holds the self-service capabilities.
    - Everything else comes from the user's roles in the course, plus
      per-role overrides (e.g. which role may hold the enrolment key).
    """

    def __init__(
        self,
        enrolments: "EnrolmentService",
        overrides: dict[str, frozenset[Capability]] | None = None,
    ):
        self.enrolments = enrolments
        self.overrides = overrides or {}

    async def has_capability(
        self, user: User, capability: Capability, course_id: UUID
    ) -> bool:
        if is_admin(user.role):
            return True
        if user.is_guest or not user.is_active:
            return False
        if capability in SELF_SERVICE_CAPABILITIES:
            return True

        assignments = await self.enrolments.list_user_roles(course_id, user.id)
        return any(self.role_has_capability(a.role, capability) for a in assignments)

    def role_has_capability(self, role: str, capability: Capability) -> bool:
        return role_grants(role, capability, self.overrides)
