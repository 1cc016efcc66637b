"""Resolution of message senders.

- Welcome messages come from the contact selected by the instance's
  welcome_send_mode.
- Expiry summaries go to the course "enroller": the highest-authority user
  holding the manage capability, or the site support contact.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from src.auth.models import User
from src.auth.permissions import Capability, role_authority
from src.config.settings import Settings, get_settings
from src.core.logging import get_logger

from .collaborators import CapabilityChecker
from .models import Contact, EnrolmentInstance, RoleAssignment, WelcomeSendMode


if TYPE_CHECKING:
    from src.auth.service import UserService

    from .service import EnrolmentService


logger = get_logger(__name__)


class ContactResolver:
    """Picks deterministic sender/recipient identities for a course."""

    def __init__(
        self,
        enrolments: "EnrolmentService",
        users: "UserService",
        capabilities: CapabilityChecker,
        settings: Settings | None = None,
    ):
        self.enrolments = enrolments
        self.users = users
        self.capabilities = capabilities
        self.settings = settings or get_settings()

    def no_reply(self) -> Contact:
        return Contact(
            email=self.settings.noreply_address, name=self.settings.noreply_name
        )

    def support_contact(self) -> Contact:
        return Contact(
            email=self.settings.support_contact_address,
            name=self.settings.support_contact_name,
        )

    async def resolve_contact(self, mode: WelcomeSendMode, course_id: UUID) -> Contact:
        """Resolve the sender for a welcome message.

        Args:
            mode: course_contact, key_holder or no_reply
            course_id: Course context

        Returns:
            The first matching user as a Contact, else the no-reply identity
        """
        if mode == WelcomeSendMode.COURSE_CONTACT:
            contact = await self._first_course_contact(course_id)
        elif mode == WelcomeSendMode.KEY_HOLDER:
            contact = await self._first_key_holder(course_id)
        else:
            contact = None

        return contact or self.no_reply()

    async def resolve_enroller(
        self,
        instance: EnrolmentInstance,
        memo: dict[UUID, Contact] | None = None,
    ) -> Contact:
        """Resolve who is credited with enrolments on an instance's course.

        Args:
            instance: Instance whose course is inspected
            memo: Per-run cache keyed by course id
        """
        if memo is not None and instance.course_id in memo:
            return memo[instance.course_id]

        assignments = await self.enrolments.list_role_assignments(instance.course_id)
        managers = sorted(
            (
                a
                for a in assignments
                if self.capabilities.role_has_capability(a.role, Capability.MANAGE)
            ),
            key=lambda a: (role_authority(a.role), a.assigned_at, str(a.user_id)),
        )
        users = await self.users.get_users([a.user_id for a in managers])

        enroller = None
        for assignment in managers:
            user = users.get(assignment.user_id)
            if user is not None and user.is_active:
                enroller = Contact.from_user(user)
                break

        if enroller is None:
            logger.debug(
                "enroller_fallback_support_contact",
                course_id=str(instance.course_id),
            )
            enroller = self.support_contact()

        if memo is not None:
            memo[instance.course_id] = enroller
        return enroller

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _first_course_contact(self, course_id: UUID) -> Contact | None:
        assignments = await self.enrolments.list_role_assignments(course_id)
        users = await self._active_users(assignments)

        # Priority list first, then name order inside each role
        for role in self.settings.course_contact_roles:
            holders = {a.user_id for a in assignments if a.role == role}
            candidates = sorted(
                (u for uid, u in users.items() if uid in holders), key=User.sort_key
            )
            if candidates:
                return Contact.from_user(candidates[0])
        return None

    async def _first_key_holder(self, course_id: UUID) -> Contact | None:
        assignments = await self.enrolments.list_role_assignments(course_id)
        holders = [
            a
            for a in assignments
            if self.capabilities.role_has_capability(a.role, Capability.HOLD_KEY)
        ]
        users = await self._active_users(holders)
        if not users:
            return None
        return Contact.from_user(min(users.values(), key=User.sort_key))

    async def _active_users(self, assignments: list[RoleAssignment]) -> dict[UUID, User]:
        user_ids = list({a.user_id for a in assignments})
        users = await self.users.get_users(user_ids)
        return {uid: u for uid, u in users.items() if u.is_active}
