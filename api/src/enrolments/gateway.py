"""Token redemption.

redeem() turns a secret into an enrolment:

1. plugin switched off -> rejected (code 1)
2. availability rules -> rejected with the rule's message (code 1)
3. no unused token with that secret -> rejected (code 4)
4. consume the token with a conditional write; if another request consumed
   it first the call is rejected (code 4) like any other invalid token and
   nothing has been written
5. write enrolment + role (one logged batch); if that fails the token is
   released again, conditioned on this call's own used_by/used_at
6. welcome message, best effort

enrol_by_token() runs redeem() over a course's enabled instances in creation
order and stops at the first success, collecting one warning per failed
instance.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from src.auth.models import User
from src.auth.permissions import Capability, is_admin
from src.config.settings import Settings, get_settings
from src.core.context import EnrolmentContext
from src.core.exceptions import AccessDeniedError, NotFoundError
from src.core.logging import get_logger
from src.tokens.models import Token
from src.tokens.store import TokenStore

from .availability import Available, AvailabilityEvaluator, Unavailable, UnavailableReason
from .collaborators import CapabilityChecker, Messenger
from .contacts import ContactResolver
from .messages import MSG_CANNOT_ENROL, MSG_INVALID_TOKEN, render_welcome
from .models import Contact, EnrolmentInstance, UserEnrolment, WelcomeSendMode


if TYPE_CHECKING:
    from src.courses.service import CourseService

    from .service import EnrolmentService


logger = get_logger(__name__)


INFO_REQUIRED_PARAMS = ["enroltoken"]
INFO_FOLLOW_UP_OPERATION = "enrol_token_get_instance_info"


class RejectionCode(IntEnum):
    ENROL_DISABLED = 1
    INVALID_TOKEN = 4


# ==============================================================================
# Results
# ==============================================================================


@dataclass(frozen=True)
class Enrolled:
    enrolment: UserEnrolment
    token: Token


@dataclass(frozen=True)
class Rejected:
    code: RejectionCode
    message: str
    reason: UnavailableReason | None = None


RedeemResult = Enrolled | Rejected


@dataclass(frozen=True)
class EnrolWarning:
    instance_id: UUID
    code: RejectionCode
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "item": "instance",
            "instance_id": self.instance_id,
            "code": int(self.code),
            "message": self.message,
        }


@dataclass
class EnrolByTokenResult:
    status: bool
    warnings: list[EnrolWarning] = field(default_factory=list)
    enrolment: UserEnrolment | None = None


@dataclass(frozen=True)
class InstanceInfo:
    id: UUID
    course_id: UUID
    name: str
    status: str
    enrol_available: bool
    type: str = "token"
    required_params: list[str] | None = None
    follow_up_operation: str | None = None
    message: str | None = None


class EnrolmentGateway:
    """Redeems tokens into enrolments."""

    def __init__(
        self,
        enrolments: "EnrolmentService",
        tokens: TokenStore,
        availability: AvailabilityEvaluator,
        courses: "CourseService",
        capabilities: CapabilityChecker,
        contacts: ContactResolver,
        messenger: Messenger,
        settings: Settings | None = None,
    ):
        self.enrolments = enrolments
        self.tokens = tokens
        self.availability = availability
        self.courses = courses
        self.capabilities = capabilities
        self.contacts = contacts
        self.messenger = messenger
        self.settings = settings or get_settings()

    # ==========================================================================
    # Redemption
    # ==========================================================================

    async def redeem(
        self,
        instance: EnrolmentInstance,
        secret: str,
        user: User,
        now: datetime | None = None,
    ) -> RedeemResult:
        """Redeem a secret on one instance.

        Returns:
            Enrolled on success, Rejected for every policy or token failure

        Raises:
            DatabaseError: If the enrolment write fails (the token is released)
        """
        with EnrolmentContext(course_id=instance.course_id, instance_id=instance.id):
            return await self._redeem(instance, secret, user, now)

    async def _redeem(
        self,
        instance: EnrolmentInstance,
        secret: str,
        user: User,
        now: datetime | None,
    ) -> RedeemResult:
        if not self.settings.token_enrol_enabled:
            return Rejected(RejectionCode.ENROL_DISABLED, MSG_CANNOT_ENROL)

        now = now or datetime.now(UTC)

        availability = await self.availability.can_enrol(instance, user, now=now)
        if isinstance(availability, Unavailable):
            logger.info(
                "token_redeem_unavailable",
                user_id=str(user.id),
                reason=availability.reason.value,
            )
            return Rejected(
                RejectionCode.ENROL_DISABLED, availability.message, availability.reason
            )

        token = await self.tokens.find_unused(instance.id, secret)
        if token is None:
            logger.info(
                "token_redeem_invalid",
                user_id=str(user.id),
            )
            return Rejected(RejectionCode.INVALID_TOKEN, MSG_INVALID_TOKEN)

        if not await self.tokens.mark_used(token.id, user.id, now):
            logger.info(
                "token_race_lost",
                token_id=str(token.id),
                user_id=str(user.id),
            )
            return Rejected(RejectionCode.INVALID_TOKEN, MSG_INVALID_TOKEN)

        time_end = now + instance.enrol_period if instance.enrol_period else None
        try:
            enrolment = await self.enrolments.enrol_user(instance, user.id, now, time_end)
        except Exception:
            logger.exception(
                "token_enrol_failed",
                token_id=str(token.id),
                user_id=str(user.id),
            )
            await self.tokens.release(token.id, user.id, now)
            raise

        logger.info(
            "token_redeemed",
            token_id=str(token.id),
            user_id=str(user.id),
        )

        if instance.welcome_send_mode != WelcomeSendMode.DISABLED:
            await self._send_welcome(instance, user)

        return Enrolled(enrolment=enrolment, token=token)

    async def enrol_by_token(
        self,
        course_id: UUID,
        secret: str,
        user: User,
        instance_id: UUID | None = None,
    ) -> EnrolByTokenResult:
        """Redeem a secret on a course, trying each enabled instance in turn.

        Raises:
            NotFoundError: If the course or a matching enabled instance is missing
            AccessDeniedError: If the course is hidden from the user
        """
        course = await self.courses.get_course(course_id)
        if course is None:
            raise NotFoundError("Course not found", code="course_not_found")
        if not course.visible and not is_admin(user.role):
            raise AccessDeniedError("Course is hidden", code="coursehidden")

        with EnrolmentContext(course_id=course_id):
            candidates = [
                i for i in await self.enrolments.list_instances(course_id) if i.is_enabled
            ]
            if instance_id is not None:
                candidates = [i for i in candidates if i.id == instance_id]
            if not candidates:
                raise NotFoundError(MSG_CANNOT_ENROL, code="canntenrol")

            warnings: list[EnrolWarning] = []
            for instance in candidates:
                result = await self.redeem(instance, secret, user)
                if isinstance(result, Enrolled):
                    return EnrolByTokenResult(
                        status=True, warnings=warnings, enrolment=result.enrolment
                    )
                warnings.append(EnrolWarning(instance.id, result.code, result.message))

            return EnrolByTokenResult(status=False, warnings=warnings)

    # ==========================================================================
    # Instance Info / Self-unenrol
    # ==========================================================================

    async def get_instance_info(self, instance_id: UUID, user: User) -> InstanceInfo:
        """Describe an instance and whether the user could self-enrol now.

        Raises:
            NotFoundError: If the instance does not exist
        """
        instance = await self.enrolments.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("Enrolment instance not found", code="instance_not_found")

        availability = await self.availability.can_enrol(
            instance, user, check_existing=False
        )
        available = isinstance(availability, Available)

        return InstanceInfo(
            id=instance.id,
            course_id=instance.course_id,
            name=instance.display_name,
            status=instance.status.value,
            enrol_available=available,
            required_params=list(INFO_REQUIRED_PARAMS) if available else None,
            follow_up_operation=INFO_FOLLOW_UP_OPERATION if available else None,
            message=None if available else availability.message,
        )

    async def unenrol_self(self, instance_id: UUID, user: User) -> None:
        """Remove the caller's own enrolment from an instance.

        Raises:
            NotFoundError: If the instance or the enrolment does not exist
            AccessDeniedError: If the user may not unenrol themselves
        """
        instance = await self.enrolments.get_instance(instance_id)
        if instance is None:
            raise NotFoundError("Enrolment instance not found", code="instance_not_found")

        enrolment = await self.enrolments.get_user_enrolment(instance_id, user.id)
        if enrolment is None:
            raise NotFoundError("You are not enrolled through this instance", code="not_enrolled")

        if not await self.capabilities.has_capability(
            user, Capability.UNENROL_SELF, instance.course_id
        ):
            raise AccessDeniedError("You cannot unenrol from this course", code="unenrolself")

        await self.enrolments.unenrol_user(enrolment)
        logger.info(
            "user_unenrolled_self",
            instance_id=str(instance_id),
            user_id=str(user.id),
        )

    # ==========================================================================
    # Welcome Message
    # ==========================================================================

    async def _send_welcome(self, instance: EnrolmentInstance, user: User) -> None:
        try:
            course = await self.courses.get_course(instance.course_id)
            if course is None:
                return

            sender = await self.contacts.resolve_contact(
                instance.welcome_send_mode, instance.course_id
            )
            message = render_welcome(
                course,
                user,
                instance.welcome_message,
                base_url=self.settings.app_base_url,
                site_name=self.settings.app_name,
            )
            await self.messenger.send(
                sender,
                Contact.from_user(user),
                message.subject,
                message.body_text,
                message.body_html,
            )
        except Exception as e:
            # Redemption already succeeded
            logger.warning(
                "welcome_message_failed",
                instance_id=str(instance.id),
                user_id=str(user.id),
                error=str(e),
                error_type=type(e).__name__,
            )
