"""Self-enrolment availability.

can_enrol() checks the rules below in a fixed order and stops at the first
failure, since each failure carries its own user-facing message:

1. guest user (only when check_existing)
2. already actively enrolled (only when check_existing)
3. instance disabled
4. enrolment window not started
5. enrolment window ended
6. new enrolments switched off
7. capacity reached
8. cohort restriction (a deleted cohort blocks enrolment)
9. self-enrol capability
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from src.auth.models import User
from src.auth.permissions import Capability

from .collaborators import CapabilityChecker, CohortChecker
from .messages import (
    MSG_CANNOT_ENROL,
    MSG_COHORT_ONLY,
    MSG_GUEST_ACCESS,
    MSG_MAX_ENROLLED,
    MSG_TOO_EARLY,
    MSG_TOO_LATE,
    format_date,
)
from .models import EnrolmentInstance


if TYPE_CHECKING:
    from .service import EnrolmentService


class UnavailableReason(str, Enum):
    GUEST_ACCESS = "guest_access"
    ALREADY_ENROLLED = "already_enrolled"
    INSTANCE_DISABLED = "instance_disabled"
    TOO_EARLY = "too_early"
    TOO_LATE = "too_late"
    NEW_ENROLMENTS_DISABLED = "new_enrolments_disabled"
    MAX_ENROLLED = "max_enrolled"
    COHORT_RESTRICTED = "cohort_restricted"
    COHORT_MISSING = "cohort_missing"
    NO_CAPABILITY = "no_capability"


@dataclass(frozen=True)
class Available:
    """Self-enrolment is currently permitted."""


@dataclass(frozen=True)
class Unavailable:
    """Self-enrolment is refused, with the message shown to the user."""

    reason: UnavailableReason
    message: str


Availability = Available | Unavailable


class AvailabilityEvaluator:
    """Decides whether a user may self-enrol through an instance."""

    def __init__(
        self,
        enrolments: "EnrolmentService",
        cohorts: CohortChecker,
        capabilities: CapabilityChecker,
    ):
        self.enrolments = enrolments
        self.cohorts = cohorts
        self.capabilities = capabilities

    async def can_enrol(
        self,
        instance: EnrolmentInstance,
        user: User,
        check_existing: bool = True,
        now: datetime | None = None,
    ) -> Availability:
        now = now or datetime.now(UTC)

        if check_existing:
            if user.is_guest:
                return Unavailable(UnavailableReason.GUEST_ACCESS, MSG_GUEST_ACCESS)

            existing = await self.enrolments.get_user_enrolment(instance.id, user.id)
            if existing is not None and existing.is_active:
                return Unavailable(UnavailableReason.ALREADY_ENROLLED, MSG_CANNOT_ENROL)

        if not instance.is_enabled:
            return Unavailable(UnavailableReason.INSTANCE_DISABLED, MSG_CANNOT_ENROL)

        if instance.enrol_start and instance.enrol_start > now:
            return Unavailable(
                UnavailableReason.TOO_EARLY,
                MSG_TOO_EARLY.format(date=format_date(instance.enrol_start)),
            )

        if instance.enrol_end and instance.enrol_end < now:
            return Unavailable(
                UnavailableReason.TOO_LATE,
                MSG_TOO_LATE.format(date=format_date(instance.enrol_end)),
            )

        if not instance.new_enrolments:
            return Unavailable(
                UnavailableReason.NEW_ENROLMENTS_DISABLED, MSG_CANNOT_ENROL
            )

        if instance.max_enrolled > 0:
            count = await self.enrolments.count_active(instance.id)
            if count >= instance.max_enrolled:
                return Unavailable(UnavailableReason.MAX_ENROLLED, MSG_MAX_ENROLLED)

        if instance.cohort_id:
            cohort = await self.cohorts.get_cohort(instance.cohort_id)
            if cohort is None:
                return Unavailable(UnavailableReason.COHORT_MISSING, MSG_CANNOT_ENROL)
            if not await self.cohorts.is_member(instance.cohort_id, user.id):
                return Unavailable(
                    UnavailableReason.COHORT_RESTRICTED,
                    MSG_COHORT_ONLY.format(name=cohort.name),
                )

        if not await self.capabilities.has_capability(
            user, Capability.ENROL_SELF, instance.course_id
        ):
            return Unavailable(UnavailableReason.NO_CAPABILITY, MSG_CANNOT_ENROL)

        return Available()
