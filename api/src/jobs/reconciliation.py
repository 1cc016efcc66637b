"""Enrolment reconciliation job.

For every token-enrolment instance (optionally limited to one course):

- Inactivity: with inactivity_timeout > 0, an active enrolment is removed
  when the user has been idle longer than the timeout. Idle time is measured
  from the user's last access to the course; only when no course access was
  ever recorded does the user's last access anywhere on the site count (and
  a user who never logged in counts as idle forever).
- Expiry: an active enrolment past its end date gets the configured
  disposition: keep, suspend_no_roles or unenrol.

Each write covers the enrolment row and its role in one batch and only
active enrolments are considered, so a second run over unchanged data
writes nothing. Failures are logged and counted per user and per instance;
the run always continues with the next one.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from src.config.settings import Settings, get_settings
from src.core.context import EnrolmentContext
from src.core.logging import get_logger
from src.enrolments.collaborators import ActivityTracker
from src.enrolments.models import EnrolmentInstance, ExpiredAction, UserEnrolment

from .trace import ProgressTrace


if TYPE_CHECKING:
    from src.enrolments.service import EnrolmentService


logger = get_logger(__name__)


class RunStatus(str, Enum):
    COMPLETED = "completed"
    DISABLED = "disabled"


@dataclass
class ReconciliationReport:
    status: RunStatus = RunStatus.COMPLETED
    instances_processed: int = 0
    unenrolled: int = 0
    suspended: int = 0
    failures: int = 0
    trace: list[str] = field(default_factory=list)


def _days(value: timedelta) -> str:
    return f"{value.total_seconds() / 86400:g}"


class ReconciliationEngine:
    """Applies inactivity and expiry rules to token enrolments."""

    def __init__(
        self,
        enrolments: "EnrolmentService",
        activity: ActivityTracker,
        settings: Settings | None = None,
    ):
        self.enrolments = enrolments
        self.activity = activity
        self.settings = settings or get_settings()

    async def run(
        self,
        course_id: UUID | None = None,
        now: datetime | None = None,
    ) -> ReconciliationReport:
        """Reconcile all instances, or only those of one course."""
        with EnrolmentContext(job="reconciliation"):
            return await self._run(course_id, now)

    async def _run(
        self, course_id: UUID | None, now: datetime | None
    ) -> ReconciliationReport:
        trace = ProgressTrace("reconciliation")
        report = ReconciliationReport(trace=trace.lines)

        if not self.settings.token_enrol_enabled:
            report.status = RunStatus.DISABLED
            logger.info("reconciliation_skipped_plugin_disabled")
            return report

        now = now or datetime.now(UTC)
        expired_action = ExpiredAction(self.settings.expired_action)

        trace.output("Verifying token-enrolments...")
        for instance in await self.enrolments.list_instances(course_id):
            with EnrolmentContext(course_id=instance.course_id, instance_id=instance.id):
                try:
                    await self._process_instance(
                        instance, now, expired_action, report, trace
                    )
                except Exception as e:
                    report.failures += 1
                    logger.exception(
                        "reconciliation_instance_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
            report.instances_processed += 1
        trace.output("...user token-enrolment updates finished.")

        logger.info(
            "reconciliation_completed",
            course_id=str(course_id) if course_id else None,
            instances=report.instances_processed,
            unenrolled=report.unenrolled,
            suspended=report.suspended,
            failures=report.failures,
        )
        return report

    async def _process_instance(
        self,
        instance: EnrolmentInstance,
        now: datetime,
        expired_action: ExpiredAction,
        report: ReconciliationReport,
        trace: ProgressTrace,
    ) -> None:
        enrolments = await self.enrolments.list_enrolments(instance.id)

        for enrolment in sorted(enrolments, key=lambda e: str(e.user_id)):
            if not enrolment.is_active:
                continue
            try:
                await self._process_enrolment(
                    instance, enrolment, now, expired_action, report, trace
                )
            except Exception as e:
                report.failures += 1
                logger.exception(
                    "reconciliation_user_failed",
                    user_id=str(enrolment.user_id),
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def _process_enrolment(
        self,
        instance: EnrolmentInstance,
        enrolment: UserEnrolment,
        now: datetime,
        expired_action: ExpiredAction,
        report: ReconciliationReport,
        trace: ProgressTrace,
    ) -> None:
        user_id = enrolment.user_id
        course_id = instance.course_id

        if instance.inactivity_timeout > timedelta(0):
            idle_rule = await self._idle_rule(instance, user_id, now)
            if idle_rule is not None:
                await self.enrolments.unenrol_user(enrolment)
                report.unenrolled += 1
                trace.output(
                    f"unenrolling user {user_id} from course {course_id} as they "
                    f"{idle_rule} for at least {_days(instance.inactivity_timeout)} days",
                    1,
                )
                return

        if not enrolment.is_expired(now):
            return

        if expired_action == ExpiredAction.SUSPEND_NO_ROLES:
            await self.enrolments.suspend_user(enrolment)
            report.suspended += 1
            trace.output(f"suspending expired user {user_id} in course {course_id}", 1)
        elif expired_action == ExpiredAction.UNENROL:
            await self.enrolments.unenrol_user(enrolment)
            report.unenrolled += 1
            trace.output(
                f"unenrolling expired user {user_id} from course {course_id}", 1
            )

    async def _idle_rule(
        self, instance: EnrolmentInstance, user_id: UUID, now: datetime
    ) -> str | None:
        """Return the rule the user broke, or None if they are not idle."""
        course_access = await self.activity.get_course_access(user_id, instance.course_id)
        if course_access is not None:
            if now - course_access > instance.inactivity_timeout:
                return "did not access the course"
            return None

        last_access = await self.activity.get_last_access(user_id)
        if last_access is None or now - last_access > instance.inactivity_timeout:
            return "did not log in"
        return None
