"""Expiry notification job.

Runs at most once per calendar day, after the configured hour. The day gate
is the only deduplication: the cursor is advanced before any message goes
out, so a second run on the same day sends nothing even if the first one
failed halfway.

For every instance with expiry notification enabled (in creation order),
active enrolments ending within the instance's threshold are collected in
family name, given name, id order. In "all" mode each user gets a message
from the course contact; the instance's enroller always gets one summary
listing every collected user.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID
from zoneinfo import ZoneInfo

from src.auth.models import User
from src.config.settings import Settings, get_settings
from src.core.context import EnrolmentContext
from src.core.logging import get_logger
from src.enrolments.collaborators import Messenger
from src.enrolments.contacts import ContactResolver
from src.enrolments.messages import render_expiry_enroller, render_expiry_user
from src.enrolments.models import (
    Contact,
    EnrolmentInstance,
    ExpiryNotifyMode,
    WelcomeSendMode,
)

from .trace import ProgressTrace


if TYPE_CHECKING:
    from src.auth.service import UserService
    from src.courses.service import CourseService
    from src.enrolments.service import EnrolmentService


logger = get_logger(__name__)

CURSOR_KEY = "expiry_notify_last"
HOURS_PER_DAY = 24


class NotifierStatus(str, Enum):
    SENT = "sent"
    ALREADY_RAN = "already_ran"
    TOO_EARLY = "too_early"


@dataclass
class NotifierReport:
    status: NotifierStatus = NotifierStatus.SENT
    instances_processed: int = 0
    user_messages: int = 0
    summary_messages: int = 0
    failures: int = 0
    trace: list[str] = field(default_factory=list)


class NotificationCursor:
    """Timestamp of the last notifier run, kept in plugin config."""

    def __init__(self, enrolments: "EnrolmentService"):
        self.enrolments = enrolments

    async def last_run(self) -> datetime | None:
        value = await self.enrolments.get_config_value(CURSOR_KEY)
        if not value:
            return None
        parsed = datetime.fromisoformat(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    async def advance(self, timestamp: datetime) -> None:
        await self.enrolments.set_config_value(CURSOR_KEY, timestamp.isoformat())


def notify_time(now: datetime, hour: int, tz_name: str) -> datetime:
    """Today's notification time: local midnight plus `hour` hours.

    hour 24 lands on the next midnight, i.e. never today.
    """
    tz = ZoneInfo(tz_name)
    local_midnight = datetime.combine(now.astimezone(tz).date(), time(), tzinfo=tz)
    return local_midnight + timedelta(hours=hour)


class ExpiryNotifier:
    """Sends expiry warnings for token enrolments."""

    def __init__(
        self,
        enrolments: "EnrolmentService",
        users: "UserService",
        courses: "CourseService",
        contacts: ContactResolver,
        messenger: Messenger,
        settings: Settings | None = None,
    ):
        self.enrolments = enrolments
        self.users = users
        self.courses = courses
        self.contacts = contacts
        self.messenger = messenger
        self.settings = settings or get_settings()
        self.cursor = NotificationCursor(enrolments)

    async def run(self, now: datetime | None = None) -> NotifierReport:
        """Send the day's expiry notifications once the configured hour has passed."""
        with EnrolmentContext(job="expiry_notifier"):
            return await self._run(now)

    async def _run(self, now: datetime | None) -> NotifierReport:
        now = now or datetime.now(UTC)
        trace = ProgressTrace("expiry_notifier")
        report = NotifierReport(trace=trace.lines)

        hour = min(max(self.settings.expiry_notify_hour, 0), HOURS_PER_DAY)
        gate = notify_time(now, hour, self.settings.timezone)
        last = await self.cursor.last_run()

        if last is not None and last > gate:
            report.status = NotifierStatus.ALREADY_RAN
            trace.output("Token enrolment expiry notifications were already sent today.")
            return report
        if now < gate:
            report.status = NotifierStatus.TOO_EARLY
            trace.output("Token enrolment expiry notifications will be sent later today.")
            return report

        await self.cursor.advance(now)
        trace.output("Processing token enrolment expiration notifications...")

        instances = [
            i
            for i in await self.enrolments.list_instances()
            if i.expiry_notify != ExpiryNotifyMode.NONE
        ]
        enroller_memo: dict[UUID, Contact] = {}

        for instance in instances:
            with EnrolmentContext(course_id=instance.course_id, instance_id=instance.id):
                try:
                    await self._process_instance(
                        instance, now, enroller_memo, report, trace
                    )
                except Exception as e:
                    report.failures += 1
                    logger.exception(
                        "expiry_notify_instance_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
            report.instances_processed += 1

        trace.output("...notification processing finished.")
        logger.info(
            "expiry_notify_completed",
            instances=report.instances_processed,
            user_messages=report.user_messages,
            summary_messages=report.summary_messages,
            failures=report.failures,
        )
        return report

    async def _process_instance(
        self,
        instance: EnrolmentInstance,
        now: datetime,
        enroller_memo: dict[UUID, Contact],
        report: NotifierReport,
        trace: ProgressTrace,
    ) -> None:
        expiring = await self._expiring_users(instance, now)
        if not expiring:
            return

        course = await self.courses.get_course(instance.course_id)
        if course is None:
            logger.warning("expiry_notify_course_missing")
            return

        enroller = await self.contacts.resolve_enroller(instance, enroller_memo)
        site_name = self.settings.app_name

        if instance.expiry_notify == ExpiryNotifyMode.ALL:
            sender = await self.contacts.resolve_contact(
                WelcomeSendMode.COURSE_CONTACT, instance.course_id
            )
            for user, time_end in expiring:
                message = render_expiry_user(
                    course, user, time_end, enroller.name, site_name
                )
                if await self._deliver(sender, Contact.from_user(user), message, report):
                    report.user_messages += 1
                    trace.output(
                        f"notifying user {user.id} that enrolment in course "
                        f"{instance.course_id} expires on {time_end.isoformat()}",
                        1,
                    )

        summary = render_expiry_enroller(
            course,
            instance.id,
            instance.expiry_threshold,
            expiring,
            self.settings.app_base_url,
            site_name,
        )
        if await self._deliver(self.contacts.no_reply(), enroller, summary, report):
            report.summary_messages += 1
            trace.output(
                f"informing enroller about {len(expiring)} expiring enrolments "
                f"in course {instance.course_id}",
                1,
            )

    async def _expiring_users(
        self, instance: EnrolmentInstance, now: datetime
    ) -> list[tuple[User, datetime]]:
        """Active enrolments ending within the threshold, in name order."""
        window_end = now + instance.expiry_threshold
        ending = [
            e
            for e in await self.enrolments.list_enrolments(instance.id)
            if e.is_active and e.time_end is not None and now <= e.time_end <= window_end
        ]
        if not ending:
            return []

        users = await self.users.get_users([e.user_id for e in ending])
        expiring = [
            (users[e.user_id], e.time_end)
            for e in ending
            if e.user_id in users and users[e.user_id].is_active
        ]
        return sorted(expiring, key=lambda pair: pair[0].sort_key())

    async def _deliver(self, sender, recipient, message, report: NotifierReport) -> bool:
        try:
            sent = await self.messenger.send(
                sender, recipient, message.subject, message.body_text, message.body_html
            )
        except Exception as e:
            sent = False
            logger.exception(
                "expiry_notify_send_failed",
                to=recipient.email,
                error=str(e),
                error_type=type(e).__name__,
            )
        if not sent:
            report.failures += 1
        return sent
