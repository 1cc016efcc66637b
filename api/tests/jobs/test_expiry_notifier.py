"""Tests for the expiry notification job."""

from datetime import UTC, datetime, timedelta

import pytest

from src.enrolments.models import ExpiryNotifyMode
from src.jobs.expiry_notifier import (
    CURSOR_KEY,
    ExpiryNotifier,
    NotifierStatus,
    notify_time,
)


NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def notifier(enrolments, users, courses, contacts, messenger, settings) -> ExpiryNotifier:
    return ExpiryNotifier(enrolments, users, courses, contacts, messenger, settings)


@pytest.fixture
def expiring_instance(make_instance):
    return make_instance(
        expiry_notify=ExpiryNotifyMode.ALL, expiry_threshold=timedelta(days=4)
    )


async def _enrol(enrolments, instance, user, time_end):
    return await enrolments.enrol_user(
        instance, user.id, NOW - timedelta(days=30), time_end
    )


class TestNotifyTime:
    """Tests for the daily gate."""

    def test_hour_offset_from_local_midnight(self) -> None:
        assert notify_time(NOW, 6, "UTC") == datetime(2025, 3, 10, 6, tzinfo=UTC)

    def test_hour_24_is_next_midnight(self) -> None:
        assert notify_time(NOW, 24, "UTC") == datetime(2025, 3, 11, tzinfo=UTC)

    def test_timezone_applied(self) -> None:
        gate = notify_time(NOW, 6, "America/Sao_Paulo")
        assert gate.astimezone(UTC) == datetime(2025, 3, 10, 9, tzinfo=UTC)


class TestExpiryWindow:
    """Which enrolments count as expiring."""

    @pytest.mark.asyncio
    async def test_only_enrolments_within_threshold(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        soon = make_user("Bruno", "Lima")
        later = make_user("Davi", "Rocha")
        gone = make_user("Eva", "Alves")
        await _enrol(enrolments, expiring_instance, soon, NOW + timedelta(days=3.04))
        await _enrol(enrolments, expiring_instance, later, NOW + timedelta(days=5))
        await _enrol(enrolments, expiring_instance, gone, NOW - timedelta(minutes=1))

        report = await notifier.run(now=NOW)

        assert report.status == NotifierStatus.SENT
        assert report.user_messages == 1
        assert report.summary_messages == 1
        recipients = [m["recipient"].email for m in messenger.sent]
        assert soon.email in recipients
        assert later.email not in recipients
        assert gone.email not in recipients

    @pytest.mark.asyncio
    async def test_suspended_users_skipped(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        user = make_user()
        enrolment = await _enrol(
            enrolments, expiring_instance, user, NOW + timedelta(days=1)
        )
        await enrolments.suspend_user(enrolment)

        report = await notifier.run(now=NOW)

        assert report.user_messages == 0
        assert report.summary_messages == 0
        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_unlimited_enrolments_skipped(
        self, notifier, enrolments, messenger, expiring_instance, make_user
    ) -> None:
        await _enrol(enrolments, expiring_instance, make_user(), None)

        await notifier.run(now=NOW)

        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_instances_without_notification_ignored(
        self, notifier, enrolments, messenger, make_instance, make_user
    ) -> None:
        instance = make_instance(expiry_threshold=timedelta(days=4))
        await _enrol(enrolments, instance, make_user(), NOW + timedelta(days=1))

        report = await notifier.run(now=NOW)

        assert report.instances_processed == 0
        assert messenger.sent == []


class TestRecipients:
    """Who sends and receives each message."""

    @pytest.mark.asyncio
    async def test_all_mode_messages(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        """Users hear from the course contact; the enroller gets the summary."""
        user = make_user("Bruno", "Lima")
        await _enrol(enrolments, expiring_instance, user, NOW + timedelta(days=2))

        await notifier.run(now=NOW)

        user_message, summary = messenger.sent
        assert user_message["sender"].email == teacher.email
        assert user_message["recipient"].email == user.email
        assert "Bruno Lima" in user_message["body_text"]
        assert "Carla Mendes" in user_message["body_text"]

        assert summary["sender"].email == notifier.settings.noreply_address
        assert summary["recipient"].email == teacher.email
        assert "* Bruno Lima - " in summary["body_text"]
        assert "4 days" in summary["body_text"]

    @pytest.mark.asyncio
    async def test_enroller_mode_sends_summary_only(
        self, notifier, enrolments, messenger, make_instance, make_user, teacher
    ) -> None:
        instance = make_instance(
            expiry_notify=ExpiryNotifyMode.ENROLLER,
            expiry_threshold=timedelta(days=4),
        )
        await _enrol(enrolments, instance, make_user(), NOW + timedelta(days=1))

        report = await notifier.run(now=NOW)

        assert report.user_messages == 0
        assert report.summary_messages == 1
        assert [m["recipient"].email for m in messenger.sent] == [teacher.email]

    @pytest.mark.asyncio
    async def test_summary_falls_back_to_support(
        self, notifier, enrolments, messenger, expiring_instance, make_user
    ) -> None:
        """Without a manager the summary goes to site support."""
        await _enrol(enrolments, expiring_instance, make_user(), NOW + timedelta(days=1))

        await notifier.run(now=NOW)

        summary = messenger.sent[-1]
        assert summary["recipient"].email == notifier.settings.support_contact_address
        assert messenger.sent[0]["sender"].email == notifier.settings.noreply_address

    @pytest.mark.asyncio
    async def test_summary_lists_users_in_name_order(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        for first, last in (("Zoe", "Barros"), ("Ana", "Costa"), ("Bia", "Barros")):
            user = make_user(first, last)
            await _enrol(enrolments, expiring_instance, user, NOW + timedelta(days=1))

        await notifier.run(now=NOW)

        body = messenger.sent[-1]["body_text"]
        assert body.index("Bia Barros") < body.index("Zoe Barros")
        assert body.index("Zoe Barros") < body.index("Ana Costa")

    @pytest.mark.asyncio
    async def test_send_failure_counted(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        await _enrol(enrolments, expiring_instance, make_user(), NOW + timedelta(days=1))
        messenger.fail = True

        report = await notifier.run(now=NOW)

        assert report.status == NotifierStatus.SENT
        assert report.failures == 2
        assert report.user_messages == 0
        assert report.summary_messages == 0


class TestDailyGate:
    """At most one run per day, after the configured hour."""

    @pytest.mark.asyncio
    async def test_second_run_same_day(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        await _enrol(enrolments, expiring_instance, make_user(), NOW + timedelta(days=1))

        await notifier.run(now=NOW)
        sent = len(messenger.sent)
        report = await notifier.run(now=NOW + timedelta(hours=2))

        assert report.status == NotifierStatus.ALREADY_RAN
        assert len(messenger.sent) == sent

    @pytest.mark.asyncio
    async def test_too_early_keeps_cursor(
        self, notifier, enrolments, messenger, expiring_instance, make_user
    ) -> None:
        await _enrol(enrolments, expiring_instance, make_user(), NOW + timedelta(days=1))

        report = await notifier.run(now=NOW.replace(hour=5))

        assert report.status == NotifierStatus.TOO_EARLY
        assert CURSOR_KEY not in enrolments.config
        assert messenger.sent == []

    @pytest.mark.asyncio
    async def test_next_day_runs_again(
        self, notifier, enrolments, messenger, expiring_instance, make_user, teacher
    ) -> None:
        await _enrol(enrolments, expiring_instance, make_user(), NOW + timedelta(days=3))

        await notifier.run(now=NOW)
        first = len(messenger.sent)
        report = await notifier.run(now=NOW + timedelta(days=1))

        assert report.status == NotifierStatus.SENT
        assert len(messenger.sent) == first * 2

    @pytest.mark.asyncio
    async def test_cursor_advanced_before_sending(
        self, notifier, enrolments, messenger, expiring_instance, make_user
    ) -> None:
        """A failed run still counts as today's run."""
        await _enrol(enrolments, expiring_instance, make_user(), NOW + timedelta(days=1))
        messenger.fail = True

        await notifier.run(now=NOW)

        assert enrolments.config[CURSOR_KEY] == NOW.isoformat()
