"""Tests for enrolment message rendering."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.auth.models import User
from src.courses.models import Course
from src.enrolments.messages import (
    EXPIRY_SUBJECT,
    extend_url,
    format_date,
    format_duration,
    render_expiry_enroller,
    render_expiry_user,
    render_welcome,
)


BASE_URL = "https://learn.example.com/"


@pytest.fixture
def pharmacology() -> Course:
    return Course(full_name="Pharmacology 101", short_name="PHA101")


@pytest.fixture
def student() -> User:
    return User(first_name="Ana", last_name="Souza", email="ana@example.com")


class TestFormatting:
    """Tests for date and duration formatting."""

    def test_format_date(self) -> None:
        assert format_date(datetime(2025, 3, 10, 12, 5, tzinfo=UTC)) == (
            "10 March 2025, 12:05"
        )

    @pytest.mark.parametrize(
        "value,expected",
        [
            (timedelta(days=4), "4 days"),
            (timedelta(days=1, hours=2), "1 day 2 hours"),
            (timedelta(minutes=90), "1 hour 30 mins"),
            (timedelta(seconds=59), "0 mins"),
            (timedelta(0), "0 mins"),
        ],
    )
    def test_format_duration(self, value: timedelta, expected: str) -> None:
        assert format_duration(value) == expected


class TestWelcome:
    """Tests for the welcome message."""

    def test_default_text(self, pharmacology, student) -> None:
        message = render_welcome(pharmacology, student, None, BASE_URL, "Academy")

        assert message.subject == "Welcome to Pharmacology 101"
        assert message.body_text.startswith("Welcome to Pharmacology 101!")
        assert f"/users/{student.id}?course={pharmacology.id}" in message.body_text
        assert "Academy" in message.body_html

    def test_blank_template_uses_default(self, pharmacology, student) -> None:
        message = render_welcome(pharmacology, student, "   ", BASE_URL, "Academy")
        assert message.body_text.startswith("Welcome to Pharmacology 101!")

    def test_plain_text_template(self, pharmacology, student) -> None:
        template = "Hi {fullname} & welcome to {coursename}.\nSee you soon."

        message = render_welcome(pharmacology, student, template, BASE_URL, "Academy")

        assert message.body_text == (
            "Hi Ana Souza & welcome to Pharmacology 101.\nSee you soon."
        )
        assert "Ana Souza &amp; welcome" in message.body_html
        assert "<br>" in message.body_html

    def test_html_template(self, pharmacology, student) -> None:
        template = "<p>Hello <b>{fullname}</b>, your login is {email}</p>"

        message = render_welcome(pharmacology, student, template, BASE_URL, "Academy")

        assert message.body_text == "Hello Ana Souza, your login is ana@example.com"
        assert "<p>Hello <b>Ana Souza</b>" in message.body_html

    def test_unknown_placeholders_kept(self, pharmacology, student) -> None:
        message = render_welcome(
            pharmacology, student, "Code {room} for {coursename}", BASE_URL, "Academy"
        )
        assert message.body_text == "Code {room} for Pharmacology 101"


class TestExpiryMessages:
    """Tests for the expiry notifications."""

    def test_user_message(self, pharmacology, student) -> None:
        time_end = datetime(2025, 3, 12, 18, 30, tzinfo=UTC)

        message = render_expiry_user(
            pharmacology, student, time_end, "Carla Mendes", "Academy"
        )

        assert message.subject == EXPIRY_SUBJECT
        assert message.body_text.startswith("Dear Ana Souza,")
        assert "'Pharmacology 101'" in message.body_text
        assert "12 March 2025, 18:30" in message.body_text
        assert "please contact Carla Mendes" in message.body_text

    def test_enroller_summary(self, pharmacology, student) -> None:
        instance_id = uuid4()
        other = User(first_name="Bruno", last_name="Lima", email="bruno@example.com")
        expiring = [
            (student, datetime(2025, 3, 12, 18, 30, tzinfo=UTC)),
            (other, datetime(2025, 3, 13, 9, 0, tzinfo=UTC)),
        ]

        message = render_expiry_enroller(
            pharmacology, instance_id, timedelta(days=4), expiring, BASE_URL, "Academy"
        )

        assert "within the next 4 days" in message.body_text
        assert (
            "* Ana Souza - 12 March 2025, 18:30\n* Bruno Lima - 13 March 2025, 09:00"
        ) in message.body_text
        assert extend_url(BASE_URL, instance_id) in message.body_text

    def test_extend_url(self) -> None:
        instance_id = uuid4()
        assert extend_url(BASE_URL, instance_id) == (
            f"https://learn.example.com/enrol-token/instances/{instance_id}/participants"
        )
