"""Message texts for token enrolment.

Renders the welcome message and the two expiry notifications, plus the
user-facing availability strings. Renderers return a RenderedMessage
whose HTML part is wrapped in the shared email layout.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from src.auth.models import User
from src.courses.models import Course
from src.email.templates import is_html, render_layout, text_to_html


DATE_FORMAT = "%d %B %Y, %H:%M"

_TAG_RE = re.compile(r"<[^>]+>")


# ==============================================================================
# Availability Messages
# ==============================================================================

MSG_CANNOT_ENROL = "Enrolment is disabled or inactive"
MSG_GUEST_ACCESS = "Guest access is not allowed to use token enrolment."
MSG_TOO_EARLY = "You cannot enrol yet; enrolment starts on {date}."
MSG_TOO_LATE = "You cannot enrol any more, since enrolment ended on {date}."
MSG_MAX_ENROLLED = "Maximum number of users allowed to token-enrol was already reached."
MSG_COHORT_ONLY = "Only members of cohort '{name}' can token-enrol."
MSG_INVALID_TOKEN = "Incorrect enrolment token, please try again"


# ==============================================================================
# Welcome Message
# ==============================================================================

WELCOME_SUBJECT = "Welcome to {coursename}"

DEFAULT_WELCOME_TEXT = (
    "Welcome to {coursename}!\n\n"
    "If you have not done so already, you should edit your profile page so "
    "that we can learn more about you:\n\n"
    "  {profileurl}"
)

# ==============================================================================
# Expiry Messages
# ==============================================================================

EXPIRY_SUBJECT = "Token enrolment expiry notification"

EXPIRY_USER_TEXT = (
    "Dear {user},\n\n"
    "This is a notification that your enrolment in the course '{course}' is "
    "due to expire on {timeend}.\n\n"
    "If you need help, please contact {enroller}."
)

EXPIRY_ENROLLER_TEXT = (
    "Token enrolment in the course '{course}' will expire within the next "
    "{threshold} for the following users:\n\n"
    "{users}\n\n"
    "To extend their enrolment, go to {extendurl}"
)


def format_date(value: datetime) -> str:
    return value.strftime(DATE_FORMAT)


def format_duration(value: timedelta) -> str:
    """Human readable duration, e.g. "4 days 2 hours"."""
    total = int(value.total_seconds())
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    parts = []
    for amount, unit in ((days, "day"), (hours, "hour"), (minutes, "min")):
        if amount:
            parts.append(f"{amount} {unit}{'s' if amount != 1 else ''}")
    return " ".join(parts) or "0 mins"


def _fill(template: str, values: dict[str, str]) -> str:
    # Plain replacement: custom templates may contain other braces
    for key, value in values.items():
        template = template.replace("{" + key + "}", value)
    return template


def profile_url(base_url: str, user_id: UUID, course_id: UUID) -> str:
    return f"{base_url.rstrip('/')}/users/{user_id}?course={course_id}"


def extend_url(base_url: str, instance_id: UUID) -> str:
    return f"{base_url.rstrip('/')}/enrol-token/instances/{instance_id}/participants"


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body_text: str
    body_html: str


def render_welcome(
    course: Course,
    user: User,
    template: str | None,
    base_url: str,
    site_name: str,
) -> RenderedMessage:
    """Render the welcome message for a new enrolment.

    A custom template without any "<" is plain text; otherwise it is taken
    as HTML and the text part is the same markup with tags stripped.
    """
    values = {
        "coursename": course.full_name,
        "profileurl": profile_url(base_url, user.id, course.id),
        "fullname": user.full_name,
        "email": user.email,
    }

    if template and template.strip():
        message = _fill(template, values)
        if is_html(message):
            body_html = message
            body_text = _TAG_RE.sub("", message)
        else:
            body_text = message
            body_html = text_to_html(message)
    else:
        body_text = _fill(DEFAULT_WELCOME_TEXT, values)
        body_html = text_to_html(body_text)

    subject = _fill(WELCOME_SUBJECT, {"coursename": course.full_name})
    return RenderedMessage(
        subject=subject,
        body_text=body_text,
        body_html=render_layout(subject, body_html, site_name),
    )


def render_expiry_user(
    course: Course,
    user: User,
    time_end: datetime,
    enroller_name: str,
    site_name: str,
) -> RenderedMessage:
    body_text = _fill(
        EXPIRY_USER_TEXT,
        {
            "user": user.full_name,
            "course": course.full_name,
            "timeend": format_date(time_end),
            "enroller": enroller_name,
        },
    )
    return RenderedMessage(
        subject=EXPIRY_SUBJECT,
        body_text=body_text,
        body_html=render_layout(EXPIRY_SUBJECT, text_to_html(body_text), site_name),
    )


def render_expiry_enroller(
    course: Course,
    instance_id: UUID,
    threshold: timedelta,
    expiring: list[tuple[User, datetime]],
    base_url: str,
    site_name: str,
) -> RenderedMessage:
    """Summary for the enroller, one line per expiring user."""
    users = "\n".join(
        f"* {user.full_name} - {format_date(time_end)}" for user, time_end in expiring
    )
    body_text = _fill(
        EXPIRY_ENROLLER_TEXT,
        {
            "course": course.full_name,
            "threshold": format_duration(threshold),
            "users": users,
            "extendurl": extend_url(base_url, instance_id),
        },
    )
    return RenderedMessage(
        subject=EXPIRY_SUBJECT,
        body_text=body_text,
        body_html=render_layout(EXPIRY_SUBJECT, text_to_html(body_text), site_name),
    )
