"""Tests for the structlog processors."""

from uuid import uuid4

from src.core.context import EnrolmentContext, clear_context
from src.core.logging import add_context_processor, filter_sensitive_data


class TestFilterSensitiveData:
    """Tests for filter_sensitive_data."""

    def test_token_secret_masked(self) -> None:
        event = filter_sensitive_data(
            None, "info", {"event": "token_redeem_invalid", "secret": "a1b2c3d4"}
        )
        assert event["secret"] == "a1****d4"
        assert event["event"] == "token_redeem_invalid"

    def test_short_value_fully_masked(self) -> None:
        event = filter_sensitive_data(None, "info", {"enroltoken": "abc"})
        assert event["enroltoken"] == "***"

    def test_identifiers_readable(self) -> None:
        token_id = str(uuid4())
        event = filter_sensitive_data(None, "info", {"token_id": token_id})
        assert event["token_id"] == token_id

    def test_nested_dict(self) -> None:
        event = filter_sensitive_data(
            None, "info", {"payload": {"password": "hunter22", "email": "a@b.com"}}
        )
        assert event["payload"] == {"password": "hu****22", "email": "a@b.com"}

    def test_non_string_values_kept(self) -> None:
        event = filter_sensitive_data(None, "info", {"token_count": 5})
        assert event["token_count"] == 5


class TestAddContextProcessor:
    """Tests for add_context_processor."""

    def setup_method(self) -> None:
        clear_context()

    def teardown_method(self) -> None:
        clear_context()

    def test_bound_ids_added(self) -> None:
        course_id = uuid4()
        with EnrolmentContext(course_id=course_id, job="expiry_notifier"):
            event = add_context_processor(None, "info", {"event": "x"})

        assert event["course_id"] == str(course_id)
        assert event["job"] == "expiry_notifier"

    def test_explicit_value_wins(self) -> None:
        with EnrolmentContext(course_id=uuid4()):
            event = add_context_processor(None, "info", {"course_id": "explicit"})

        assert event["course_id"] == "explicit"
