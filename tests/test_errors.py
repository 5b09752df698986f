"""
Tests for error reporting helpers and request context.
"""

from unittest.mock import patch

from valorwell.core import errors
from valorwell.core.context import (
    clear_context,
    generate_request_id,
    get_context_dict,
    set_request_id,
    set_tenant_id,
    set_user_id,
)


class TestContext:
    def teardown_method(self):
        clear_context()

    def test_generated_request_id_format(self):
        request_id = generate_request_id()

        assert request_id.startswith("req_")
        assert len(request_id) == 20

    def test_context_dict(self):
        set_request_id("req_1")
        set_user_id("user-1")
        set_tenant_id("tenant-1")

        assert get_context_dict() == {
            "request_id": "req_1",
            "user_id": "user-1",
            "tenant_id": "tenant-1",
            "correlation_id": None,
        }

        clear_context()
        assert get_context_dict()["user_id"] is None


class TestBeforeSend:
    def teardown_method(self):
        clear_context()

    def test_health_events_are_dropped(self):
        assert errors._before_send({"request": {"url": "http://api/api/v1/health"}}, {}) is None

    def test_request_body_is_stripped_and_tagged(self):
        set_request_id("req_2")
        set_user_id("user-2")

        event = errors._before_send(
            {"request": {"url": "http://api/api/v1/clients/me", "data": {"pat_dob": "1990-01-01"}}},
            {},
        )

        assert "data" not in event["request"]
        assert event["tags"]["request_id"] == "req_2"
        assert event["user"]["id"] == "user-2"


class TestCapture:
    def test_disabled_without_dsn(self):
        assert errors.init_sentry("") is False

    def test_capture_without_sentry_only_logs(self):
        with patch("valorwell.core.errors.sentry_sdk.capture_exception") as mock_sentry:
            assert errors.capture_exception(ValueError("boom"), context={"table": "customers"}) is None
            assert errors.capture_message("Circuit opened", level="warning") is None

        mock_sentry.assert_not_called()
