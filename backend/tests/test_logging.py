"""
Unit tests for structured logging configuration.

Tests verify:
- Context variables (trace_id, request_id, user_id) are set and retrieved
- The request-context processor attaches them (and the service name) to entries
- JSON output is produced
- ID generation works
"""
import json
import logging
import uuid
from io import StringIO

import pytest

from kupado.core import logging as kupado_logging
from kupado.core.logging import (
    add_request_context,
    configure_logging,
    generate_request_id,
    generate_trace_id,
    get_logger,
    get_request_id,
    get_trace_id,
    get_user_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)


@pytest.fixture(autouse=True)
def clean_context():
    yield
    set_trace_id(None)
    set_request_id(None)
    set_user_id(None)


class TestContextVariables:
    """Test trace ID, request ID, and user ID context variables."""

    def test_set_and_get(self):
        set_trace_id("trace-1")
        set_request_id("request-1")
        set_user_id("user-1")

        assert get_trace_id() == "trace-1"
        assert get_request_id() == "request-1"
        assert get_user_id() == "user-1"

        set_user_id(None)
        assert get_user_id() is None

    def test_generated_ids_are_unique_uuids(self):
        first, second = generate_trace_id(), generate_trace_id()

        assert first != second
        uuid.UUID(first)
        uuid.UUID(generate_request_id())


class TestRequestContextProcessor:
    def test_adds_context_and_service(self):
        set_trace_id("trace-1")
        set_user_id("user-1")

        event = add_request_context(None, "info", {"event": "ai_generation_completed"})

        assert event["trace_id"] == "trace-1"
        assert event["user_id"] == "user-1"
        assert "request_id" not in event
        assert event["service"] == kupado_logging.SERVICE_NAME
        assert "timestamp" in event

    def test_explicit_fields_win(self):
        set_user_id("user-from-context")

        event = add_request_context(None, "info", {"event": "x", "user_id": "explicit"})

        assert event["user_id"] == "explicit"


class TestStructuredLogging:
    def test_json_output(self):
        configure_logging(log_level="INFO", json_output=True)
        output = StringIO()
        handler = logging.StreamHandler(output)
        root_logger = logging.getLogger()
        previous_level = root_logger.level
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)
        set_trace_id("trace-json")

        try:
            get_logger("kupado.tests").info("test_event", custom_field="custom_value")
        finally:
            root_logger.removeHandler(handler)
            root_logger.setLevel(previous_level)

        line = output.getvalue().strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "test_event"
        assert entry["custom_field"] == "custom_value"
        assert entry["trace_id"] == "trace-json"
        assert entry["level"] == "info"

    def test_console_output(self):
        configure_logging(log_level="DEBUG", json_output=False)
        logger = get_logger(__name__)

        logger.debug("debug_message", field="value")
        try:
            raise ValueError("Test exception")
        except ValueError:
            logger.error("error_with_exception", exc_info=True)
