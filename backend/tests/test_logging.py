"""
Unit tests for structured logging configuration.

Tests verify:
- Logging configuration works for JSON and console output
- Context variables (trace_id, request_id) are set, read and cleared
- The trace context processor adds correlation fields to every entry
- Credential fields are masked
- Pipeline warnings carry error and error_type fields
"""
import json
import logging
from io import StringIO
from unittest.mock import MagicMock

import pytest

from bizquery.core import logging as logging_module
from bizquery.core.logging import (
    REDACTED,
    add_trace_context,
    configure_logging,
    generate_request_id,
    generate_trace_id,
    get_logger,
    get_request_id,
    get_trace_id,
    redact_sensitive_fields,
    set_request_id,
    set_trace_id,
)


class TestLoggingConfiguration:
    """Test logging configuration and setup."""

    def test_configure_logging_json_output(self):
        """JSON output produces one parseable JSON object per entry."""
        configure_logging(log_level="INFO", json_output=True)

        output = StringIO()
        root_logger = logging.getLogger()
        previous_handlers = list(root_logger.handlers)
        root_logger.handlers.clear()
        handler = logging.StreamHandler(output)
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)

        try:
            logger = get_logger("bizquery.tests.json")
            logger.info("test_message", test_field="test_value")
            handler.flush()
        finally:
            root_logger.removeHandler(handler)
            root_logger.handlers.extend(previous_handlers)

        line = output.getvalue().strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "test_message"
        assert entry["test_field"] == "test_value"
        assert entry["service"] == logging_module.SERVICE_NAME
        assert "timestamp" in entry

    def test_configure_logging_console_output(self):
        configure_logging(log_level="INFO", json_output=False)
        logger = get_logger(__name__)

        # Should not raise an error
        logger.info("test_message", test_field="test_value")

    def test_service_name_override(self, monkeypatch):
        monkeypatch.setattr(logging_module, "SERVICE_NAME", logging_module.SERVICE_NAME)

        configure_logging(log_level="INFO", service_name="bizquery_worker", json_output=True)

        assert logging_module.SERVICE_NAME == "bizquery_worker"

    def test_httpx_request_lines_quieted(self):
        configure_logging(log_level="DEBUG", json_output=False)

        assert logging.getLogger("httpx").level == logging.WARNING


class TestContextVariables:
    """Test trace ID and request ID context variables."""

    def test_set_and_get_trace_id(self):
        set_trace_id("test-trace-123")
        assert get_trace_id() == "test-trace-123"

        set_trace_id(None)
        assert get_trace_id() is None

    def test_set_and_get_request_id(self):
        set_request_id("test-request-456")
        assert get_request_id() == "test-request-456"

        set_request_id(None)
        assert get_request_id() is None

    @pytest.mark.parametrize("generate", [generate_trace_id, generate_request_id])
    def test_generated_ids_are_unique_uuids(self, generate):
        first, second = generate(), generate()

        assert len(first) == 36
        assert first.count("-") == 4
        assert first != second


class TestTraceContextProcessor:
    def test_adds_context_fields(self):
        set_trace_id("trace-1")
        set_request_id("request-1")
        try:
            event = add_trace_context(None, "info", {"event": "x"})
        finally:
            set_trace_id(None)
            set_request_id(None)

        assert event["trace_id"] == "trace-1"
        assert event["request_id"] == "request-1"
        assert event["service"] == logging_module.SERVICE_NAME
        assert "timestamp" in event

    def test_omits_unset_context(self):
        event = add_trace_context(None, "info", {"event": "x", "timestamp": "fixed"})

        assert "trace_id" not in event
        assert "request_id" not in event
        assert event["timestamp"] == "fixed"


class TestRedaction:
    def test_credentials_masked(self):
        event = redact_sensitive_fields(None, "info", {
            "event": "token_request",
            "client_secret": "s3cret",
            "Authorization": "Bearer abc",
            "audience": "https://graph.microsoft.com",
        })

        assert event["client_secret"] == REDACTED
        assert event["Authorization"] == REDACTED
        assert event["audience"] == "https://graph.microsoft.com"

    def test_empty_values_left_alone(self):
        event = redact_sensitive_fields(None, "info", {"event": "x", "api_key": None})

        assert event["api_key"] is None


@pytest.mark.asyncio
async def test_company_failure_logged_with_error_type(monkeypatch):
    """Per-company failures log a warning with error and error_type."""
    from bizquery.services.ai import strategies
    from bizquery.services.ai.schema import BestFit, QueryIntent

    from conftest import DummyFinancials

    mock_logger = MagicMock()
    monkeypatch.setattr(strategies, "logger", mock_logger)

    companies = [{"id": "c1", "name": "Acme"}]
    ctx = strategies.StrategyContext(
        financials=DummyFinancials(companies, failing=("c1",)),
        companies=companies,
        intent=QueryIntent(best_fit=BestFit.GET_ITEMS),
    )

    await strategies.run_strategy(ctx)

    mock_logger.warning.assert_called_once()
    args, kwargs = mock_logger.warning.call_args
    assert args == ("company_fetch_failed",)
    assert kwargs["error_type"] == "UpstreamError"
    assert kwargs["company_id"] == "c1"
    assert kwargs["entity"] == "items"
