"""
Unit tests for OpenTelemetry distributed tracing.

Tests verify:
- Tracing configuration works with and without OTLP export
- Span helpers operate on the active span and are no-ops without one
- Trace IDs are read from the active span context
- W3C trace context is extracted and injected
"""
import pytest

from bizquery.core import tracing
from bizquery.core.tracing import (
    StatusCode,
    configure_tracing,
    extract_trace_context,
    get_trace_id_from_context,
    get_tracer,
    inject_trace_context,
    record_exception,
    set_span_attribute,
    set_span_status,
    shutdown_tracing,
    traced,
)


@pytest.fixture
def tracer():
    configure_tracing(enable_otlp=False)
    return get_tracer()


class TestTracingConfiguration:
    """Test tracing configuration and setup."""

    def test_configure_tracing_defaults(self):
        configure_tracing()

        assert get_tracer() is not None

    def test_configure_tracing_with_service_name(self):
        configure_tracing(service_name="test_service", enable_otlp=False)

        assert get_tracer() is not None

    def test_otlp_requires_endpoint(self, monkeypatch):
        """Forcing OTLP on without an endpoint configures no exporter."""
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)

        configure_tracing(enable_otlp=True)

        assert get_tracer() is not None

    def test_get_tracer_auto_configures(self, monkeypatch):
        monkeypatch.setattr(tracing, "_tracer", None)

        assert get_tracer() is not None


class TestSpanHelpers:
    """Test span creation and manipulation."""

    def test_create_span(self, tracer):
        with tracer.start_as_current_span("test.operation") as span:
            assert span is not None
            if hasattr(span, "name"):
                assert span.name == "test.operation"

    def test_set_span_attribute(self, tracer):
        with tracer.start_as_current_span("test.operation") as span:
            set_span_attribute("query.best_fit", "2. Get Items")
            set_span_attribute("query.companies", 3)
            set_span_attribute("query.needs_inbox", True)

            if hasattr(span, "attributes"):
                assert span.attributes["query.best_fit"] == "2. Get Items"
                assert span.attributes["query.companies"] == 3

    @pytest.mark.parametrize("status_code", [StatusCode.OK, StatusCode.ERROR])
    def test_set_span_status(self, tracer, status_code):
        with tracer.start_as_current_span("test.operation") as span:
            set_span_status(status_code, "done")

            if hasattr(span, "status"):
                assert span.status.status_code == status_code

    def test_record_exception_marks_error(self, tracer):
        with tracer.start_as_current_span("test.operation") as span:
            try:
                raise ValueError("Test exception")
            except ValueError as e:
                record_exception(e)

            if hasattr(span, "status"):
                assert span.status.status_code == StatusCode.ERROR

    def test_helpers_without_active_span(self):
        # Should not raise outside any span
        set_span_attribute("key", "value")
        set_span_status(StatusCode.OK)
        record_exception(RuntimeError("no span"))


class TestTraceIDExtraction:
    """Test trace ID extraction from context."""

    def test_trace_id_with_span(self, tracer):
        with tracer.start_as_current_span("test.operation"):
            trace_id = get_trace_id_from_context()

            if trace_id:
                assert len(trace_id) == 32
                int(trace_id, 16)

    def test_trace_id_without_span(self, tracer):
        assert get_trace_id_from_context() is None

    def test_nested_spans_share_trace_id(self, tracer):
        with tracer.start_as_current_span("orchestrator.handle"):
            parent_id = get_trace_id_from_context()
            with tracer.start_as_current_span("orchestrator.financials"):
                assert get_trace_id_from_context() == parent_id


class TestTraceContextPropagation:
    def test_extract_trace_context(self):
        headers = {"traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"}

        context = extract_trace_context(headers)

        assert context is not None
        assert "0af7651916cd43dd8448eb211c80319c" in context.get("traceparent", "")

    def test_extract_without_header(self):
        context = extract_trace_context({})

        assert context is None or "traceparent" not in context

    def test_inject_trace_context(self, tracer):
        headers = {}
        with tracer.start_as_current_span("test.operation"):
            trace_id = get_trace_id_from_context()
            inject_trace_context(headers)

        if trace_id:
            assert trace_id in headers["traceparent"]

    def test_inject_without_span_leaves_headers(self, tracer):
        headers = {}

        inject_trace_context(headers)

        assert headers == {}


class TestTracedBlock:
    def test_sets_attributes_and_skips_none(self, tracer):
        with traced("orchestrator.financials", **{"intent.company_hint": None, "companies": 2}) as span:
            if hasattr(span, "attributes"):
                assert span.attributes["companies"] == 2
                assert "intent.company_hint" not in span.attributes

    def test_exception_recorded_and_reraised(self, tracer):
        with pytest.raises(ValueError):
            with traced("orchestrator.answer") as span:
                raise ValueError("no answer")

        if hasattr(span, "status"):
            assert span.status.status_code == StatusCode.ERROR
            assert span.events[0].name == "exception"


def test_shutdown_tracing():
    configure_tracing(enable_otlp=False)

    # Should not raise
    shutdown_tracing()
