"""
OpenTelemetry distributed tracing configuration.

Features:
- Tracer provider with service resource attributes
- Optional OTLP export (gRPC)
- FastAPI auto-instrumentation
- Span helpers used by middleware and the query pipeline

Configuration:
- OTEL_SERVICE_NAME: Service name (default: bizquery_api)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint (e.g. http://localhost:4317); export is off when unset
- OTEL_TRACES_SAMPLER_ARG: Sampling rate (default: 1.0 for 100% sampling)
"""
import os
from contextlib import contextmanager
from typing import Optional, Dict, Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode, Tracer
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .logging import get_logger

logger = get_logger(__name__)

_tracer: Optional[Tracer] = None
_tracer_provider: Optional[TracerProvider] = None

__all__ = [
    "StatusCode",
    "configure_tracing",
    "get_tracer",
    "traced",
    "extract_trace_context",
    "inject_trace_context",
    "get_trace_id_from_context",
    "set_span_attribute",
    "set_span_status",
    "record_exception",
    "instrument_fastapi",
    "shutdown_tracing",
]


def configure_tracing(
    service_name: Optional[str] = None,
    otlp_endpoint: Optional[str] = None,
    sampling_rate: float = 1.0,
    enable_otlp: Optional[bool] = None,
) -> None:
    """
    Configure OpenTelemetry tracing.

    Args:
        service_name: Service name (defaults to OTEL_SERVICE_NAME or bizquery_api)
        otlp_endpoint: OTLP endpoint URL (defaults to OTEL_EXPORTER_OTLP_ENDPOINT)
        sampling_rate: Sampling rate in [0.0, 1.0]
        enable_otlp: Force OTLP export on/off; by default on when an endpoint is known
    """
    global _tracer, _tracer_provider

    service_name = service_name or os.getenv("OTEL_SERVICE_NAME", "bizquery_api")
    otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    sampling_rate = float(os.getenv("OTEL_TRACES_SAMPLER_ARG", str(sampling_rate)))
    if enable_otlp is None:
        enable_otlp = bool(otlp_endpoint)

    resource = Resource.create({
        "service.name": service_name,
        "service.version": "1.0.0",
    })

    if sampling_rate < 1.0:
        _tracer_provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sampling_rate))
    else:
        _tracer_provider = TracerProvider(resource=resource)

    if enable_otlp and otlp_endpoint:
        try:
            span_processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            _tracer_provider.add_span_processor(span_processor)
            logger.info(
                "tracing_otlp_configured",
                endpoint=otlp_endpoint,
                sampling_rate=sampling_rate,
            )
        except Exception as e:
            logger.warning(
                "tracing_otlp_configuration_failed",
                endpoint=otlp_endpoint,
                error=str(e),
                error_type=type(e).__name__,
                message="Tracing will continue without OTLP export",
            )

    trace.set_tracer_provider(_tracer_provider)
    _tracer = trace.get_tracer("bizquery")

    logger.info(
        "tracing_configured",
        service_name=service_name,
        sampling_rate=sampling_rate,
        otlp_enabled=bool(enable_otlp and otlp_endpoint),
    )


def get_tracer() -> Tracer:
    """
    Get the global tracer instance, configuring tracing on first use.
    """
    global _tracer
    if _tracer is None:
        configure_tracing()
    return _tracer


@contextmanager
def traced(name: str, **attributes: Any) -> Iterator[trace.Span]:
    """
    Run a block inside a child span of the current request.

    None-valued attributes are skipped. An exception leaving the block is
    recorded on the span, which is marked as an error, and re-raised.

        with traced("orchestrator.financials", best_fit=intent.best_fit.value):
            ...
    """
    with get_tracer().start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


def extract_trace_context(headers: Dict[str, str]) -> Optional[Dict[str, str]]:
    """
    Extract W3C trace context (traceparent header) from HTTP headers.

    Returns:
        Trace context dictionary or None if not present
    """
    propagator = TraceContextTextMapPropagator()
    try:
        context = propagator.extract(headers)
        if context:
            trace_context: Dict[str, str] = {}
            propagator.inject(trace_context, context)
            return trace_context
    except Exception as e:
        logger.debug(
            "trace_context_extraction_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
    return None


def inject_trace_context(headers: Dict[str, str]) -> None:
    """Inject the current span's trace context into outgoing HTTP headers."""
    propagator = TraceContextTextMapPropagator()
    current_span = trace.get_current_span()
    if current_span and current_span.get_span_context().is_valid:
        context = trace.set_span_in_context(current_span)
        propagator.inject(headers, context)


def get_trace_id_from_context() -> Optional[str]:
    """Trace ID of the current span as a hex string, or None without an active span."""
    current_span = trace.get_current_span()
    if current_span:
        span_context = current_span.get_span_context()
        if span_context.is_valid:
            return format(span_context.trace_id, "032x")
    return None


def set_span_attribute(key: str, value: Any) -> None:
    current_span = trace.get_current_span()
    if current_span:
        current_span.set_attribute(key, value)


def set_span_status(status_code: StatusCode, description: Optional[str] = None) -> None:
    current_span = trace.get_current_span()
    if current_span:
        current_span.set_status(Status(status_code, description))


def record_exception(exception: Exception) -> None:
    """Record an exception on the current span and mark it as an error."""
    current_span = trace.get_current_span()
    if current_span:
        current_span.record_exception(exception)
        current_span.set_status(Status(StatusCode.ERROR, str(exception)))


def instrument_fastapi(app) -> None:
    """Instrument a FastAPI application so every HTTP request gets a span."""
    try:
        FastAPIInstrumentor.instrument_app(app)
        logger.info("tracing_fastapi_instrumented")
    except Exception as e:
        logger.warning(
            "tracing_fastapi_instrumentation_failed",
            error=str(e),
            error_type=type(e).__name__,
            message="Tracing will continue without automatic FastAPI instrumentation",
        )


def shutdown_tracing() -> None:
    """Shutdown tracing and flush all spans."""
    if _tracer_provider:
        try:
            _tracer_provider.shutdown()
            logger.info("tracing_shutdown")
        except Exception as e:
            logger.warning(
                "tracing_shutdown_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
