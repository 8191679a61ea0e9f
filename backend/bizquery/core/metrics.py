"""
Prometheus metrics collection module.

Metrics Categories:
- RED Metrics: Rate, Errors, Duration of HTTP requests
- Pipeline Metrics: intent classification, fallbacks, orchestration duration
- Upstream Metrics: directory/financial/identity calls, per-entity failures
- LLM Metrics: requests, latency, errors, token usage
- Resource Metrics: CPU, memory

Naming follows Prometheus conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration
- Gauges: No special suffix
"""
import re

import psutil
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    REGISTRY,
    CONTENT_TYPE_LATEST,
)

from bizquery.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS - Rate, Errors, Duration
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
    registry=registry,
)

# ============================================================================
# PIPELINE METRICS
# ============================================================================

intent_classifications_total = Counter(
    "intent_classifications_total",
    "Resolved intents by selected fetch strategy",
    ["best_fit"],
    registry=registry,
)

intent_fallbacks_total = Counter(
    "intent_fallbacks_total",
    "Classifier responses replaced by the default intent",
    ["reason"],  # completion_error, no_json_object, invalid_json, not_an_object
    registry=registry,
)

orchestration_duration_seconds = Histogram(
    "orchestration_duration_seconds",
    "End-to-end query handling latency in seconds",
    ["best_fit"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0],
    registry=registry,
)

# ============================================================================
# UPSTREAM METRICS
# ============================================================================

upstream_requests_total = Counter(
    "upstream_requests_total",
    "Total number of upstream API requests",
    ["service", "outcome"],  # service: directory|financial|identity; outcome: ok|error
    registry=registry,
)

upstream_request_duration_seconds = Histogram(
    "upstream_request_duration_seconds",
    "Upstream API request latency in seconds",
    ["service"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=registry,
)

entity_fetch_failures_total = Counter(
    "entity_fetch_failures_total",
    "Per-user or per-company fetches recorded as partial failures",
    ["entity"],  # inbox, users, companies, items, customers, ...
    registry=registry,
)

# ============================================================================
# LLM METRICS
# ============================================================================

llm_requests_total = Counter(
    "llm_requests_total",
    "Total number of LLM completion requests",
    ["agent", "model"],
    registry=registry,
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM completion latency in seconds",
    ["agent", "model"],
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0],
    registry=registry,
)

llm_errors_total = Counter(
    "llm_errors_total",
    "Total number of failed LLM completion requests",
    ["agent", "error_type"],
    registry=registry,
)

llm_tokens_total = Counter(
    "llm_tokens_total",
    "LLM tokens consumed",
    ["agent", "model", "direction"],  # direction: input|output
    registry=registry,
)

# ============================================================================
# RESOURCE METRICS
# ============================================================================

system_cpu_usage_percent = Gauge(
    "system_cpu_usage_percent",
    "System CPU usage percentage",
    registry=registry,
)

system_memory_usage_bytes = Gauge(
    "system_memory_usage_bytes",
    "System memory usage in bytes",
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

_COMPANY_SEGMENT = re.compile(r"^/api/businesscentral/companies/[^/]+")
_INBOX_SEGMENT = re.compile(r"^/api/search/emailInbox/[^/]+")


def normalize_endpoint(path: str) -> str:
    """
    Normalize endpoint path for metrics.

    Replaces dynamic segments (company ids, user ids) with placeholders
    to avoid high cardinality.

    Examples:
        /api/businesscentral/companies/abc/items -> /api/businesscentral/companies/{company_id}/items
        /api/search/emailInbox/u1 -> /api/search/emailInbox/{user_id}
        /api?query=x -> /api
    """
    if "?" in path:
        path = path.split("?")[0]

    path = _COMPANY_SEGMENT.sub("/api/businesscentral/companies/{company_id}", path)
    path = _INBOX_SEGMENT.sub("/api/search/emailInbox/{user_id}", path)
    return path


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record HTTP request metrics (RED metrics)."""
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_intent_classification(best_fit: str) -> None:
    intent_classifications_total.labels(best_fit=best_fit).inc()


def record_intent_fallback(reason: str) -> None:
    intent_fallbacks_total.labels(reason=reason).inc()


def record_orchestration(best_fit: str, duration_seconds: float) -> None:
    orchestration_duration_seconds.labels(best_fit=best_fit).observe(duration_seconds)


def record_upstream_request(service: str, ok: bool, duration_seconds: float) -> None:
    """
    Record one upstream API call.

    Args:
        service: "directory", "financial" or "identity"
        ok: Whether the call succeeded
        duration_seconds: Call latency
    """
    upstream_requests_total.labels(service=service, outcome="ok" if ok else "error").inc()
    upstream_request_duration_seconds.labels(service=service).observe(duration_seconds)


def record_entity_fetch_failure(entity: str) -> None:
    entity_fetch_failures_total.labels(entity=entity).inc()


def record_llm_request(agent: str, model: str, duration_seconds: float) -> None:
    llm_requests_total.labels(agent=agent, model=model).inc()
    llm_request_duration_seconds.labels(agent=agent, model=model).observe(duration_seconds)


def record_llm_error(agent: str, error_type: str) -> None:
    llm_errors_total.labels(agent=agent, error_type=error_type).inc()


def record_llm_tokens(agent: str, model: str, input_tokens: int, output_tokens: int) -> None:
    if input_tokens:
        llm_tokens_total.labels(agent=agent, model=model, direction="input").inc(input_tokens)
    if output_tokens:
        llm_tokens_total.labels(agent=agent, model=model, direction="output").inc(output_tokens)


def update_resource_metrics() -> None:
    """
    Update system resource metrics (CPU, memory).

    Called on-demand when metrics are scraped.
    """
    try:
        system_cpu_usage_percent.set(psutil.cpu_percent(interval=None))
        system_memory_usage_bytes.set(psutil.virtual_memory().used)
    except Exception as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def get_metrics() -> bytes:
    """Get Prometheus metrics in text format."""
    update_resource_metrics()
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
