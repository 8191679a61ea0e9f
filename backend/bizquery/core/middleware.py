"""
Middleware for trace ID propagation and request context management.

This middleware:
- Takes the trace ID from X-Trace-ID or X-Request-ID, or generates one
- Generates a unique request ID per request
- Binds both to the logging context for the lifetime of the request
- Records HTTP RED metrics and logs request start/completion
- Echoes both IDs in the response headers, including on unhandled errors,
  which become a 500 {error, status_code, trace_id} body
"""
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import (
    set_trace_id,
    set_request_id,
    generate_trace_id,
    generate_request_id,
    get_logger,
)
from .metrics import record_http_request
from .tracing import (
    get_trace_id_from_context,
    set_span_attribute,
    record_exception,
    set_span_status,
    StatusCode,
)

logger = get_logger(__name__)


def _otel_trace_id_as_uuid() -> str:
    """Current OpenTelemetry trace ID in UUID layout, or empty string."""
    otel_trace_id = get_trace_id_from_context()
    if otel_trace_id and len(otel_trace_id) == 32:
        return (
            f"{otel_trace_id[0:8]}-{otel_trace_id[8:12]}-{otel_trace_id[12:16]}-"
            f"{otel_trace_id[16:20]}-{otel_trace_id[20:32]}"
        )
    return ""


class TraceIDMiddleware(BaseHTTPMiddleware):
    """
    Handle trace ID propagation and request context.

    Priority for the trace ID: X-Trace-ID > X-Request-ID > active
    OpenTelemetry span > freshly generated UUID.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = (
            request.headers.get("X-Trace-ID")
            or request.headers.get("X-Request-ID")
            or _otel_trace_id_as_uuid()
            or generate_trace_id()
        )
        request_id = generate_request_id()

        set_trace_id(trace_id)
        set_request_id(request_id)

        set_span_attribute("http.route", request.url.path)

        start_time = time.time()
        # Exception handlers read this to compute latency
        request.state.start_time = start_time
        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            latency_ms = int(process_time * 1000)
            set_span_attribute("http.response.latency_ms", latency_ms)

            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration_seconds=process_time,
            )

            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=latency_ms,
            )

            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            process_time = time.time() - start_time
            record_exception(e)
            set_span_status(StatusCode.ERROR, str(e))

            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=500,
                duration_seconds=process_time,
            )
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int(process_time * 1000),
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "status_code": 500,
                    "trace_id": trace_id,
                },
                headers={"X-Trace-ID": trace_id, "X-Request-ID": request_id},
            )
        finally:
            set_trace_id(None)
            set_request_id(None)
