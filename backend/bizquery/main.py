from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.errors import BusinessQueryError
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.middleware import TraceIDMiddleware
from .core.tracing import (
    configure_tracing,
    instrument_fastapi,
    shutdown_tracing,
    get_trace_id_from_context,
    record_exception,
    set_span_status,
    StatusCode,
)
from .routes import businesscentral, health, metrics, query, search

settings = get_settings()

# Configure structured logging
# Use JSON output in production (containerized), console output in development
configure_logging(log_level=settings.log_level, json_output=settings.log_json)

logger = get_logger(__name__)

# Configure distributed tracing; OTLP export only when an endpoint is set
configure_tracing()

app = FastAPI(
    title="BizQuery API",
    description="Natural-language questions over directory and financial data",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Add trace ID middleware (must be after CORS middleware)
app.add_middleware(TraceIDMiddleware)

# Instrument FastAPI with OpenTelemetry (creates automatic spans for HTTP requests)
instrument_fastapi(app)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "app_startup_completed",
        directory_configured=not settings.missing_directory_settings(),
        financial_configured=not settings.missing_financial_settings(),
        llm_configured=bool(settings.llm_api_key),
        llm_model=settings.llm_model,
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on application shutdown."""
    logger.info("app_shutdown_started")
    shutdown_tracing()
    logger.info("app_shutdown_completed")


def _error_response(status_code: int, content: dict) -> JSONResponse:
    # Get trace ID from logging context or OpenTelemetry context
    trace_id = get_trace_id() or get_trace_id_from_context()
    content["status_code"] = status_code
    content["trace_id"] = trace_id
    response = JSONResponse(status_code=status_code, content=content)
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


# Error handlers
@app.exception_handler(BusinessQueryError)
async def business_query_exception_handler(request: Request, exc: BusinessQueryError):
    """Handle application errors (bad input, credentials, upstream, completion)."""
    if exc.status_code >= 500:
        record_exception(exc)
        set_span_status(StatusCode.ERROR, exc.message)

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_error",
        status_code=exc.status_code,
        error=exc.message,
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(exc.status_code, exc.to_payload())


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.OK, str(exc.detail))

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(exc.status_code, {"error": exc.detail})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Last-resort handler for failures raised outside TraceIDMiddleware."""
    record_exception(exc)
    set_span_status(StatusCode.ERROR, str(exc))

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(500, {"error": "Internal server error"})


# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
app.include_router(query.router, prefix="/api", tags=["Query"])
app.include_router(search.router, prefix="/api/search", tags=["Search"])
app.include_router(businesscentral.router, prefix="/api/businesscentral", tags=["Financials"])
