"""
GET /metrics

Prometheus text exposition of the HTTP, pipeline, upstream, LLM and
process metrics defined in bizquery.core.metrics.
"""
from fastapi import APIRouter, Response
from fastapi.responses import PlainTextResponse

from bizquery.core.logging import get_logger
from bizquery.core.metrics import get_metrics, get_metrics_content_type

logger = get_logger(__name__)
router = APIRouter()

SCRAPE_ERROR_BODY = b"# Error collecting metrics\n"


@router.get("", response_class=PlainTextResponse)
async def metrics():
    """Scrape endpoint; a collection failure yields a comment-only body, not a 500."""
    content_type = get_metrics_content_type()
    try:
        body = get_metrics()
    except Exception as e:
        logger.error(
            "metrics_scrape_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        body = SCRAPE_ERROR_BODY
    return Response(content=body, media_type=content_type)
