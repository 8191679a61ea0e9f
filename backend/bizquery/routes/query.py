"""
Natural-language query endpoint.

GET /api?query={text}
"""
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query

from bizquery.core.errors import ClientInputError
from bizquery.core.logging import get_logger
from bizquery.dependencies import get_orchestrator
from bizquery.services.ai.orchestration import QueryOrchestrator

logger = get_logger(__name__)

router = APIRouter()


@router.get("")
async def answer_query(
    query: Optional[str] = Query(None, description="Free-text question"),
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
):
    """
    Answer a question from directory and financial data.

    Response:
        query: the question as received
        answer: generated text
        dataSummary: counts of what was fetched (never raw records)
        bc: the financial part of dataSummary
    """
    start_time = time.time()
    text = (query or "").strip()
    if not text:
        logger.warning("query_empty", query=query)
        raise ClientInputError("Missing query parameter")

    result = await orchestrator.handle(text)

    logger.info(
        "query_completed",
        query_len=len(text),
        latency_ms=int((time.time() - start_time) * 1000),
    )
    return {
        "query": text,
        "answer": result.answer,
        "dataSummary": result.summary,
        "bc": result.summary.get("financials", {}),
    }
