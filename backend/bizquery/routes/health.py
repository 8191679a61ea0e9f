"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends

from bizquery.core.config import Settings
from bizquery.dependencies import get_app_settings

router = APIRouter()


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    """
    return {
        "status": "ok",
        "message": "API is running"
    }


@router.get("/config")
async def configuration_health(settings: Settings = Depends(get_app_settings)):
    """
    Which upstream integrations have the settings they need.

    Only reports variable names, never values. No upstream call is made,
    so a "ready" integration can still be refused by the identity service.

    Returns:
        status: "ok" when every integration is configured, else "degraded"
        directory / financial / completion: per-integration readiness
        missing: unset variable names per integration
    """
    missing = {
        "directory": settings.missing_directory_settings(),
        "financial": settings.missing_financial_settings(),
        "completion": [] if settings.llm_api_key else ["LLM_API_KEY or OPENAI_API_KEY"],
    }
    response = {name: not names for name, names in missing.items()}
    response["status"] = "ok" if all(response.values()) else "degraded"
    response["missing"] = {name: names for name, names in missing.items() if names}
    return response
