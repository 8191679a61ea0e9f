"""
FastAPI dependencies.

Nothing here is a module-level live client: the HTTP client, credentials,
upstream clients, completion service and orchestrator are all built per
request, so tests can replace any of them with app.dependency_overrides.
"""
from typing import AsyncIterator, Callable

import httpx
from fastapi import Depends

from bizquery.clients.completion import LLMClient
from bizquery.clients.credentials import ClientSecretCredential
from bizquery.clients.directory import DirectoryClient
from bizquery.clients.financials import FinancialsClient
from bizquery.core.config import Settings, get_settings
from bizquery.core.errors import ConfigurationError
from bizquery.services.ai.orchestration import QueryOrchestrator


def get_app_settings() -> Settings:
    return get_settings()


async def get_http_client(settings: Settings = Depends(get_app_settings)) -> AsyncIterator[httpx.AsyncClient]:
    """One pooled async client per request, closed when the response is sent."""
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        yield client


def get_directory_credential(
    settings: Settings = Depends(get_app_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> ClientSecretCredential:
    return ClientSecretCredential(
        http,
        settings.directory_credentials,
        authority_host=settings.authority_host,
        label="directory",
    )


def get_financial_credential(
    settings: Settings = Depends(get_app_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> ClientSecretCredential:
    return ClientSecretCredential(
        http,
        settings.financial_credentials,
        authority_host=settings.authority_host,
        label="financial",
    )


def get_completion_service(
    settings: Settings = Depends(get_app_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> LLMClient:
    return LLMClient(
        http,
        api_base=settings.llm_api_base,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        timeout_seconds=settings.llm_timeout_seconds,
        max_tokens=settings.llm_max_tokens,
    )


def get_directory_factory(
    settings: Settings = Depends(get_app_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> Callable[[str], DirectoryClient]:
    def _factory(token: str) -> DirectoryClient:
        return DirectoryClient(http, settings.graph_api_base, token)

    return _factory


def get_financials_factory(
    settings: Settings = Depends(get_app_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> Callable[[str], FinancialsClient]:
    def _factory(token: str) -> FinancialsClient:
        return FinancialsClient(http, settings.bc_base_url(), token)

    return _factory


def get_orchestrator(
    settings: Settings = Depends(get_app_settings),
    directory_credential=Depends(get_directory_credential),
    financial_credential=Depends(get_financial_credential),
    completion=Depends(get_completion_service),
    directory_factory=Depends(get_directory_factory),
    financials_factory=Depends(get_financials_factory),
) -> QueryOrchestrator:
    return QueryOrchestrator(
        directory_credential=directory_credential,
        financial_credential=financial_credential,
        completion=completion,
        directory_factory=directory_factory,
        financials_factory=financials_factory,
        graph_audience=settings.graph_audience,
        bc_audience=settings.bc_audience,
        inbox_concurrency=settings.inbox_fetch_concurrency,
        company_concurrency=settings.company_fetch_concurrency,
    )


async def get_directory_client(
    settings: Settings = Depends(get_app_settings),
    credential=Depends(get_directory_credential),
    directory_factory=Depends(get_directory_factory),
) -> DirectoryClient:
    """Directory client bound to a freshly acquired token."""
    token = await credential.get_token(settings.graph_audience)
    return directory_factory(token.token)


async def get_financials_client(
    settings: Settings = Depends(get_app_settings),
    credential=Depends(get_financial_credential),
    financials_factory=Depends(get_financials_factory),
) -> FinancialsClient:
    """
    Financial client bound to a freshly acquired token.

    Raises ConfigurationError naming the unset variables before any
    network call when the financial credential set is incomplete.
    """
    missing = settings.missing_financial_settings()
    if missing:
        raise ConfigurationError(
            "Missing Business Central credentials",
            details={"missing": missing},
        )
    token = await credential.get_token(settings.bc_audience)
    return financials_factory(token.token)
