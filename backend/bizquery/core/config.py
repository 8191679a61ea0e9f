"""
Application configuration.

All settings come from environment variables (a local .env file is loaded
first when present). Settings are read once per process by get_settings();
nothing here holds credentials-bound clients, only plain values.
"""
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import ConfigurationError

load_dotenv()

GRAPH_AUDIENCE = "https://graph.microsoft.com"
BC_AUDIENCE = "https://api.businesscentral.dynamics.com"


def _env(*names: str, default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty value among several variable names."""
    for name in names:
        value = os.getenv(name)
        if value is not None and value.strip():
            return value.strip()
    return default


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)) or default)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)) or default)


class ClientCredentials(BaseModel):
    """OAuth2 client-credentials triple for one app registration."""

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    def is_complete(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)


class Settings(BaseModel):
    """Process-wide settings, built from the environment."""

    # Directory (graph) credentials
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    # Financial (ERP) credentials; fall back to the directory ones
    bc_tenant_id: Optional[str] = None
    bc_client_id: Optional[str] = None
    bc_client_secret: Optional[str] = None
    bc_environment: str = "Production"

    authority_host: str = "https://login.microsoftonline.com"
    graph_api_base: str = "https://graph.microsoft.com/v1.0"
    graph_audience: str = GRAPH_AUDIENCE
    bc_api_root: str = "https://api.businesscentral.dynamics.com/v2.0"
    bc_audience: str = BC_AUDIENCE

    llm_api_base: str = "https://api.openai.com/v1"
    llm_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 60.0
    llm_max_tokens: int = 1024

    http_timeout_seconds: float = 30.0
    inbox_fetch_concurrency: int = Field(8, ge=1)
    company_fetch_concurrency: int = Field(4, ge=1)

    log_level: str = "INFO"
    log_json: bool = True
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        origins = _env("CORS_ALLOW_ORIGINS", default="*")
        return cls(
            tenant_id=_env("TENANT_ID"),
            client_id=_env("CLIENT_ID"),
            client_secret=_env("CLIENT_SECRET"),
            bc_tenant_id=_env("BC_TENANT_ID"),
            bc_client_id=_env("BC_CLIENT_ID"),
            bc_client_secret=_env("BC_SECRET_KEY", "BC_CLIENT_SECRET"),
            bc_environment=_env("BC_ENVIRONMENT", default="Production"),
            authority_host=_env("AUTHORITY_HOST", default="https://login.microsoftonline.com"),
            graph_api_base=_env("GRAPH_API_BASE", default="https://graph.microsoft.com/v1.0"),
            graph_audience=_env("GRAPH_AUDIENCE", default=GRAPH_AUDIENCE),
            bc_api_root=_env("BC_API_ROOT", default="https://api.businesscentral.dynamics.com/v2.0"),
            bc_audience=_env("BC_AUDIENCE", default=BC_AUDIENCE),
            llm_api_base=_env("LLM_API_BASE", default="https://api.openai.com/v1"),
            llm_api_key=_env("LLM_API_KEY", "OPENAI_API_KEY"),
            llm_model=_env("LLM_MODEL", "OPENAI_LLM_MODEL", default="gpt-4o-mini"),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 60.0),
            llm_max_tokens=_env_int("LLM_MAX_TOKENS", 1024),
            http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 30.0),
            inbox_fetch_concurrency=_env_int("INBOX_FETCH_CONCURRENCY", 8),
            company_fetch_concurrency=_env_int("COMPANY_FETCH_CONCURRENCY", 4),
            log_level=_env("LOG_LEVEL", default="INFO"),
            log_json=(_env("LOG_JSON", default="true").lower() == "true"),
            cors_allow_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )

    @property
    def directory_credentials(self) -> ClientCredentials:
        return ClientCredentials(
            tenant_id=self.tenant_id,
            client_id=self.client_id,
            client_secret=self.client_secret,
        )

    @property
    def financial_credentials(self) -> ClientCredentials:
        return ClientCredentials(
            tenant_id=self.bc_tenant_id or self.tenant_id,
            client_id=self.bc_client_id or self.client_id,
            client_secret=self.bc_client_secret or self.client_secret,
        )

    def missing_financial_settings(self) -> List[str]:
        """Names of the variables needed for financial credentials that are unset."""
        missing = []
        if not (self.bc_tenant_id or self.tenant_id):
            missing.append("BC_TENANT_ID or TENANT_ID")
        if not (self.bc_client_id or self.client_id):
            missing.append("BC_CLIENT_ID or CLIENT_ID")
        if not (self.bc_client_secret or self.client_secret):
            missing.append("BC_SECRET_KEY, BC_CLIENT_SECRET or CLIENT_SECRET")
        return missing

    def missing_directory_settings(self) -> List[str]:
        return [
            name
            for name, value in (
                ("TENANT_ID", self.tenant_id),
                ("CLIENT_ID", self.client_id),
                ("CLIENT_SECRET", self.client_secret),
            )
            if not value
        ]

    def bc_base_url(self) -> str:
        """Base URL of the financial REST API for the configured tenant/environment."""
        tenant = self.bc_tenant_id or self.tenant_id
        if not tenant:
            raise ConfigurationError(
                "Missing TENANT_ID or BC_TENANT_ID for the financial API",
                details={"missing": ["BC_TENANT_ID or TENANT_ID"]},
            )
        return f"{self.bc_api_root.rstrip('/')}/{tenant}/{self.bc_environment}/api/v2.0"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Global settings accessor (read from the environment on first use)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
