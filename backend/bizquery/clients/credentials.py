"""
OAuth2 client-credentials token exchange.

Exchanges an app registration's id/secret for a bearer token scoped to one
upstream audience (directory or financial API). Tokens are returned to the
caller and never cached here: each query acquires its own.
"""
import time
from typing import Optional

import httpx
from pydantic import BaseModel

from bizquery.core.config import ClientCredentials
from bizquery.core.errors import (
    ConfigurationError,
    DIRECTORY_PERMISSIONS_HINT,
    FINANCIAL_PERMISSIONS_HINT,
    UpstreamAuthError,
)
from bizquery.core.logging import get_logger
from bizquery.core.metrics import record_upstream_request

logger = get_logger(__name__)


class AccessToken(BaseModel):
    token: str
    expires_on: int


class ClientSecretCredential:
    """Client-credentials grant against the identity platform v2.0 endpoint."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: ClientCredentials,
        authority_host: str = "https://login.microsoftonline.com",
        label: str = "directory",
    ):
        self._http = http
        self._credentials = credentials
        self.authority_host = authority_host.rstrip("/")
        self.label = label

    @staticmethod
    def scope_for(audience: str) -> str:
        """`https://graph.microsoft.com` -> `https://graph.microsoft.com/.default`"""
        if audience.endswith("/.default"):
            return audience
        return f"{audience.rstrip('/')}/.default"

    def _hint_for(self, audience: str) -> Optional[str]:
        if "graph" in audience:
            return DIRECTORY_PERMISSIONS_HINT
        return FINANCIAL_PERMISSIONS_HINT

    async def get_token(self, audience: str) -> AccessToken:
        """
        Acquire a bearer token for `audience`.

        Raises:
            ConfigurationError: tenant, client id or secret is missing
            UpstreamAuthError: the identity endpoint refused the credentials
                or could not be reached
        """
        creds = self._credentials
        if not creds.is_complete():
            missing = [
                name
                for name, value in (
                    ("tenant_id", creds.tenant_id),
                    ("client_id", creds.client_id),
                    ("client_secret", creds.client_secret),
                )
                if not value
            ]
            raise ConfigurationError(
                f"Missing {self.label} credentials",
                details={"missing": missing},
            )

        url = f"{self.authority_host}/{creds.tenant_id}/oauth2/v2.0/token"
        form = {
            "grant_type": "client_credentials",
            "client_id": creds.client_id,
            "client_secret": creds.client_secret,
            "scope": self.scope_for(audience),
        }

        start = time.time()
        try:
            response = await self._http.post(url, data=form)
        except httpx.HTTPError as exc:
            record_upstream_request("identity", False, time.time() - start)
            logger.warning(
                "token_request_failed",
                audience=audience,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamAuthError(
                f"Token request for {audience} failed",
                service="identity",
                hint=self._hint_for(audience),
                details=str(exc),
            ) from exc

        record_upstream_request("identity", response.is_success, time.time() - start)

        if not response.is_success:
            logger.warning(
                "token_request_rejected",
                audience=audience,
                status_code=response.status_code,
            )
            raise UpstreamAuthError(
                f"Token request for {audience} was rejected",
                service="identity",
                upstream_status=response.status_code,
                hint=self._hint_for(audience),
                details=f"{response.status_code} - {response.text[:500]}",
            )

        data = response.json()
        token = data.get("access_token")
        if not token:
            raise UpstreamAuthError(
                "Token response missing access_token",
                service="identity",
                hint=self._hint_for(audience),
            )

        expires_in = int(data.get("expires_in") or 3600)
        logger.info("token_acquired", audience=audience, expires_in=expires_in)
        return AccessToken(token=token, expires_on=int(time.time()) + expires_in)
