"""
Shared plumbing for token-bound upstream REST clients.

Each client wraps one httpx.AsyncClient (owned by the request) and one bearer
token. Non-2xx responses are turned into the UpstreamError family so route
handlers can map them to HTTP responses with remediation hints.
"""
import time
from typing import Any, Dict, Optional

import httpx

from bizquery.core.errors import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamNotFoundError,
)
from bizquery.core.logging import get_logger
from bizquery.core.metrics import record_upstream_request

logger = get_logger(__name__)


def _error_fields(response: httpx.Response) -> Dict[str, Optional[str]]:
    """Pull (code, message) out of an OData / Graph style error body."""
    try:
        body = response.json()
    except ValueError:
        return {"code": None, "message": response.text[:500] or None}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return {"code": error.get("code"), "message": error.get("message")}
    if isinstance(error, str):
        return {"code": error, "message": body.get("error_description")}
    return {"code": None, "message": response.text[:500] or None}


def upstream_error_from_response(
    response: httpx.Response,
    service: str,
    auth_hint: Optional[str] = None,
    not_found_hints: Optional[list] = None,
) -> UpstreamError:
    """
    Map a failed upstream response to the matching error class.

    401/403 or Authorization_RequestDenied -> UpstreamAuthError
    404 or "Resource not found"           -> UpstreamNotFoundError
    anything else                         -> UpstreamError
    """
    fields = _error_fields(response)
    code = fields["code"]
    detail = fields["message"] or response.reason_phrase
    message = f"{service} API {response.status_code}: {detail}"

    if response.status_code in (401, 403) or code == "Authorization_RequestDenied":
        return UpstreamAuthError(
            "Insufficient privileges",
            service=service,
            upstream_status=response.status_code,
            code=code,
            hint=auth_hint,
            details=message,
        )
    if response.status_code == 404 or "Resource not found" in (detail or ""):
        return UpstreamNotFoundError(
            f"{service} resource not found",
            service=service,
            upstream_status=response.status_code,
            code=code,
            hints=not_found_hints,
            details=message,
        )
    return UpstreamError(
        message,
        service=service,
        upstream_status=response.status_code,
        code=code,
        details=message,
    )


class UpstreamClient:
    """Token-bound GET client for one upstream REST API."""

    service = "upstream"
    auth_hint: Optional[str] = None
    not_found_hints: Optional[list] = None

    def __init__(self, http: httpx.AsyncClient, base_url: str, access_token: str):
        self._http = http
        self.base_url = base_url.rstrip("/")
        self._access_token = access_token

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}{path}"

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        accept: str = "application/json",
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": accept,
        }
        start = time.time()
        ok = False
        try:
            response = await self._http.request(
                method,
                self._url(path),
                params=params,
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream_request_failed",
                service=self.service,
                path=path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise UpstreamError(
                f"{self.service} API request failed: {exc}",
                service=self.service,
            ) from exc
        else:
            ok = response.is_success
        finally:
            record_upstream_request(self.service, ok, time.time() - start)

        if not response.is_success:
            raise upstream_error_from_response(
                response,
                self.service,
                auth_hint=self.auth_hint,
                not_found_hints=self.not_found_hints,
            )
        return response

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._send("GET", path, params=params)
        return response.json()

    async def get_collection(self, path: str, params: Optional[Dict[str, Any]] = None) -> list:
        """GET an OData collection and return its `value` array."""
        data = await self.get_json(path, params=params)
        return data.get("value") or []
