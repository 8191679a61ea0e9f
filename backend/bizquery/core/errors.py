"""
Application errors.

Errors at the request boundary (bad input, credentials, answer generation)
derive from BusinessQueryError and are rendered by the exception handler in
main.py. Failures of a single user's inbox or a single company's records
never reach this layer: they are recorded next to the successful results.
"""
from typing import Any, List, Optional

# Remediation hints returned with authorization/not-found responses
DIRECTORY_PERMISSIONS_HINT = (
    "Required permissions: User.Read.All (Application), Mail.Read (Application), "
    "and for search: Mail.Read, Calendars.Read, Files.Read.All"
)
FINANCIAL_PERMISSIONS_HINT = (
    "Required permissions: Financials.ReadWrite.All / API.ReadWrite.All (Application) "
    "- ensure admin consent is granted"
)
FINANCIAL_NOT_FOUND_HINTS = [
    "Ensure Business Central is provisioned and licensed in your Azure AD tenant",
    "Check the BC_ENVIRONMENT name (default: Production)",
    "Verify the app registration is added to Business Central (Microsoft Entra applications)",
    "Verify your subscription includes Business Central",
]


class BusinessQueryError(Exception):
    """Base class for errors that surface as an HTTP error response."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        hint: Optional[str] = None,
        hints: Optional[List[str]] = None,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.hint = hint
        self.hints = hints
        self.details = details

    def to_payload(self) -> dict:
        payload: dict = {"error": self.message}
        if self.hint:
            payload["hint"] = self.hint
        if self.hints:
            payload["hints"] = list(self.hints)
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ClientInputError(BusinessQueryError):
    """Missing or invalid request input; raised before any upstream call."""

    status_code = 400


class ConfigurationError(BusinessQueryError):
    """Required environment settings are missing."""

    status_code = 500


class UpstreamError(BusinessQueryError):
    """An upstream (directory, financial, identity) call failed."""

    status_code = 502

    def __init__(
        self,
        message: str,
        service: str,
        upstream_status: Optional[int] = None,
        code: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.service = service
        self.upstream_status = upstream_status
        self.code = code


class UpstreamAuthError(UpstreamError):
    """Credential exchange or authorization was refused upstream."""

    status_code = 403


class UpstreamNotFoundError(UpstreamError):
    """The upstream resource is not provisioned or not enabled."""

    status_code = 404


class CompletionServiceError(BusinessQueryError):
    """The text completion service failed or returned no text."""

    status_code = 500


class ClassificationError(Exception):
    """The classifier response could not be turned into an intent.

    Never leaves the intent classifier: it is replaced by the default intent.
    """

    def __init__(self, reason: str, message: str, raw_output: Optional[str] = None):
        super().__init__(message)
        self.reason = reason
        self.raw_output = raw_output
