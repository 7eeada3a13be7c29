from __future__ import annotations

from typing import Any, Dict, List, Optional


class ClientError(Exception):
    """Base class for failures surfaced by the GraphQL client.

    Each subclass carries a stable ``error_code`` so callers can branch on
    the failure kind without inspecting messages:
    - transport_error: no interpretable response
    - request_rejected: the API rejected the request
    - session_expired: refresh failed, local session already cleared
    """

    error_code: str = "client_error"

    def __init__(
        self,
        message: str,
        *,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class TransportError(ClientError):
    """No interpretable response: connection failure, timeout, malformed body."""

    error_code = "transport_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class RequestRejected(ClientError):
    """The API answered with GraphQL errors unrelated to a refreshable expiry."""

    error_code = "request_rejected"

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[List[Dict[str, Any]]] = None,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.errors = list(errors or [])

    @classmethod
    def from_errors(cls, errors: List[Dict[str, Any]]) -> "RequestRejected":
        return cls(first_error_message(errors), errors=errors)


class SessionExpired(ClientError):
    """Re-authentication is required; the session store was already cleared."""

    error_code = "session_expired"

    def __init__(
        self,
        message: str = "Session expired; please log in again",
        *,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message, detail=detail)


class RefreshError(ClientError):
    """Refresh operation failure. Never escapes the request client as-is."""

    error_code = "refresh_error"


class RefreshRejected(RefreshError):
    """The backend refused the refresh token."""

    error_code = "refresh_rejected"


class NetworkFailure(RefreshError):
    """The refresh call produced no interpretable response."""

    error_code = "network_failure"


def first_error_message(errors: List[Dict[str, Any]]) -> str:
    for err in errors or []:
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
    return "Request rejected"


__all__ = [
    "ClientError",
    "TransportError",
    "RequestRejected",
    "SessionExpired",
    "RefreshError",
    "RefreshRejected",
    "NetworkFailure",
    "first_error_message",
]
