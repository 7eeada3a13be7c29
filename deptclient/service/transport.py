from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from deptclient.api.schemas import GraphQLRequest
from deptclient.logging import get_logger
from deptclient.service.errors import TransportError

logger = get_logger(__name__)


class GraphQLTransport:
    """POSTs GraphQL requests to the API and returns the decoded body.

    A body counts as interpretable when it is a JSON object holding ``data``
    and/or ``errors``, whatever the HTTP status; GraphQL servers answer
    validation and resolver errors with 200 or 400 alike. Anything else,
    including timeouts and connection errors, raises ``TransportError``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 30.0,
        connect_timeout: float = 10.0,
        user_agent: str = "deptclient",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.endpoint = endpoint
        self.timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self.user_agent = user_agent
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.user_agent,
                },
            )
        return self._client

    @property
    def is_open(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send(
        self, request: GraphQLRequest, token: Optional[str] = None
    ) -> Dict[str, Any]:
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        started = time.monotonic()
        try:
            response = await self._get_client().post(
                self.endpoint, json=request.to_body(), headers=headers
            )
        except httpx.TimeoutException as exc:
            logger.error(
                "graphql_request_timeout",
                operation=request.operation_name,
                endpoint=self.endpoint,
                error=str(exc),
            )
            raise TransportError("GraphQL request timed out") from exc
        except httpx.HTTPError as exc:
            logger.error(
                "graphql_request_failed",
                operation=request.operation_name,
                endpoint=self.endpoint,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise TransportError(f"GraphQL request failed: {exc}") from exc

        duration_ms = int((time.monotonic() - started) * 1000)
        body = self._decode(response)
        logger.debug(
            "graphql_request_sent",
            operation=request.operation_name,
            status_code=response.status_code,
            duration_ms=duration_ms,
            authenticated=bool(token),
            has_errors=bool(body.get("errors")),
        )
        return body

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            logger.error(
                "graphql_response_not_json",
                status_code=response.status_code,
                content_type=response.headers.get("content-type"),
            )
            raise TransportError(
                f"Malformed response from API (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

        if not isinstance(body, dict) or ("data" not in body and "errors" not in body):
            logger.error(
                "graphql_response_malformed",
                status_code=response.status_code,
                body_type=type(body).__name__,
            )
            raise TransportError(
                f"Malformed response from API (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        errors = body.get("errors")
        if errors is not None and not isinstance(errors, list):
            raise TransportError(
                "Malformed GraphQL errors field", status_code=response.status_code
            )
        return body
