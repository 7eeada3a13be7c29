from __future__ import annotations

from pydantic import ValidationError

from deptclient.api.schemas import REFRESH_TOKEN_MUTATION, AuthPayload, GraphQLRequest
from deptclient.logging import get_logger
from deptclient.service.errors import (
    NetworkFailure,
    RefreshRejected,
    TransportError,
    first_error_message,
)
from deptclient.service.transport import GraphQLTransport
from deptclient.storage.models import Session

logger = get_logger(__name__)


class RefreshOperation:
    """Exchanges a refresh token for a new session via the refreshToken mutation.

    Stateless apart from the network call. Failures are terminal; retrying is
    the caller's decision.
    """

    def __init__(self, transport: GraphQLTransport) -> None:
        self.transport = transport

    async def refresh(self, refresh_token: str) -> Session:
        if not refresh_token:
            raise RefreshRejected("No refresh token available")

        request = GraphQLRequest(
            query=REFRESH_TOKEN_MUTATION,
            variables={"refreshToken": refresh_token},
            operation_name="RefreshToken",
        )
        try:
            # The refresh token is the credential here; no Authorization header
            body = await self.transport.send(request, token=None)
        except TransportError as exc:
            logger.warning("session_refresh_network_failure", error=exc.message)
            raise NetworkFailure(exc.message) from exc

        errors = body.get("errors")
        if errors:
            message = first_error_message(errors)
            logger.warning("session_refresh_rejected", reason=message)
            raise RefreshRejected(message, detail={"errors": errors})

        data = body.get("data")
        payload = data.get("refreshToken") if isinstance(data, dict) else None
        if not payload:
            raise RefreshRejected("Refresh response carried no credentials")
        try:
            session = AuthPayload.model_validate(payload).to_session()
        except (ValidationError, ValueError) as exc:
            logger.warning("session_refresh_payload_invalid", error=str(exc))
            raise RefreshRejected("Refresh response carried invalid credentials") from exc

        logger.info("session_refresh_succeeded", user_id=session.identity.id)
        return session
