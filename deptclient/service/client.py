from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from deptclient.api.schemas import GraphQLRequest
from deptclient.config import DEFAULT_UNAUTHENTICATED_MARKERS
from deptclient.logging import get_correlation_id, get_logger, set_correlation_id
from deptclient.service.errors import (
    RefreshError,
    RequestRejected,
    SessionExpired,
)
from deptclient.service.refresh import RefreshOperation
from deptclient.service.transport import GraphQLTransport
from deptclient.storage.models import Session
from deptclient.storage.session_store import SessionStore

logger = get_logger(__name__)

RequestPayload = Union[GraphQLRequest, Mapping[str, Any], str]


def is_session_expiry_error(
    errors: Optional[List[Any]],
    markers: Union[str, Iterable[str]] = DEFAULT_UNAUTHENTICATED_MARKERS,
) -> bool:
    """True if any GraphQL error message contains a session-expiry marker.

    Matching is a case-sensitive substring test.
    """
    if isinstance(markers, str):
        markers = (markers,)
    markers = tuple(markers)
    for err in errors or []:
        message = err.get("message") if isinstance(err, dict) else None
        if isinstance(message, str) and any(m in message for m in markers):
            return True
    return False


class RequestClient:
    """Executes GraphQL requests with deduplicated refresh on session expiry.

    Per attempt: send once; on an expiry error wait for the single shared
    refresh, then replay once with the credential that refresh produced. A
    second expiry after replay is a ``RequestRejected``, not another refresh.
    If refresh fails the store is cleared before ``SessionExpired`` reaches
    any waiter.
    """

    def __init__(
        self,
        transport: GraphQLTransport,
        store: SessionStore,
        refresher: RefreshOperation,
        *,
        unauthenticated_markers: Union[str, Iterable[str]] = DEFAULT_UNAUTHENTICATED_MARKERS,
    ) -> None:
        self.transport = transport
        self.store = store
        self.refresher = refresher
        if isinstance(unauthenticated_markers, str):
            unauthenticated_markers = (unauthenticated_markers,)
        self.unauthenticated_markers = tuple(unauthenticated_markers)
        self._pending_refresh: Optional[asyncio.Task] = None

    @property
    def refresh_in_flight(self) -> bool:
        return self._pending_refresh is not None

    async def execute(
        self,
        request_payload: RequestPayload,
        explicit_credential: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run one request and return its ``data``.

        ``explicit_credential`` is sent verbatim and disables refresh for
        this call; the session store is neither read nor written.

        Raises:
            TransportError: no interpretable response
            RequestRejected: the API returned errors
            SessionExpired: refresh failed or was impossible
        """
        request = GraphQLRequest.coerce(request_payload)
        if get_correlation_id() is None:
            set_correlation_id()

        bypass_refresh = explicit_credential is not None
        token = explicit_credential if bypass_refresh else self.store.access_token

        body = await self.transport.send(request, token)
        errors = body.get("errors")
        if not errors:
            return self._data(body)

        if bypass_refresh or not is_session_expiry_error(
            errors, self.unauthenticated_markers
        ):
            rejection = RequestRejected.from_errors(errors)
            logger.info(
                "graphql_request_rejected",
                operation=request.operation_name,
                explicit_credential=bypass_refresh,
                reason=rejection.message,
            )
            raise rejection

        logger.info("graphql_session_expired", operation=request.operation_name)
        current = self.store.session
        if (
            self._pending_refresh is None
            and current is not None
            and current.access_token != token
        ):
            # A refresh settled while this request was in flight
            logger.debug("session_refresh_already_settled", operation=request.operation_name)
            session = current
        else:
            session = await self._await_refresh()

        body = await self.transport.send(request, session.access_token)
        errors = body.get("errors")
        if errors:
            logger.warning(
                "graphql_replay_rejected",
                operation=request.operation_name,
                session_expiry=is_session_expiry_error(errors, self.unauthenticated_markers),
            )
            raise RequestRejected.from_errors(errors)
        return self._data(body)

    async def _await_refresh(self) -> Session:
        """Join the in-flight refresh or start one. Returns the new session."""
        if self._pending_refresh is None:
            self._pending_refresh = asyncio.ensure_future(self._run_refresh())
        else:
            logger.debug("session_refresh_joined")
        # Shielded so one cancelled caller cannot cancel the refresh for the rest
        return await asyncio.shield(self._pending_refresh)

    async def _run_refresh(self) -> Session:
        try:
            refresh_token = self.store.refresh_token
            if not refresh_token:
                self.store.clear_session()
                logger.warning("session_refresh_impossible", reason="no_refresh_token")
                raise SessionExpired()
            try:
                session = await self.refresher.refresh(refresh_token)
            except RefreshError as exc:
                self.store.clear_session()
                logger.warning(
                    "session_refresh_failed",
                    error_code=exc.error_code,
                    reason=exc.message,
                )
                raise SessionExpired() from exc
            self.store.set_session(
                session.access_token, session.refresh_token, session.identity
            )
            return session
        finally:
            self._pending_refresh = None

    @staticmethod
    def _data(body: Dict[str, Any]) -> Dict[str, Any]:
        data = body.get("data")
        return data if isinstance(data, dict) else {}
