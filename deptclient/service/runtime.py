from __future__ import annotations

import asyncio
import threading
from typing import Optional

import httpx

from deptclient.config import Settings, get_settings, reset_settings_cache
from deptclient.logging import get_logger
from deptclient.service.auth import AuthService
from deptclient.service.client import RequestClient
from deptclient.service.entities import EntityService
from deptclient.service.refresh import RefreshOperation
from deptclient.service.transport import GraphQLTransport
from deptclient.storage.session_store import SessionStore

logger = get_logger(__name__)


class Runtime:
    """Holds the client's singleton collaborators, wired from settings."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = SessionStore(persist_path=self.settings.session_file)
        self.transport = GraphQLTransport(
            self.settings.api_url,
            timeout=self.settings.request_timeout_seconds,
            connect_timeout=self.settings.connect_timeout_seconds,
            user_agent=self.settings.user_agent,
            transport=http_transport,
        )
        self.refresher = RefreshOperation(self.transport)
        self.client = RequestClient(
            self.transport,
            self.store,
            self.refresher,
            unauthenticated_markers=self.settings.unauthenticated_markers,
        )
        self.auth = AuthService(self.client, self.store)
        self.entities = EntityService(self.client)
        logger.info(
            "runtime_initialized",
            api_url=self.settings.api_url,
            session_persisted=self.settings.session_file is not None,
            session_active=self.store.is_active(),
        )

    async def aclose(self) -> None:
        await self.transport.aclose()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton (double-checked locking)."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def _close_runtime(old: Runtime) -> None:
    """Close the HTTP client of a runtime that is being replaced."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    try:
        if loop is not None:
            loop.create_task(old.aclose())
        else:
            asyncio.run(old.aclose())
    except (RuntimeError, OSError, httpx.HTTPError) as exc:
        # Connections bound to an already closed event loop
        logger.warning(
            "runtime_close_failed", error_type=type(exc).__name__, error=str(exc)
        )


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        if runtime is not None and runtime.transport.is_open:
            _close_runtime(runtime)
        runtime = Runtime(settings)
        return runtime
