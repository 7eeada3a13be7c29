import asyncio
import inspect
import json
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

# Configure the environment before anything reads settings
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("DEPT_API_URL", "http://testserver/graphql")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.pop("DEPT_SESSION_FILE", None)

import httpx  # noqa: E402
import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from deptclient.service.client import RequestClient  # noqa: E402
from deptclient.service.refresh import RefreshOperation  # noqa: E402
from deptclient.service.runtime import reset_runtime_for_tests  # noqa: E402
from deptclient.service.transport import GraphQLTransport  # noqa: E402
from deptclient.storage.models import Identity  # noqa: E402
from deptclient.storage.session_store import SessionStore  # noqa: E402

API_URL = "http://testserver/graphql"
USER = {"id": "u-1", "email": "ada@example.com", "firstName": "Ada", "lastName": "Lovelace"}
UNAUTHENTICATED = {"data": None, "errors": [{"message": "Unauthenticated"}]}


class FakeGraphQLBackend:
    """Async httpx MockTransport handler mimicking the departmental API.

    Access tokens in ``valid_tokens`` are accepted; anything else gets the
    backend's "Unauthenticated" error. ``refresh_tokens`` maps a refresh
    token to the (access, refresh) pair the refreshToken mutation returns.
    """

    def __init__(self) -> None:
        self.valid_tokens = {"fresh-access"}
        self.refresh_tokens: Dict[str, tuple] = {"refresh-1": ("fresh-access", "refresh-2")}
        self.refresh_delay = 0.0
        self.refresh_error: Optional[Exception] = None
        self.handlers: Dict[str, Callable[[Dict[str, Any], Optional[str]], Dict[str, Any]]] = {}
        self.calls: List[Dict[str, Any]] = []

    @property
    def refresh_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["operation"] == "RefreshToken"]

    def calls_for(self, operation: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["operation"] == operation]

    def protected(self, operation: str, data: Dict[str, Any]) -> None:
        """Register an operation that requires a valid access token."""

        def handler(body, token):
            if token not in self.valid_tokens:
                return UNAUTHENTICATED
            return {"data": data}

        self.handlers[operation] = handler

    def public(self, operation: str, response: Dict[str, Any]) -> None:
        self.handlers[operation] = lambda body, token: response

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        auth = request.headers.get("Authorization")
        token = auth[len("Bearer "):] if auth and auth.startswith("Bearer ") else None
        operation = body.get("operationName")
        self.calls.append(
            {
                "operation": operation,
                "authorization": auth,
                "token": token,
                "variables": body.get("variables"),
            }
        )
        if operation == "RefreshToken":
            return await self._refresh(body)
        handler = self.handlers.get(operation)
        if handler is None:
            return httpx.Response(
                400, json={"errors": [{"message": f"Unknown operation {operation}"}]}
            )
        return httpx.Response(200, json=handler(body, token))

    async def _refresh(self, body: Dict[str, Any]) -> httpx.Response:
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        if self.refresh_error is not None:
            raise self.refresh_error
        pair = self.refresh_tokens.get(body["variables"]["refreshToken"])
        if pair is None:
            return httpx.Response(
                200, json={"data": None, "errors": [{"message": "Invalid refresh token"}]}
            )
        access, refresh = pair
        return httpx.Response(
            200,
            json={
                "data": {
                    "refreshToken": {"token": access, "refreshToken": refresh, "user": USER}
                }
            },
        )


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def identity():
    return Identity(id="u-1", email="ada@example.com", first_name="Ada", last_name="Lovelace")


@pytest.fixture
def backend():
    return FakeGraphQLBackend()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def expired_store(store, identity):
    """Store holding a session whose access token the backend rejects."""
    store.set_session("stale-access", "refresh-1", identity)
    return store


@pytest.fixture
def transport(backend):
    return GraphQLTransport(API_URL, transport=httpx.MockTransport(backend))


@pytest.fixture
def client(transport, store):
    return RequestClient(transport, store, RefreshOperation(transport))


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")
