"""End-to-end tests against an in-process ASGI GraphQL backend.

The backend issues short-lived access tokens and rotating refresh tokens,
and can expire every issued access token on demand to simulate the
server-side expiry the client must recover from.
"""

import asyncio
import itertools

import httpx
import pytest
from fastapi import FastAPI, Request

from deptclient.config import Settings
from deptclient.service.errors import SessionExpired
from deptclient.service.runtime import Runtime

USER = {"id": "u-1", "email": "ada@example.com", "firstName": "Ada", "lastName": "Lovelace"}
PASSWORD = "Secret123!"


class AuthBackendState:
    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.access_tokens = set()
        self.refresh_tokens = set()
        self.refresh_count = 0

    def issue(self) -> dict:
        n = next(self._ids)
        access, refresh = f"access-{n}", f"refresh-{n}"
        self.access_tokens.add(access)
        self.refresh_tokens.add(refresh)
        return {"token": access, "refreshToken": refresh, "user": USER}

    def expire_access_tokens(self) -> None:
        self.access_tokens.clear()


def create_app(state: AuthBackendState) -> FastAPI:
    app = FastAPI()

    def error(message: str) -> dict:
        return {"data": None, "errors": [{"message": message}]}

    @app.post("/graphql")
    async def graphql(request: Request):
        body = await request.json()
        operation = body.get("operationName")
        variables = body.get("variables") or {}
        auth = request.headers.get("authorization", "")
        token = auth[len("Bearer "):] if auth.startswith("Bearer ") else None

        if operation == "Login":
            if variables.get("password") != PASSWORD:
                return error("Invalid credentials")
            return {"data": {"login": state.issue()}}
        if operation == "RefreshToken":
            state.refresh_count += 1
            await asyncio.sleep(0.02)
            old = variables.get("refreshToken")
            if old not in state.refresh_tokens:
                return error("Invalid refresh token")
            state.refresh_tokens.discard(old)
            return {"data": {"refreshToken": state.issue()}}
        if operation == "Logout":
            state.refresh_tokens.discard(variables.get("refreshToken"))
            return {"data": {"logout": True}}
        if token not in state.access_tokens:
            return error("Unauthenticated")
        if operation == "Me":
            return {"data": {"me": USER}}
        if operation == "Organizations":
            return {"data": {"organizations": [{"id": "o-1", "name": "Acme"}]}}
        return error(f"Unknown operation {operation}")

    return app


@pytest.fixture
def state():
    return AuthBackendState()


@pytest.fixture
def runtime(state):
    transport = httpx.ASGITransport(app=create_app(state))
    return Runtime(
        Settings(api_url="http://testserver/graphql", test_mode=True),
        http_transport=transport,
    )


async def test_login_then_query(runtime, state):
    try:
        identity = await runtime.auth.login("ada@example.com", PASSWORD)
        orgs = await runtime.entities.list("organization")
    finally:
        await runtime.aclose()

    assert identity.display_name == "Ada Lovelace"
    assert orgs == [{"id": "o-1", "name": "Acme"}]
    assert state.refresh_count == 0


async def test_expired_access_token_recovered_transparently(runtime, state):
    try:
        await runtime.auth.login("ada@example.com", PASSWORD)
        state.expire_access_tokens()

        results = await asyncio.gather(
            runtime.auth.me(),
            runtime.entities.list("organization"),
            runtime.entities.list("organization"),
        )
    finally:
        await runtime.aclose()

    assert results[0].id == "u-1"
    assert results[1] == results[2] == [{"id": "o-1", "name": "Acme"}]
    assert state.refresh_count == 1
    assert runtime.store.access_token == "access-2"
    assert runtime.store.refresh_token == "refresh-2"


async def test_revoked_refresh_token_ends_session(runtime, state):
    try:
        await runtime.auth.login("ada@example.com", PASSWORD)
        state.expire_access_tokens()
        state.refresh_tokens.clear()

        with pytest.raises(SessionExpired):
            await runtime.entities.list("organization")
    finally:
        await runtime.aclose()

    assert runtime.store.is_active() is False


async def test_logout_revokes_refresh_token(runtime, state):
    try:
        await runtime.auth.login("ada@example.com", PASSWORD)
        await runtime.auth.logout()
    finally:
        await runtime.aclose()

    assert state.refresh_tokens == set()
    assert runtime.store.is_active() is False
