import json

import httpx
import pytest

from deptclient.config import Settings
from deptclient.service import runtime as runtime_module
from deptclient.service.runtime import Runtime, get_runtime, reset_runtime_for_tests


def test_get_runtime_is_singleton():
    assert get_runtime() is get_runtime()


def test_reset_replaces_runtime():
    before = get_runtime()

    after = reset_runtime_for_tests()

    assert after is not before
    assert get_runtime() is after


def test_runtime_wires_shared_collaborators():
    runtime = get_runtime()

    assert runtime.client.store is runtime.store
    assert runtime.client.transport is runtime.transport
    assert runtime.auth.client is runtime.client
    assert runtime.entities.client is runtime.client
    assert runtime.transport.endpoint == "http://testserver/graphql"


def test_reset_refused_outside_test_mode(monkeypatch):
    monkeypatch.setenv("TEST_MODE", "false")

    with pytest.raises(RuntimeError, match="TEST_MODE"):
        reset_runtime_for_tests()

    monkeypatch.setenv("TEST_MODE", "true")


def test_runtime_restores_persisted_session(tmp_path):
    path = tmp_path / "session.json"
    path.write_text(
        json.dumps(
            {
                "access_token": "persisted-access",
                "refresh_token": "persisted-refresh",
                "identity": {"id": "u-1", "email": "ada@example.com"},
            }
        )
    )

    runtime = Runtime(Settings(session_file=str(path), test_mode=True))

    assert runtime.store.access_token == "persisted-access"
    assert runtime.store.identity.email == "ada@example.com"


async def test_runtime_uses_injected_transport(backend):
    backend.public("Health", {"data": {"health": True}})
    runtime = Runtime(
        Settings(api_url="http://testserver/graphql", test_mode=True),
        http_transport=httpx.MockTransport(backend),
    )
    try:
        assert await runtime.entities.health() is True
    finally:
        await runtime.aclose()

    assert runtime_module.runtime is not runtime


def test_reset_closes_previous_http_client():
    before = get_runtime()
    http_client = before.transport._get_client()
    assert before.transport.is_open is True

    reset_runtime_for_tests()

    assert http_client.is_closed is True
    assert before.transport.is_open is False


def test_reset_without_open_client_skips_close():
    before = get_runtime()
    assert before.transport.is_open is False

    after = reset_runtime_for_tests()

    assert after.transport.is_open is False
