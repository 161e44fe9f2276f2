"""
tests/conftest.py -- Shared fixtures for JobHub tests.

This module provides:
  - FakeBackend: scripted stand-in for the REST backend, served through
    httpx.MockTransport so BackendClient runs its real request/envelope code
  - storage / store / backend fixtures over an in-memory local storage DB
  - edge_client: TestClient on the assembled edge app with follow_redirects=False

Environment must be set before any core/auth import so get_settings() sees
it: DEBUG auto-generates SECRET_KEY, ALLOWED_HOSTS admits TestClient's
"testserver" host, STORAGE_DB_URL keeps everything in memory and
LOGIN_RATE_LIMIT is raised so sign-in tests never trip the limiter.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost", "127.0.0.1"]')
os.environ.setdefault("STORAGE_DB_URL", "sqlite://")
os.environ.setdefault("LOGIN_RATE_LIMIT", "100/minute")

import httpx
import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.storage import LocalStorage
from auth.store import CredentialStore
from core.backend import BackendClient

ADMIN_ACCOUNT = {"accountId": "1", "email": "admin@jobhub.io", "roles": [{"roleName": "ADMIN"}]}
SEEKER_ACCOUNT = {"accountId": "2", "email": "seeker@jobhub.io", "roles": [{"roleName": "JOB_SEEKER"}]}
REFRESH_COOKIE = "jobhub_refresh_token=rt-1; Path=/; HttpOnly; SameSite=Lax"


# ---------------------------------------------------------------------------
# Fake backend
# ---------------------------------------------------------------------------


class FakeBackend:
    """Scripted backend keyed by endpoint path (without the /api prefix).

    Each path holds a queue of replies; the last reply repeats. Unscripted
    paths answer 404. hold(path) returns an asyncio.Event the request waits on,
    for tests that need a call to stay in flight.
    """

    def __init__(self) -> None:
        self.replies: dict[str, list[tuple[int, Any, dict[str, str]]]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.requests: list[httpx.Request] = []

    def reply(
        self,
        path: str,
        data: Any = None,
        *,
        code: int = 200,
        status: str = "OK",
        message: str = "Success",
        headers: Optional[dict[str, str]] = None,
    ) -> "FakeBackend":
        body = {"code": code, "status": status, "message": message, "data": data}
        self.replies.setdefault(path, []).append((code, body, headers or {}))
        return self

    def fail(self, path: str, code: int, status: str, message: str = "Request failed") -> "FakeBackend":
        return self.reply(path, None, code=code, status=status, message=message)

    def login_ok(self, path: str = "/auth/login", account: Optional[dict] = None, token: str = "at-1") -> "FakeBackend":
        return self.reply(
            path,
            {"account": account or ADMIN_ACCOUNT, "accessToken": token},
            headers={"set-cookie": REFRESH_COOKIE},
        )

    def hold(self, path: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[path] = gate
        return gate

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if _endpoint(r) == path]

    def body(self, path: str, index: int = -1) -> Any:
        return json.loads(self.calls(path)[index].content)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = _endpoint(request)
        gate = self.gates.get(path)
        if gate is not None:
            await gate.wait()
        queue = self.replies.get(path)
        if not queue:
            return httpx.Response(404, json={"code": 404, "status": "NOT_FOUND", "message": "Not found", "data": None})
        code, body, headers = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(code, json=body, headers=headers)

    def client(self) -> BackendClient:
        return BackendClient(transport=httpx.MockTransport(self.handler))


def _endpoint(request: httpx.Request) -> str:
    return request.url.path.removeprefix("/api")


# ---------------------------------------------------------------------------
# Client-side fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def backend(fake_backend: FakeBackend) -> BackendClient:
    return fake_backend.client()


@pytest.fixture
def storage() -> Generator[LocalStorage, None, None]:
    """One in-memory origin; call storage.tab() for a second tab."""
    s = LocalStorage("sqlite://")
    yield s
    s.close()


@pytest.fixture
def store(storage: LocalStorage) -> CredentialStore:
    return CredentialStore(storage)


# ---------------------------------------------------------------------------
# Edge app
# ---------------------------------------------------------------------------


def _patch_lifespan(fake: FakeBackend, oauth: MagicMock):
    """Replace the real lifespan: fake backend and a mocked OAuth registry."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.backend = fake.client()
        app.state.oauth = oauth
        yield
        await app.state.backend.aclose()

    return test_lifespan


def _mock_oauth() -> tuple[MagicMock, MagicMock]:
    google = MagicMock()
    google.authorize_redirect = AsyncMock()
    google.authorize_access_token = AsyncMock(return_value={"access_token": "g-at", "id_token": "google-id-token"})
    oauth = MagicMock()
    oauth.create_client.return_value = google
    return oauth, google


@pytest.fixture
def edge_client() -> Generator[tuple[TestClient, FakeBackend, MagicMock], None, None]:
    """Yield (client, fake_backend, google_client) for edge server tests.

    follow_redirects=False is essential: guard tests assert on Location
    headers, which are invisible once the client follows the redirect.
    """
    fake = FakeBackend()
    oauth, google = _mock_oauth()
    app.router.lifespan_context = _patch_lifespan(fake, oauth)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, fake, google
