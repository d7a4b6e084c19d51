"""Shared test fixtures."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from ngoportal.billing.webhooks import sign_payload
from ngoportal.config.settings import Settings
from ngoportal.models.database import UserAccount
from ngoportal.storage.database import create_engine, init_db
from ngoportal.web.app import create_app
from ngoportal.web.dependencies import build_services

TEST_JWT_SECRET = "test-jwt-secret-with-at-least-32-bytes"
TEST_WEBHOOK_SECRET = "whsec_test_secret"


class FakeProvider:
    """httpx MockTransport handler that records requests and answers from a route table."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], tuple[int, Any]] = {}

    def add(self, method: str, path: str, body: Any, status: int = 200) -> None:
        self._routes[(method, path)] = (status, body)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(path)]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for (method, path), (status, body) in self._routes.items():
            if request.method == method and request.url.path.endswith(path):
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={"error": {"message": f"no route for {request.url.path}"}})


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret-key",
        app_base_url="https://portal.example.org",
        auth_jwt_secret=TEST_JWT_SECRET,
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=TEST_WEBHOOK_SECRET,
        stripe_price_id="price_monthly",
        google_client_id="google-client",
        google_client_secret="google-secret",
        membership_batch_size=2,
    )


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
async def async_engine(settings):
    """In-memory SQLite engine with all tables created."""
    engine = create_engine(settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def services(settings, async_engine, provider):
    http = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    yield build_services(settings, engine=async_engine, http=http)
    await http.aclose()


@pytest.fixture()
def app(settings, services):
    """Create a fresh app instance for tests."""
    return create_app(settings, services)


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture()
def make_token() -> Callable[..., str]:
    """HS256 ID token for ``sub`` with optional extra claims."""

    def _make(sub: str, **claims: Any) -> str:
        payload = {
            "sub": sub,
            "email": f"{sub}@example.org",
            "name": sub.title(),
            "exp": int(time.time()) + 3600,
            **claims,
        }
        return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")

    return _make


@pytest.fixture()
def bearer(make_token) -> Callable[..., dict[str, str]]:
    def _bearer(sub: str, **claims: Any) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(sub, **claims)}"}

    return _bearer


@pytest.fixture()
def save_account(async_engine) -> Callable[..., Any]:
    """Insert or replace a user account row directly."""

    async def _save(uid: str, **fields: Any) -> UserAccount:
        fields.setdefault("email", f"{uid}@example.org")
        async with AsyncSession(async_engine) as session:
            account = await session.merge(UserAccount(uid=uid, **fields))
            await session.commit()
            await session.refresh(account)
            return account

    return _save


@pytest.fixture()
async def admin_headers(save_account, bearer) -> dict[str, str]:
    await save_account("admin-1", role="beam_admin", beam_admin=True)
    return bearer("admin-1")


@pytest.fixture()
def signed_event() -> Callable[..., tuple[bytes, str]]:
    """Serialize a webhook event and sign it with the test webhook secret."""

    def _sign(event: dict[str, Any], secret: str = TEST_WEBHOOK_SECRET) -> tuple[bytes, str]:
        body = json.dumps(event).encode()
        timestamp = int(time.time())
        return body, f"t={timestamp},v1={sign_payload(body, secret, timestamp)}"

    return _sign
