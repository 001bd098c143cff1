"""Shared fixtures for API route tests.

Provides:
- A configured FastAPI test app with in-memory SQLite
- An httpx AsyncClient pointed at the test app
- An outbound mock transport that records webhook deliveries
- Pre-configured auth headers
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from aicap.api.app import attach_services, create_app
from aicap.config import Settings
from aicap.webhooks.dispatcher import WebhookDispatcher

TEST_SERVICE_KEY = "test-service-key-12345-abcdefghijklmnop"
TEST_OWNER = "user-1"
OTHER_OWNER = "user-2"


class OutboundRecorder:
    """Stands in for the remote webhook receivers."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.exc: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, text="received")


@pytest.fixture
def test_settings(encryption_key: str) -> Settings:
    """Create test Settings with in-memory SQLite and a test service key."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        aicap_service_api_key=TEST_SERVICE_KEY,
        webhook_secret_encryption_key=encryption_key,
        key_hash_rounds=4,
        log_level="WARNING",
        log_format="console",
        cors_allowed_origins="http://localhost:3000",
        rate_limit_enabled=False,
    )


@pytest.fixture
def outbound() -> OutboundRecorder:
    return OutboundRecorder()


@pytest.fixture
async def test_app(
    test_settings: Settings, session_factory, outbound: OutboundRecorder
) -> AsyncGenerator[object, None]:
    """Create a test FastAPI app with all dependencies initialized."""
    app = create_app(settings=test_settings)

    # Manually run lifespan startup
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(outbound))
    attach_services(app, session_factory, WebhookDispatcher(http_client=http_client))

    yield app

    await http_client.aclose()


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient for the test app."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def service_headers() -> dict[str, str]:
    """Service key acting for TEST_OWNER."""
    return {"Authorization": f"Bearer {TEST_SERVICE_KEY}", "X-Owner-ID": TEST_OWNER}


@pytest.fixture
def other_owner_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_SERVICE_KEY}", "X-Owner-ID": OTHER_OWNER}


@pytest.fixture
async def issued_key(client: AsyncClient, service_headers: dict) -> str:
    """A plaintext API key issued to TEST_OWNER through the API."""
    response = await client.post("/api/keys", json={"keyName": "fixture"}, headers=service_headers)
    assert response.status_code == 201
    return response.json()["plainTextKey"]


@pytest.fixture
def key_headers(issued_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {issued_key}"}
