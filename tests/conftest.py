"""Shared test fixtures for the AICAP test suite.

Provides an async test database (in-memory SQLite), a session factory,
a Fernet secret box, and a DNS stub for the SSRF resolver.
"""

import socket
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from aicap.db.models import Base
from aicap.webhooks.secrets import SecretBox

PUBLIC_IP = "93.184.216.34"
TEST_ENCRYPTION_KEY = SecretBox.generate_key()


def _addr_info(*addresses: str) -> list[tuple]:
    """Build getaddrinfo-shaped records for the given addresses."""
    records: list[tuple] = []
    for address in addresses:
        if ":" in address:
            records.append((socket.AF_INET6, socket.SOCK_STREAM, 6, "", (address, 0, 0, 0)))
        else:
            records.append((socket.AF_INET, socket.SOCK_STREAM, 6, "", (address, 0)))
    return records


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
def encryption_key() -> str:
    return TEST_ENCRYPTION_KEY


@pytest.fixture
def secret_box(encryption_key: str) -> SecretBox:
    return SecretBox(encryption_key)


@pytest.fixture
def addr_info():
    """getaddrinfo record builder: addr_info("1.2.3.4", "::1")."""
    return _addr_info


@pytest.fixture
def fake_dns():
    """Patch the resolver's lookup. Set .return_value or .side_effect per test.

    Defaults to a single public IPv4 answer.
    """
    mock = AsyncMock(return_value=_addr_info(PUBLIC_IP))
    with patch("aicap.security.resolver._getaddrinfo", mock):
        yield mock
