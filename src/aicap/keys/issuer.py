"""API key issuance: generate, hash, persist; return the plaintext once.

Keys look like ``sk_ai_<43 url-safe chars>``. The static prefix makes them
recognisable in logs and secret scanners without revealing the body.
Only {owner_id, name, key_hash} is persisted. The plaintext is never
stored, logged, or reconstructable after issue() returns.
"""

from __future__ import annotations

import asyncio
import secrets

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicap.db.models import ApiKey
from aicap.errors import InvalidName
from aicap.keys.hashing import DEFAULT_ROUNDS, hash_secret_async

logger = structlog.get_logger()

KEY_PREFIX = "sk_ai_"
_RANDOM_BYTES = 32
MAX_NAME_LENGTH = 255


def generate_plaintext_key() -> str:
    """Build a fresh prefixed key from a CSPRNG."""
    return f"{KEY_PREFIX}{secrets.token_urlsafe(_RANDOM_BYTES)}"


class KeyIssuer:
    """Creates API keys for an owner.

    Args:
        session_factory: Async session maker for the api_key table.
        rounds: bcrypt work factor.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        self._session_factory = session_factory
        self._rounds = rounds

    async def issue(self, owner_id: str, name: str | None) -> str:
        """Issue a new key for owner_id and return its plaintext.

        Raises:
            InvalidName: name is missing or blank after trimming.
        """
        clean_name = name.strip() if isinstance(name, str) else ""
        if not clean_name:
            raise InvalidName()
        if len(clean_name) > MAX_NAME_LENGTH:
            raise InvalidName(f"Key name must be at most {MAX_NAME_LENGTH} characters.")

        plaintext = generate_plaintext_key()
        # Once hashing starts the insert must finish or fail as a whole,
        # even if the caller goes away.
        key_id = await asyncio.shield(self._store(owner_id, clean_name, plaintext))

        await logger.ainfo("api_key_issued", key_id=key_id, owner_id=owner_id)
        return plaintext

    async def _store(self, owner_id: str, name: str, plaintext: str) -> str:
        key_hash = await hash_secret_async(plaintext, self._rounds)
        async with self._session_factory() as session:
            async with session.begin():
                record = ApiKey(owner_id=owner_id, name=name, key_hash=key_hash)
                session.add(record)
                await session.flush()
                return record.id
