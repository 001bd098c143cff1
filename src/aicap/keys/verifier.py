"""API key verification: presented plaintext → owner id.

There is no lookup index: every active hash is a candidate. The active set
is read once per call into a list (a snapshot, not a live cursor) and
compared with bcrypt in bounded concurrent batches; the first match wins.

Scaling bound: cost is O(active keys) bcrypt comparisons per request,
acceptable up to a few thousand active keys per deployment. Past that,
add a lookup index keyed by a fast hash of the key prefix and compare only
the rows it selects. A warning is logged when the snapshot exceeds
``scan_warn_threshold``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicap.db.models import ApiKey
from aicap.keys.hashing import check_secret_async
from aicap.keys.issuer import KEY_PREFIX

logger = structlog.get_logger()

DEFAULT_CONCURRENCY = 4
DEFAULT_SCAN_WARN_THRESHOLD = 2000


@dataclass(frozen=True)
class KeyCandidate:
    """Snapshot row used for comparison."""

    id: str
    owner_id: str
    key_hash: str


class KeyVerifier:
    """Resolves the owner of a presented API key.

    Args:
        session_factory: Async session maker for the api_key table.
        concurrency: Number of bcrypt comparisons run at once.
        scan_warn_threshold: Active-key count above which a warning is logged.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        concurrency: int = DEFAULT_CONCURRENCY,
        scan_warn_threshold: int = DEFAULT_SCAN_WARN_THRESHOLD,
    ) -> None:
        self._session_factory = session_factory
        self._concurrency = max(1, concurrency)
        self._scan_warn_threshold = scan_warn_threshold

    async def resolve_owner(self, presented: str | None) -> str | None:
        """Return the owner of presented, or None if it matches no active key.

        On match, last_used_at is stamped on that one key.
        """
        if not presented or not presented.startswith(KEY_PREFIX):
            return None

        candidates = await self._load_active()
        if len(candidates) > self._scan_warn_threshold:
            await logger.awarning(
                "api_key_scan_bound_exceeded",
                active_keys=len(candidates),
                threshold=self._scan_warn_threshold,
            )

        match = await self._find_match(presented, candidates)
        if match is None:
            return None

        await self._touch(match.id)
        return match.owner_id

    async def _load_active(self) -> list[KeyCandidate]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ApiKey.id, ApiKey.owner_id, ApiKey.key_hash).where(
                    ApiKey.is_active.is_(True)
                )
            )
            return [KeyCandidate(*row) for row in result.all()]

    async def _find_match(
        self, presented: str, candidates: list[KeyCandidate]
    ) -> KeyCandidate | None:
        for start in range(0, len(candidates), self._concurrency):
            batch = candidates[start:start + self._concurrency]
            results = await asyncio.gather(
                *(check_secret_async(presented, c.key_hash) for c in batch)
            )
            for candidate, matched in zip(batch, results):
                if matched:
                    return candidate
        return None

    async def _touch(self, key_id: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(ApiKey)
                    .where(ApiKey.id == key_id)
                    .values(last_used_at=datetime.now(UTC))
                )
