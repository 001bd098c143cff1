"""Owner-scoped API key listing and revoke/reactivate.

A key owned by someone else is indistinguishable from a missing key.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicap.db.models import ApiKey

logger = structlog.get_logger()


@dataclass(frozen=True)
class ApiKeySummary:
    """Non-secret key metadata. Never carries key_hash."""

    id: str
    name: str
    is_active: bool
    created_at: datetime
    last_used_at: datetime | None


class KeyLifecycle:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list(self, owner_id: str) -> list[ApiKeySummary]:
        """All keys of owner_id, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(
                    ApiKey.id,
                    ApiKey.name,
                    ApiKey.is_active,
                    ApiKey.created_at,
                    ApiKey.last_used_at,
                )
                .where(ApiKey.owner_id == owner_id)
                .order_by(ApiKey.created_at.desc())
            )
            return [ApiKeySummary(*row) for row in result.all()]

    async def set_active(self, key_id: str, owner_id: str, active: bool) -> bool:
        """Set is_active on a key the caller owns.

        Returns:
            False if no row with this id belongs to owner_id.
        """
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(ApiKey)
                    .where(ApiKey.id == key_id, ApiKey.owner_id == owner_id)
                    .values(is_active=active)
                )
                changed = result.rowcount > 0

        if changed:
            await logger.ainfo(
                "api_key_state_changed", key_id=key_id, owner_id=owner_id, is_active=active
            )
        return changed
