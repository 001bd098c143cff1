"""Health check endpoints.

- GET /health/live: liveness probe (no auth, no DB)
- GET /health/ready: readiness probe (checks DB connectivity)
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aicap.api.dependencies import get_session_factory

logger = structlog.get_logger()

router = APIRouter()


class LivenessResponse(BaseModel):
    status: str


class ReadinessResponse(BaseModel):
    """Readiness probe response. No hostnames or URLs."""

    status: str
    db_ready: bool


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_probe() -> LivenessResponse:
    return LivenessResponse(status="alive")


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_probe(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ReadinessResponse:
    """Can the service handle requests? Runs SELECT 1 against the database."""
    db_ready = True
    try:
        async with session_factory() as session:
            await session.execute(select(1))
    except (SQLAlchemyError, OSError) as exc:
        await logger.awarning("readiness_db_unavailable", error=type(exc).__name__)
        db_ready = False

    return ReadinessResponse(
        status="ready" if db_ready else "not_ready",
        db_ready=db_ready,
    )
