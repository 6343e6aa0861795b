"""Health check endpoints."""

import asyncio
from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResultCache, cache_set, get_result_cache
from app.core.database import get_db
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

DATABASE_PROBE_TIMEOUT_SECONDS = 2.0


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: Literal["ok", "degraded", "unhealthy"]
    database: Literal["connected", "disconnected"] | None = None
    cache: Literal["available", "unavailable"] | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Liveness: the process is up and serving."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    cache: ResultCache = Depends(get_result_cache),
) -> HealthResponse:
    """Readiness: database reachable, cache probed.

    A failing cache only degrades the service; analytics fall back to direct
    computation. A failing database makes it unhealthy.

    Args:
        db: Database session dependency.
        cache: Application result cache.

    Returns:
        Overall status with per-dependency state.
    """
    cache_state: Literal["available", "unavailable"] = (
        "available" if await cache_set(cache, "health:probe", 1, ttl=5) else "unavailable"
    )

    try:
        async with asyncio.timeout(DATABASE_PROBE_TIMEOUT_SECONDS):
            await db.execute(text("SELECT 1"))
    except (TimeoutError, SQLAlchemyError, OSError) as e:
        logger.error(
            "health.database_disconnected",
            error=str(e),
            error_type=type(e).__name__,
        )
        return HealthResponse(status="unhealthy", database="disconnected", cache=cache_state)

    status: Literal["ok", "degraded"] = "ok" if cache_state == "available" else "degraded"
    return HealthResponse(status=status, database="connected", cache=cache_state)
