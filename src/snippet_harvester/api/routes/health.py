"""Health check route.

``GET /api/health`` verifies that the process can reach the database
(``SELECT 1``) and Redis (``PING``).  It always returns HTTP 200; the
``status`` field distinguishes ``"ok"`` from ``"degraded"``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import redis.asyncio as aioredis
import sqlalchemy as sa
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from snippet_harvester import __version__
from snippet_harvester.api.dependencies import AppContextDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


async def _check_database(engine: AsyncEngine) -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))
        return "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        return "error"


async def _check_redis(redis_url: str) -> str:
    try:
        client: aioredis.Redis = aioredis.from_url(
            redis_url,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        finally:
            await client.aclose()
        return "ok"
    except Exception:
        logger.exception("Health check: Redis unreachable")
        return "error"


@router.get("/api/health")
async def system_health(context: AppContextDep) -> JSONResponse:
    """Return database and Redis connectivity plus the scheduler state."""
    db_status, redis_status = await asyncio.gather(
        _check_database(context.engine),
        _check_redis(context.settings.redis_url),
    )
    payload = {
        "status": "ok" if db_status == "ok" and redis_status == "ok" else "degraded",
        "version": __version__,
        "database": db_status,
        "redis": redis_status,
        "scheduler": context.scheduler.state.value,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    logger.info("system_health_check", extra={"health": payload})
    return JSONResponse(payload)
