"""Health check endpoint."""

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.db.session import engine

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "0.1.0"


async def _check_db() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Database health check failed: %s", exc)
        return "error"
    return "ok"


async def _check_redis() -> str:
    try:
        r = aioredis.from_url(settings.REDIS_URL)
        try:
            await r.ping()
        finally:
            await r.aclose()
    except (RedisError, OSError) as exc:
        logger.warning("Redis health check failed: %s", exc)
        return "error"
    return "ok"


@router.get("/health")
async def health_check():
    """Check DB and Redis connectivity."""
    db_status = await _check_db()
    redis_status = await _check_redis()

    status = "ok" if db_status == "ok" and redis_status == "ok" else "degraded"
    return {
        "status": status,
        "db": db_status,
        "redis": redis_status,
        "version": API_VERSION,
    }
