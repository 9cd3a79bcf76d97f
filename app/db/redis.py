"""Redis connection management.

Mirrors engine.py: with REDIS_URL set a shared connection pool is
created at import; without it ``redis_pool`` is None and the payment
event queue falls back to an in-process list.  In that mode the API and
the worker must share one process (tests, local dev).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from app.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Ping on startup, close the pool on shutdown.

    An unreachable Redis is logged but does not stop startup: webhook
    intake then fails per request with a 503 instead of taking the
    whole API down.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured, payment events use an in-memory queue")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
