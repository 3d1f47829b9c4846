"""Redis cache layer for small pieces of shared state.

Currently holds the signal filter's cooldown/quota snapshot so a restart
does not reopen quotas already used today. Every operation degrades to a
no-op when Redis is unreachable.

Uses orjson for serialization.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from tradewise.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: ConnectionPool | None = None
_client: redis.Redis | None = None

KEY_PREFIX = "tradewise:"
KEY_FILTER_STATE = f"{KEY_PREFIX}filter_state"


async def init_cache() -> None:
    """Initialize Redis connection pool."""
    global _pool, _client

    if _client is not None:
        return

    settings = get_settings()
    _pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=10,
        decode_responses=False,  # We handle encoding ourselves with orjson
    )
    _client = redis.Redis(connection_pool=_pool)

    try:
        await _client.ping()
        logger.info(f"Redis connected: {settings.redis_url}")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Cache will be disabled.")
        _client = None
        _pool = None


async def close_cache() -> None:
    """Close Redis connection pool."""
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None

    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def is_cache_available() -> bool:
    return _client is not None


async def get_json(key: str) -> Any | None:
    """Get a JSON value, None if missing, undecodable or the cache is down."""
    if _client is None:
        return None

    try:
        data = await _client.get(key)
    except redis.RedisError as e:
        logger.warning(f"Redis GET error: {e}")
        return None
    if data is None:
        return None

    try:
        return orjson.loads(data)
    except orjson.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in cache key {key}: {e}")
        return None


async def set_json(key: str, value: Any, ttl: int | None = None) -> bool:
    """Store a JSON value; returns False when the cache is down."""
    if _client is None:
        return False

    try:
        payload = orjson.dumps(value)
        if ttl:
            await _client.setex(key, ttl, payload)
        else:
            await _client.set(key, payload)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis SET error: {e}")
        return False


async def delete(key: str) -> bool:
    if _client is None:
        return False

    try:
        await _client.delete(key)
        return True
    except redis.RedisError as e:
        logger.warning(f"Redis DELETE error: {e}")
        return False
