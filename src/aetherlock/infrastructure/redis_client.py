"""Redis client for idempotency keys on escrow creation.

The client is created by the application container and passed in explicitly.

Usage:
    redis = await init_redis(settings.redis_url)
    existing = await check_idempotency(redis, key)
    await set_idempotency(redis, key, escrow_id, ttl_seconds=86400)
"""

from __future__ import annotations

import redis.asyncio as aioredis

from aetherlock.logging_config import get_logger

logger = get_logger(__name__)

_KEY_PREFIX = "idempotency:"


async def init_redis(url: str) -> aioredis.Redis:
    """Create the Redis client and verify connectivity."""
    client = aioredis.from_url(url, decode_responses=True)
    await client.ping()
    logger.info("redis.connected", url=url)
    return client


async def close_redis(client: aioredis.Redis | None) -> None:
    """Close the Redis connection."""
    if client is not None:
        await client.aclose()
        logger.info("redis.disconnected")


# --- Idempotency Helpers ---


async def check_idempotency(client: aioredis.Redis, key: str) -> str | None:
    """Return the escrow id recorded for `key`, or None if the key is new."""
    return await client.get(f"{_KEY_PREFIX}{key}")


async def set_idempotency(
    client: aioredis.Redis,
    key: str,
    value: str,
    ttl_seconds: int,
) -> None:
    """Record the escrow id produced for an idempotency key, with a TTL."""
    await client.set(f"{_KEY_PREFIX}{key}", value, ex=ttl_seconds)
