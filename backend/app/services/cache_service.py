"""
Redis caching service for occupancy snapshots and track listings.

CACHING STRATEGY
================

What we cache:
  - Occupancy snapshots for display: "occupancy:{unit_id}"
  - Track listings with capacity:   "tracks:{event_id}"

Why:
  - The track picker polls occupancy for every track of an event
  - Display may be slightly stale; admission decisions never read the cache

Invalidation strategy:
  - Every reserve/release deletes the unit's occupancy key and the
    event's track listing
  - Short TTL as safety net (REDIS_CACHE_TTL)

Redis is optional. When disabled or unreachable every call is a miss and
callers fall back to the database.
"""

import json
from typing import Optional

import redis.asyncio as redis
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _occupancy_key(unit_id: str) -> str:
    return f"occupancy:{unit_id}"


def _tracks_key(event_id: str) -> str:
    return f"tracks:{event_id}"


async def _get_json(key: str, operation: str) -> Optional[dict | list]:
    client = await get_redis()
    if not client:
        return None

    try:
        data = await client.get(key)
        record_cache_operation(operation, hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def _set_json(key: str, data: dict | list) -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def get_cached_occupancy(unit_id: str) -> Optional[dict]:
    return await _get_json(_occupancy_key(unit_id), "occupancy")


async def set_cached_occupancy(unit_id: str, data: dict) -> None:
    await _set_json(_occupancy_key(unit_id), data)


async def get_cached_tracks(event_id: str) -> Optional[list]:
    return await _get_json(_tracks_key(event_id), "tracks")


async def set_cached_tracks(event_id: str, data: list) -> None:
    await _set_json(_tracks_key(event_id), data)


async def invalidate_capacity_cache(event_id: str, *unit_ids: str) -> None:
    """Drop cached occupancy for the given units and the event's track listing."""
    client = await get_redis()
    if not client:
        return

    keys = [_tracks_key(event_id), _occupancy_key(event_id), *(_occupancy_key(u) for u in unit_ids)]
    try:
        deleted = await client.delete(*keys)
        logger.debug("cache_invalidated", event_id=event_id, keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", event_id=event_id, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
