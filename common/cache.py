# common/cache.py
import json
import logging
import os
from datetime import date
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)

SLOT_CACHE_TTL_SECONDS = int(os.getenv("SLOT_CACHE_TTL_SECONDS", "60"))

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Return a Redis client if REDIS_URL is configured, otherwise None.
    Fails gracefully (no caching) if Redis is not reachable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable at %s, caching disabled: %s", redis_url, exc)
        _redis_client = None
        return None

    _redis_client = client
    return _redis_client


def get_cached_json(key: str) -> Optional[Any]:
    client = get_redis_client()
    if client is None:
        return None

    try:
        raw = client.get(key)
    except redis.RedisError as exc:
        logger.warning("Cache read failed for %s: %s", key, exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


def set_cached_json(key: str, value: Any, ttl_seconds: int = SLOT_CACHE_TTL_SECONDS) -> None:
    client = get_redis_client()
    if client is None:
        return

    try:
        client.setex(key, ttl_seconds, json.dumps(value, default=str))
    except redis.RedisError as exc:
        logger.warning("Cache write failed for %s: %s", key, exc)


def delete_prefix(prefix: str) -> None:
    """
    Delete all keys starting with prefix.
    Example: prefix='fields:slots:42:'.
    """
    client = get_redis_client()
    if client is None:
        return

    try:
        for k in client.scan_iter(prefix + "*"):
            client.delete(k)
    except redis.RedisError as exc:
        logger.warning("Cache invalidation failed for %s*: %s", prefix, exc)


def slots_cache_key(field_id: int, day: date) -> str:
    return f"fields:slots:{field_id}:{day.isoformat()}"


def invalidate_field_slots(field_id: int) -> None:
    delete_prefix(f"fields:slots:{field_id}:")
