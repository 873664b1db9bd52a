import logging
import os
import random
from typing import Any, List, Optional

import redis

from app.core.config import settings
from .json import dumps, loads

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

BANKS_KEY = "paystack:banks:za"
SEARCH_FILTERS_KEY = "events:search:filters"


class _NullRedis:
    """No-op Redis client used when Redis is disabled.

    Methods mirror the minimal surface used in this codebase so callers can
    proceed without needing try/except around get_redis_client().
    """

    def get(self, key: str):
        return None

    def setex(self, key: str, expire: int, value: str):
        return None

    def delete(self, key: str):
        return 0

    def incr(self, key: str):
        return 0

    def expire(self, key: str, seconds: int):
        return None

    def close(self):
        return None


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        url = (settings.REDIS_URL or "").strip()
        # Allow disabling via empty/none/disabled/false
        if not url or url.lower() in {"none", "disabled", "false", "0"}:
            _redis_client = _NullRedis()  # type: ignore[assignment]
            return _redis_client
        # Conservative socket timeouts so a slow Redis cannot stall requests
        _redis_client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=float(os.getenv("REDIS_CONNECT_TIMEOUT", "0.5")),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "0.5")),
        )
    return _redis_client


def _apply_jitter(expire: int) -> int:
    """Return a TTL with a small random jitter to prevent cache stampedes."""
    return expire + random.randint(0, max(1, expire // 10))


def _get_json(key: str) -> Any:
    client = get_redis_client()
    try:
        raw = client.get(key)
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not read cache key %s: %s", key, exc)
        return None
    if raw is None:
        return None
    try:
        return loads(raw)
    except ValueError:
        logger.warning("Discarding malformed cache entry %s", key)
        return None


def _set_json(key: str, value: Any, expire: int) -> None:
    client = get_redis_client()
    try:
        client.setex(key, _apply_jitter(expire), dumps(value))
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not write cache key %s: %s", key, exc)


def get_cached_banks() -> Optional[List[dict]]:
    return _get_json(BANKS_KEY)


def cache_banks(banks: List[dict], expire: Optional[int] = None) -> None:
    _set_json(BANKS_KEY, banks, expire or settings.BANKS_CACHE_TTL)


def get_cached_search_filters() -> Optional[dict]:
    return _get_json(SEARCH_FILTERS_KEY)


def cache_search_filters(filters: dict, expire: int = 300) -> None:
    _set_json(SEARCH_FILTERS_KEY, filters, expire)


def invalidate_search_filters() -> None:
    try:
        get_redis_client().delete(SEARCH_FILTERS_KEY)
    except redis.exceptions.RedisError as exc:
        logger.warning("Could not clear search filter cache: %s", exc)


def close_redis_client() -> None:
    """Close the global Redis client if it exists."""
    global _redis_client
    if _redis_client is not None:
        try:
            _redis_client.close()
        except redis.exceptions.RedisError as exc:  # pragma: no cover - best effort
            logger.warning("Error closing Redis client: %s", exc)
        finally:
            _redis_client = None
