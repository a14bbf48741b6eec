"""Redis-backed cache for computed pending updates (fail-open)."""

from __future__ import annotations

import json
import logging
from typing import Any

import redis
from redis.exceptions import RedisError

from ..config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "pending_updates:"


class PendingUpdatesCache:
    """Stores serialized pending-updates payloads with a TTL.

    Every Redis failure is logged and treated as a miss; callers always fall
    back to computing from the store.
    """

    def __init__(self, client, *, ttl_seconds: int):
        self._client = client
        self._ttl = ttl_seconds

    @staticmethod
    def key(scope: str, identifier: str, *filters: object) -> str:
        suffix = ":".join("" if value is None else str(value) for value in filters)
        return f"{KEY_PREFIX}{scope}:{identifier}" + (f":{suffix}" if suffix else "")

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(key)
        except RedisError:
            logger.exception("Redis error reading pending-updates cache key=%s (fail-open)", key)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, payload: Any) -> None:
        try:
            self._client.setex(key, self._ttl, json.dumps(payload))
        except RedisError:
            logger.exception("Redis error writing pending-updates cache key=%s (fail-open)", key)

    def ping(self) -> bool:
        return bool(self._client.ping())

    def invalidate_all(self) -> None:
        try:
            keys = list(self._client.scan_iter(match=f"{KEY_PREFIX}*"))
            if keys:
                self._client.delete(*keys)
        except RedisError:
            logger.exception("Redis error invalidating pending-updates cache (fail-open)")
            return
        logger.info("pending_updates.cache_invalidated keys=%s", len(keys))


def build_pending_cache() -> PendingUpdatesCache | None:
    if not settings.PENDING_UPDATES_CACHE_ENABLED:
        return None
    client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return PendingUpdatesCache(client, ttl_seconds=settings.PENDING_UPDATES_CACHE_TTL_SECONDS)
