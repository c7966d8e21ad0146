import json
import logging
from typing import Any, List, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Cache key holding the serialised set of active business rules
ACTIVE_RULES_KEY = "business_rules:active"


class CacheService:
    """Thin wrapper around an async Redis client.

    If *redis_client* is ``None`` (Redis unavailable), every operation
    degrades to a no-op — callers never need to check for ``None`` and
    always fall back to the database.
    """

    def __init__(self, redis_client: Optional[Redis] = None) -> None:
        self._redis: Optional[Redis] = redis_client

    async def get_json(self, key: str) -> Optional[Any]:
        """Return the JSON-decoded value stored under *key*, or ``None``."""
        if self._redis is None:
            return None
        try:
            raw = await self._redis.get(key)
        except Exception:
            logger.warning("Redis GET failed for key %s", key)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Invalid JSON in cache key %s", key)
            return None

    async def set_json(self, key: str, data: Any, ttl: int | None = None) -> None:
        """Serialise *data* to JSON and store it, optionally with a TTL."""
        if self._redis is None:
            return
        try:
            payload = json.dumps(data, default=str)
        except (TypeError, ValueError):
            logger.warning("Failed to serialise data for cache key %s", key)
            return
        try:
            if ttl:
                await self._redis.setex(key, ttl, payload)
            else:
                await self._redis.set(key, payload)
        except Exception:
            logger.warning("Redis SET failed for key %s", key)

    async def delete(self, *keys: str) -> None:
        """Remove *keys* from the cache (best-effort)."""
        if self._redis is None or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception:
            logger.warning("Redis DELETE failed for keys %s", ", ".join(keys))

    # ------------------------------------------------------------------
    # Active rule set
    # ------------------------------------------------------------------

    async def get_active_rules(self) -> Optional[List[dict]]:
        cached = await self.get_json(ACTIVE_RULES_KEY)
        return cached if isinstance(cached, list) else None

    async def set_active_rules(self, rules: List[dict], ttl: int) -> None:
        await self.set_json(ACTIVE_RULES_KEY, rules, ttl=ttl)

    async def invalidate_active_rules(self) -> None:
        await self.delete(ACTIVE_RULES_KEY)

    @property
    def is_available(self) -> bool:
        """Return ``True`` if a Redis client is configured."""
        return self._redis is not None
