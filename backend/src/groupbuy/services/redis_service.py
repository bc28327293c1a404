"""Redis service for scheduler locks and the bracket progress cache."""

import json
import uuid
from typing import Any

from redis.asyncio import Redis


class RedisService:
    """Service class for Redis operations."""

    # Lua script for safe lock release (only delete own lock)
    RELEASE_LOCK_SCRIPT = """
    if redis.call("GET", KEYS[1]) == ARGV[1] then
        return redis.call("DEL", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis: Redis):
        """Initialize Redis service with a Redis client.

        Args:
            redis: Async Redis client instance
        """
        self.redis = redis
        self._release_lock_script = None

    async def _get_release_lock_script(self):
        """Get or register the release lock Lua script."""
        if self._release_lock_script is None:
            self._release_lock_script = self.redis.register_script(self.RELEASE_LOCK_SCRIPT)
        return self._release_lock_script

    # ==================== Distributed Lock Operations ====================

    async def acquire_lock(
        self, resource: str, owner_id: str | None = None, ttl: int = 30
    ) -> tuple[bool, str]:
        """Acquire a distributed lock on an aggregate.

        Key pattern: lock:{resource}, e.g. lock:campaign:{campaign_id}
        Uses SET NX EX for atomic lock acquisition.

        Args:
            resource: Resource name, e.g. "campaign:<uuid>"
            owner_id: Unique identifier for lock owner (auto-generated if None)
            ttl: Lock timeout in seconds, bounds how long a crashed holder blocks others

        Returns:
            Tuple of (success, owner_id)
        """
        key = f"lock:{resource}"
        if owner_id is None:
            owner_id = str(uuid.uuid4())

        acquired = await self.redis.set(key, owner_id, nx=True, ex=ttl)
        return (bool(acquired), owner_id)

    async def release_lock(self, resource: str, owner_id: str) -> bool:
        """Release a distributed lock (only if owner matches).

        Args:
            resource: Resource name passed to acquire_lock
            owner_id: The owner_id returned from acquire_lock

        Returns:
            True if lock was released, False if not owner or already expired
        """
        key = f"lock:{resource}"
        script = await self._get_release_lock_script()
        result = await script(keys=[key], args=[owner_id])
        return int(result) == 1

    # ==================== Bracket Progress Cache ====================

    async def cache_bracket_progress(
        self, campaign_id: str, data: dict[str, Any], ttl: int
    ) -> None:
        """Cache a bracket progress snapshot as JSON.

        Key pattern: bracket_progress:{campaign_id}
        """
        key = f"bracket_progress:{campaign_id}"
        await self.redis.setex(key, ttl, json.dumps(data))

    async def get_cached_bracket_progress(self, campaign_id: str) -> dict[str, Any] | None:
        key = f"bracket_progress:{campaign_id}"
        raw = await self.redis.get(key)
        return json.loads(raw) if raw else None

    async def invalidate_bracket_progress(self, campaign_id: str) -> bool:
        """Drop the cached snapshot after a pledge or status change.

        Returns:
            True if a snapshot was deleted
        """
        key = f"bracket_progress:{campaign_id}"
        result = await self.redis.delete(key)
        return result > 0


async def get_redis_service(redis: Redis) -> RedisService:
    """Create a RedisService instance.

    Args:
        redis: Redis client from get_redis()

    Returns:
        RedisService instance
    """
    return RedisService(redis)
