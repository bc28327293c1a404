"""Tests for scheduler locks and the bracket progress cache in Redis."""

import json
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from groupbuy.services.redis_service import RedisService


class TestDistributedLock:
    """Test Redis distributed lock operations."""

    @pytest.mark.asyncio
    async def test_acquire_lock_success(self, mock_redis):
        """SET NX EX on lock:{resource} with a generated owner id."""
        service = RedisService(mock_redis)
        resource = f"campaign:{uuid4()}"

        success, owner_id = await service.acquire_lock(resource)

        assert success is True
        assert owner_id
        mock_redis.set.assert_called_once()
        call_args = mock_redis.set.call_args
        assert call_args.args == (f"lock:{resource}", owner_id)
        assert call_args.kwargs["nx"] is True
        assert call_args.kwargs["ex"] == 30  # Default TTL

    @pytest.mark.asyncio
    async def test_acquire_lock_failure(self, mock_redis):
        """SET NX returns None when another worker holds the key."""
        mock_redis.set = AsyncMock(return_value=None)
        service = RedisService(mock_redis)

        success, owner_id = await service.acquire_lock("campaign:x", owner_id="me", ttl=5)

        assert success is False
        assert owner_id == "me"
        assert mock_redis.set.call_args.kwargs["ex"] == 5

    @pytest.mark.asyncio
    async def test_release_lock_by_owner(self, mock_redis):
        service = RedisService(mock_redis)

        released = await service.release_lock("campaign:x", "me")

        assert released is True
        script = mock_redis.register_script.return_value
        script.assert_called_once_with(keys=["lock:campaign:x"], args=["me"])

    @pytest.mark.asyncio
    async def test_release_lock_not_owner(self, mock_redis):
        """Owner check in the Lua script returns 0 for somebody else's lock."""
        mock_redis.register_script = MagicMock(return_value=AsyncMock(return_value=0))
        service = RedisService(mock_redis)

        released = await service.release_lock("campaign:x", "someone-else")

        assert released is False

    @pytest.mark.asyncio
    async def test_release_script_registered_once(self, mock_redis):
        service = RedisService(mock_redis)

        await service.release_lock("a", "1")
        await service.release_lock("b", "2")

        mock_redis.register_script.assert_called_once_with(RedisService.RELEASE_LOCK_SCRIPT)


class TestBracketProgressCache:
    """Test the short-lived bracket progress snapshot."""

    @pytest.mark.asyncio
    async def test_cache_bracket_progress(self, mock_redis):
        service = RedisService(mock_redis)
        data = {"total_pledged": 15, "percentage_to_next_tier": "12.20"}

        await service.cache_bracket_progress("c1", data, ttl=5)

        mock_redis.setex.assert_called_once_with("bracket_progress:c1", 5, json.dumps(data))

    @pytest.mark.asyncio
    async def test_get_cached_bracket_progress_hit(self, mock_redis):
        mock_redis.get = AsyncMock(return_value='{"total_pledged": 15}')
        service = RedisService(mock_redis)

        cached = await service.get_cached_bracket_progress("c1")

        assert cached == {"total_pledged": 15}
        mock_redis.get.assert_called_once_with("bracket_progress:c1")

    @pytest.mark.asyncio
    async def test_get_cached_bracket_progress_miss(self, mock_redis):
        service = RedisService(mock_redis)

        assert await service.get_cached_bracket_progress("c1") is None

    @pytest.mark.asyncio
    async def test_invalidate_bracket_progress(self, mock_redis):
        service = RedisService(mock_redis)

        assert await service.invalidate_bracket_progress("c1") is True
        mock_redis.delete.assert_called_once_with("bracket_progress:c1")

        mock_redis.delete = AsyncMock(return_value=0)
        assert await service.invalidate_bracket_progress("c1") is False
