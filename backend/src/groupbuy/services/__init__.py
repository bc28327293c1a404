"""Business logic services."""

from groupbuy.services.redis_service import RedisService, get_redis_service

__all__ = [
    "RedisService",
    "get_redis_service",
]
