"""Public interface of the cache layer"""
from .redis_cache import (
    RedisCache,
    init_redis_client,
    shutdown_redis_client,
    get_redis_cache,
)

__all__ = [
    "RedisCache",
    "init_redis_client",
    "shutdown_redis_client",
    "get_redis_cache",
]
