"""Redis JSON document access"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional

from redis import asyncio as aioredis

from core.config import settings


def _json_dumps(value: Any) -> str:
    """Serialize any value to a JSON string"""
    return json.dumps(value, default=str)


def _json_loads(value: Optional[str]) -> Any:
    """Deserialize a JSON string"""
    if value is None:
        return None
    return json.loads(value)


class RedisCache:
    """Namespaced JSON values on top of a Redis client"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Any:
        value = await self._client.get(self._format_key(key))
        if value is None:
            return None
        return _json_loads(value)

    async def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        """Optimistic read-modify-write: WATCH the key, apply `fn`, MULTI/EXEC.

        Raises redis.WatchError when another writer changed the key in between.
        """
        formatted_key = self._format_key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            await pipe.watch(formatted_key)
            value = fn(_json_loads(await pipe.get(formatted_key)))
            pipe.multi()
            pipe.set(formatted_key, _json_dumps(value))
            await pipe.execute()
        return value


_redis_client: Optional[aioredis.Redis] = None
_lock = asyncio.Lock()


async def init_redis_client() -> aioredis.Redis:
    """Create the shared Redis client once"""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    async with _lock:
        if _redis_client is not None:
            return _redis_client

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL is not configured; cannot initialise Redis")

        _redis_client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )
        return _redis_client


async def get_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    client = await init_redis_client()
    return RedisCache(client=client, namespace=namespace or settings.redis.namespace)


async def shutdown_redis_client() -> None:
    """Close the Redis connection"""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
