"""
Async Redis Repository

Provides asynchronous Redis operations using redis.asyncio. Every scheduling
record (waitlist entries, confirmations, staff notifications, audit trails)
lives behind this repository, scoped to a key prefix per entity type.
"""

import asyncio
import json
import logging
from typing import Any, Generic, TypeVar

import redis.asyncio as aioredis
from pydantic import BaseModel

from practice_scheduling.config.settings import Settings, get_settings
from practice_scheduling.core.domain.exceptions import UpstreamServiceException

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def create_redis_client(settings: Settings | None = None) -> aioredis.Redis:
    """Build a redis.asyncio client for settings.redis_url; nothing is connected until first use."""
    settings = settings or get_settings()
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )


async def wait_for_redis(client: aioredis.Redis, max_retries: int = 3, retry_delay: float = 1.0) -> None:
    """Ping Redis with retries, raising UpstreamServiceException when unreachable."""
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        try:
            await client.ping()
            logger.info("Async Redis connection established")
            return
        except (aioredis.ConnectionError, aioredis.TimeoutError) as e:
            last_error = e
            logger.warning(f"Async Redis connection attempt {attempt}/{max_retries} failed: {e}")
            if attempt < max_retries:
                await asyncio.sleep(retry_delay)

    raise UpstreamServiceException(
        "redis",
        f"Could not establish async Redis connection after {max_retries} attempts",
        last_error,
    )


class AsyncRedisRepository(Generic[T]):
    """
    Async repository for Redis operations.

    Redis is the only persistence for these records, so failures propagate as
    UpstreamServiceException instead of being reported as a miss.

    Usage:
        repo = AsyncRedisRepository[WaitlistEntry](WaitlistEntry, prefix="waitlist", client=client)

        entry = await repo.get("wl_123")
        await repo.set("wl_123", entry, expiration=3600)
    """

    def __init__(
        self,
        model_class: type[T],
        prefix: str = "",
        client: aioredis.Redis | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.model_class = model_class
        self.prefix = prefix
        self._redis_client: aioredis.Redis | None = client

    @property
    def client(self) -> aioredis.Redis:
        """Return the Redis client, creating it lazily."""
        if self._redis_client is None:
            self._redis_client = create_redis_client(self.settings)
        return self._redis_client

    def _get_key(self, key: str) -> str:
        """Build full key with prefix."""
        return f"{self.prefix}:{key}" if self.prefix else key

    def _fail(self, operation: str, key: str, error: Exception) -> UpstreamServiceException:
        logger.error(f"Async Redis {operation} failed for {key}: {error}")
        return UpstreamServiceException("redis", f"Redis {operation} failed", error)

    @staticmethod
    def _serialize(value: Any) -> str:
        if isinstance(value, BaseModel):
            return value.model_dump_json()
        if isinstance(value, str):
            return value
        return json.dumps(value, default=str)

    def _deserialize(self, data: str) -> T | None:
        if self.model_class is dict:
            return json.loads(data)
        try:
            return self.model_class.model_validate_json(data)
        except ValueError as e:
            logger.error(f"Error validating data for {self.model_class.__name__}: {e}")
            return None

    # ------------------------------------------------------------------
    # Key / value
    # ------------------------------------------------------------------

    async def get(self, key: str) -> T | None:
        """Get a model by its key."""
        redis_key = self._get_key(key)
        try:
            data = await self.client.get(redis_key)
        except aioredis.RedisError as e:
            raise self._fail("get", redis_key, e) from e

        if not data:
            logger.debug(f"Key {redis_key} not found in async Redis")
            return None
        return self._deserialize(data)

    async def get_many(self, keys: list[str]) -> list[T]:
        """Get several models, skipping missing keys."""
        if not keys:
            return []
        redis_keys = [self._get_key(k) for k in keys]
        try:
            values = await self.client.mget(redis_keys)
        except aioredis.RedisError as e:
            raise self._fail("mget", ",".join(redis_keys), e) from e

        results = []
        for data in values:
            if data:
                model = self._deserialize(data)
                if model is not None:
                    results.append(model)
        return results

    async def set(self, key: str, value: T, expiration: int | None = None) -> bool:
        """Store a model by its key."""
        redis_key = self._get_key(key)
        try:
            await self.client.set(redis_key, self._serialize(value), ex=expiration)
            return True
        except aioredis.RedisError as e:
            raise self._fail("set", redis_key, e) from e

    async def set_if_not_exists(self, key: str, value: Any, expiration: int | None = None) -> bool:
        """Store a value only if the key does not exist (atomic SET NX)."""
        redis_key = self._get_key(key)
        try:
            result = await self.client.set(redis_key, self._serialize(value), ex=expiration, nx=True)
            return bool(result)
        except aioredis.RedisError as e:
            raise self._fail("set_if_not_exists", redis_key, e) from e

    async def get_raw(self, key: str) -> str | None:
        """Get a plain string value."""
        redis_key = self._get_key(key)
        try:
            return await self.client.get(redis_key)
        except aioredis.RedisError as e:
            raise self._fail("get", redis_key, e) from e

    async def set_raw(self, key: str, value: str, expiration: int | None = None) -> bool:
        """Store a plain string value."""
        redis_key = self._get_key(key)
        try:
            await self.client.set(redis_key, value, ex=expiration)
            return True
        except aioredis.RedisError as e:
            raise self._fail("set", redis_key, e) from e

    async def delete(self, *keys: str) -> bool:
        """Delete one or more keys."""
        redis_keys = [self._get_key(k) for k in keys]
        try:
            result = await self.client.delete(*redis_keys)
            return bool(result)
        except aioredis.RedisError as e:
            raise self._fail("delete", ",".join(redis_keys), e) from e

    async def exists(self, key: str) -> bool:
        """Check if a key exists."""
        redis_key = self._get_key(key)
        try:
            return bool(await self.client.exists(redis_key))
        except aioredis.RedisError as e:
            raise self._fail("exists", redis_key, e) from e

    async def expire(self, key: str, seconds: int) -> bool:
        """Set a TTL on an existing key."""
        redis_key = self._get_key(key)
        try:
            return bool(await self.client.expire(redis_key, seconds))
        except aioredis.RedisError as e:
            raise self._fail("expire", redis_key, e) from e

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    async def list_push(self, key: str, *values: Any, max_length: int | None = None) -> int:
        """LPUSH values, optionally trimming the list to max_length."""
        redis_key = self._get_key(key)
        try:
            length = await self.client.lpush(redis_key, *[self._serialize(v) for v in values])
            if max_length:
                await self.client.ltrim(redis_key, 0, max_length - 1)
            return length
        except aioredis.RedisError as e:
            raise self._fail("lpush", redis_key, e) from e

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """LRANGE as raw strings."""
        redis_key = self._get_key(key)
        try:
            return await self.client.lrange(redis_key, start, end)
        except aioredis.RedisError as e:
            raise self._fail("lrange", redis_key, e) from e

    async def list_remove(self, key: str, value: str) -> int:
        """Remove every occurrence of value from a list."""
        redis_key = self._get_key(key)
        try:
            return await self.client.lrem(redis_key, 0, value)
        except aioredis.RedisError as e:
            raise self._fail("lrem", redis_key, e) from e

    # ------------------------------------------------------------------
    # Sorted sets
    # ------------------------------------------------------------------

    async def sorted_set_add(self, key: str, member: str, score: float) -> None:
        """ZADD a single member."""
        redis_key = self._get_key(key)
        try:
            await self.client.zadd(redis_key, {member: score})
        except aioredis.RedisError as e:
            raise self._fail("zadd", redis_key, e) from e

    async def sorted_set_range_by_score(self, key: str, min_score: float, max_score: float) -> list[str]:
        """Members with min_score <= score <= max_score, ascending."""
        redis_key = self._get_key(key)
        try:
            return await self.client.zrangebyscore(redis_key, min_score, max_score)
        except aioredis.RedisError as e:
            raise self._fail("zrangebyscore", redis_key, e) from e

    async def sorted_set_remove(self, key: str, *members: str) -> int:
        """ZREM members."""
        redis_key = self._get_key(key)
        try:
            return await self.client.zrem(redis_key, *members)
        except aioredis.RedisError as e:
            raise self._fail("zrem", redis_key, e) from e

    async def sorted_set_remove_by_score(self, key: str, min_score: float, max_score: float) -> int:
        """ZREMRANGEBYSCORE, inclusive on both ends."""
        redis_key = self._get_key(key)
        try:
            return await self.client.zremrangebyscore(redis_key, min_score, max_score)
        except aioredis.RedisError as e:
            raise self._fail("zremrangebyscore", redis_key, e) from e

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis_client is not None:
            await self._redis_client.aclose()
            logger.info("Async Redis connection closed")
