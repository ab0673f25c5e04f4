import json
import asyncio
import fnmatch
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Dict, List
import time
import logging

import redis.asyncio as aioredis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError, TimeoutError as RedisTimeoutError

from app.core.config import Settings

logger = logging.getLogger(__name__)


class CacheUnavailableError(Exception):
    """Raised by a backend when the underlying store cannot be reached."""


class CacheStatus(str, Enum):
    HIT = "HIT"
    MISS = "MISS"
    UNAVAILABLE = "UNAVAILABLE"


@dataclass(frozen=True)
class CacheResult:
    """Outcome of a cache read.

    ``MISS`` and ``UNAVAILABLE`` are handled the same way by callers (fall back
    to the store); the distinction exists for monitoring.
    """
    status: CacheStatus
    value: Any = None

    @property
    def hit(self) -> bool:
        return self.status == CacheStatus.HIT

    @classmethod
    def miss(cls) -> "CacheResult":
        return cls(CacheStatus.MISS)

    @classmethod
    def unavailable(cls) -> "CacheResult":
        return cls(CacheStatus.UNAVAILABLE)


class CacheBackend(ABC):
    name = "base"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> bool:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        pass

    @abstractmethod
    async def clear(self) -> bool:
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        pass

    async def ping(self) -> bool:
        return True

    async def close(self):
        pass


class MemoryCacheBackend(CacheBackend):
    name = "memory"

    def __init__(self):
        self._cache: Dict[str, Dict] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            await self._cleanup_expired()
            item = self._cache.get(key)
            if item and (item.get("expiry", 0) == 0 or time.time() < item["expiry"]):
                return item["value"]
            elif key in self._cache:
                del self._cache[key]
            return None

    async def set(self, key: str, value: str, ttl: int) -> bool:
        async with self._lock:
            expiry = time.time() + ttl if ttl != 0 else 0
            self._cache[key] = {
                "value": value,
                "expiry": expiry,
                "created_at": time.time()
            }
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._cache.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        async with self._lock:
            keys_to_delete = [key for key in self._cache if fnmatch.fnmatchcase(key, pattern)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    async def clear(self) -> bool:
        async with self._lock:
            self._cache.clear()
            return True

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    def keys(self) -> List[str]:
        return list(self._cache.keys())

    async def _cleanup_expired(self):
        current_time = time.time()
        expired_keys = [
            key for key, item in self._cache.items()
            if item.get("expiry", 0) > 0 and current_time >= item["expiry"]
        ]
        for key in expired_keys:
            del self._cache[key]


class RedisCacheBackend(CacheBackend):
    """Redis backend with a lazily created, reused connection pool.

    Reconnects are handled by the client's retry policy (capped exponential
    backoff). Every failure surfaces as ``CacheUnavailableError``.
    """
    name = "redis"

    def __init__(
        self,
        redis_url: str,
        socket_timeout: float = 2.0,
        retry_attempts: int = 3,
        backoff_base: float = 0.05,
        backoff_cap: float = 1.0,
    ):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.retry_attempts = retry_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self._redis = None

    @property
    def redis(self):
        if self._redis is None:
            logger.info("Connecting to Redis cache backend")
            self._redis = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                retry=Retry(ExponentialBackoff(cap=self.backoff_cap, base=self.backoff_base), self.retry_attempts),
                retry_on_error=[RedisConnectionError, RedisTimeoutError],
            )
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.redis.get(key)
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis GET failed for key {key}: {e}") from e

    async def set(self, key: str, value: str, ttl: int) -> bool:
        try:
            if ttl == 0:
                await self.redis.set(key, value)
            else:
                await self.redis.setex(key, ttl, value)
            return True
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis SET failed for key {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        try:
            return await self.redis.delete(key) > 0
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis DELETE failed for key {key}: {e}") from e

    async def delete_pattern(self, pattern: str) -> int:
        try:
            deleted = 0
            batch = []
            async for key in self.redis.scan_iter(match=pattern, count=500):
                batch.append(key)
                if len(batch) >= 500:
                    deleted += await self.redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.redis.delete(*batch)
            return deleted
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis pattern delete failed for {pattern}: {e}") from e

    async def clear(self) -> bool:
        try:
            await self.redis.flushdb()
            return True
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis CLEAR failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            return await self.redis.exists(key) > 0
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis EXISTS failed for key {key}: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(f"Redis PING failed: {e}") from e

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class CacheManager:
    """JSON read-through cache facade.

    Never raises on backend failure: reads degrade to ``UNAVAILABLE`` results
    and writes to a ``False``/``0`` return value.
    """

    def __init__(self, backend: CacheBackend, enabled: bool = True, default_ttl: int = 300):
        self.backend = backend
        self.enabled = enabled
        self.default_ttl = default_ttl
        self.stats = {"hits": 0, "misses": 0, "unavailable": 0, "sets": 0, "invalidated": 0}

    def _serialize(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _deserialize(self, value: str) -> Any:
        return json.loads(value)

    async def get(self, key: str) -> CacheResult:
        if not self.enabled:
            return CacheResult.miss()
        try:
            raw = await self.backend.get(key)
        except CacheUnavailableError as e:
            self.stats["unavailable"] += 1
            logger.warning(f"Cache unavailable on GET {key}: {e}")
            return CacheResult.unavailable()

        if raw is None:
            self.stats["misses"] += 1
            logger.debug(f"Cache MISS for key: {key}")
            return CacheResult.miss()

        try:
            value = self._deserialize(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Discarding undecodable cache entry for key: {key}")
            self.stats["misses"] += 1
            return CacheResult.miss()

        self.stats["hits"] += 1
        logger.debug(f"Cache HIT for key: {key}")
        return CacheResult(CacheStatus.HIT, value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        if ttl is None:
            ttl = self.default_ttl
        try:
            stored = await self.backend.set(key, self._serialize(value), ttl)
        except CacheUnavailableError as e:
            self.stats["unavailable"] += 1
            logger.warning(f"Cache unavailable on SET {key}: {e}")
            return False
        if stored:
            self.stats["sets"] += 1
            logger.debug(f"Cache SET for key: {key} (TTL {ttl}s)")
        return stored

    async def delete(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            deleted = await self.backend.delete(key)
        except CacheUnavailableError as e:
            self.stats["unavailable"] += 1
            logger.warning(f"Cache unavailable on DELETE {key}: {e}")
            return False
        if deleted:
            self.stats["invalidated"] += 1
        return True

    async def delete_pattern(self, pattern: str) -> int:
        if not self.enabled:
            return 0
        try:
            deleted = await self.backend.delete_pattern(pattern)
        except CacheUnavailableError as e:
            self.stats["unavailable"] += 1
            logger.warning(f"Cache unavailable on pattern delete {pattern}: {e}")
            return 0
        self.stats["invalidated"] += deleted
        return deleted

    async def clear(self) -> bool:
        try:
            return await self.backend.clear()
        except CacheUnavailableError as e:
            logger.warning(f"Cache unavailable on CLEAR: {e}")
            return False

    async def ping(self) -> bool:
        try:
            return await self.backend.ping()
        except CacheUnavailableError as e:
            logger.warning(f"Cache ping failed: {e}")
            return False

    async def close(self):
        try:
            await self.backend.close()
        except CacheUnavailableError as e:
            logger.warning(f"Cache close failed: {e}")


def create_cache_backend(settings: Settings) -> CacheBackend:
    if settings.REDIS_URL:
        logger.info("Initializing Redis cache backend")
        return RedisCacheBackend(
            settings.REDIS_URL,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
            retry_attempts=settings.REDIS_RETRY_ATTEMPTS,
            backoff_base=settings.REDIS_BACKOFF_BASE,
            backoff_cap=settings.REDIS_BACKOFF_CAP,
        )

    logger.info("Using in-memory cache backend")
    return MemoryCacheBackend()


def create_cache_manager(settings: Settings) -> CacheManager:
    return CacheManager(
        create_cache_backend(settings),
        enabled=settings.CACHE_ENABLED,
        default_ttl=settings.CACHE_TTL,
    )
