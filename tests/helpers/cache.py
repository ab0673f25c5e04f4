from app.core.cache import CacheBackend, CacheUnavailableError, MemoryCacheBackend


class DownCacheBackend(CacheBackend):
    """Backend whose store is unreachable for every operation."""
    name = "down"

    async def get(self, key):
        raise CacheUnavailableError("connection refused")

    async def set(self, key, value, ttl):
        raise CacheUnavailableError("connection refused")

    async def delete(self, key):
        raise CacheUnavailableError("connection refused")

    async def delete_pattern(self, pattern):
        raise CacheUnavailableError("connection refused")

    async def clear(self):
        raise CacheUnavailableError("connection refused")

    async def exists(self, key):
        raise CacheUnavailableError("connection refused")

    async def ping(self):
        raise CacheUnavailableError("connection refused")


class RecordingCacheBackend(MemoryCacheBackend):
    """Memory backend that remembers the TTL of every write."""

    def __init__(self):
        super().__init__()
        self.ttls = {}

    async def set(self, key, value, ttl):
        self.ttls[key] = ttl
        return await super().set(key, value, ttl)
