from typing import Optional, Dict, Any
from datetime import datetime, timezone
import logging

from app.core.cache import CacheManager
from app.core.cache_config import INVALIDATION_PATTERNS, course_detail_key

logger = logging.getLogger(__name__)

CATALOG_PATTERNS = ["course:*", "search:*", "courses:*"]


class CacheService:

    def __init__(self, cache: CacheManager):
        self.cache = cache

    async def _invalidate_patterns(self, patterns: list) -> int:
        total = 0
        for pattern in patterns:
            deleted = await self.cache.delete_pattern(pattern)
            logger.info(f"Invalidated {deleted} cache entries for pattern {pattern}")
            total += deleted
        return total

    async def invalidate_course_cache(self, course_id: Optional[str] = None) -> int:
        """Drop every cached view a course write can affect.

        Search and listing pages are swept wholesale since any write can change
        their membership or ranking.
        """
        if course_id is not None:
            await self.cache.delete(course_detail_key(course_id))
        for key in INVALIDATION_PATTERNS["course_write_keys"]:
            await self.cache.delete(key)
        return await self._invalidate_patterns(INVALIDATION_PATTERNS["course_write"])

    async def clear_catalog_cache(self) -> int:
        return await self._invalidate_patterns(CATALOG_PATTERNS)

    async def get_cache_stats(self) -> Dict[str, Any]:
        stats = {
            "backend": self.cache.backend.name,
            "enabled": self.cache.enabled,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **self.cache.stats,
        }
        lookups = self.cache.stats["hits"] + self.cache.stats["misses"] + self.cache.stats["unavailable"]
        stats["hit_ratio"] = round(self.cache.stats["hits"] / max(lookups, 1), 4)
        return stats

    async def health_check(self) -> bool:
        test_key = "health_check_test"
        test_value = {"timestamp": datetime.now(timezone.utc).isoformat()}

        if not await self.cache.set(test_key, test_value, ttl=10):
            return False
        retrieved = await self.cache.get(test_key)
        await self.cache.delete(test_key)

        return retrieved.hit and retrieved.value == test_value

    async def connection_status(self) -> str:
        """``disabled``, ``connected`` or ``unavailable``"""
        if not self.cache.enabled:
            return "disabled"
        if await self.cache.ping():
            return "connected"
        return "unavailable"
