"""Cache TTLs, key patterns and invalidation patterns for the course catalog"""
import json
from typing import Any, Dict

# Cache TTL (Time To Live) configurations in seconds.
# Shorter TTLs for aggregate views that change with every write.
CACHE_TTL = {
    "course_detail": 1800,    # 30 minutes
    "search_results": 600,    # 10 minutes
    "course_list": 300,       # 5 minutes
    "course_stats": 900,      # 15 minutes
}

# Cache key patterns
CACHE_KEYS = {
    "course_detail": "course:{}",
    "search_results": "search:{}",
    "course_list": "courses:{}:{}:{}",
    "course_stats": "course:stats",
}

# Cache invalidation patterns - what to clear when course data changes
INVALIDATION_PATTERNS = {
    "course_write": [
        "search:*",
        "courses:*",
    ],
    "course_write_keys": [
        "course:stats",
    ],
}


def canonical_json(data: Dict[str, Any]) -> str:
    """Serialize ``data`` so equal dicts always produce the same string."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def course_detail_key(course_id: str) -> str:
    return CACHE_KEYS["course_detail"].format(course_id)


def search_results_key(descriptor: Dict[str, Any]) -> str:
    return CACHE_KEYS["search_results"].format(canonical_json(descriptor))


def course_list_key(filters: Dict[str, Any], page: int, limit: int) -> str:
    return CACHE_KEYS["course_list"].format(canonical_json(filters), page, limit)
