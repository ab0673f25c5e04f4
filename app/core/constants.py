from enum import Enum


class RoleEnum(str, Enum):
    ADMIN = "admin"


class SkillLevelEnum(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# Search/list filter value meaning "no filter"
ALL_FILTER_VALUE = "all"

MIN_RATING = 0.0
MAX_RATING = 5.0

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

CSV_REQUIRED_COLUMNS = ["course_id", "title", "description", "category"]
CSV_COLUMNS = [
    "course_id", "title", "description", "category", "instructor",
    "duration", "price", "rating", "skill_level",
]

# Shadowed by the /courses/stats and /courses/search routes; "stats" would
# also share the course:stats cache key with the catalog aggregates.
RESERVED_COURSE_IDS = frozenset({"stats", "search"})
