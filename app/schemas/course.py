from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from app.core.constants import (
    SkillLevelEnum,
    ALL_FILTER_VALUE,
    MIN_RATING,
    MAX_RATING,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    RESERVED_COURSE_IDS,
)


def _blank_or_all_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value or value.lower() == ALL_FILTER_VALUE:
            return None
    return value


class CourseBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=10)
    category: str = Field(..., min_length=1)
    instructor: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1)
    price: str = Field(..., min_length=1)
    rating: float = Field(default=0.0, ge=MIN_RATING, le=MAX_RATING)
    skill_level: SkillLevelEnum = Field(default=SkillLevelEnum.BEGINNER)

    model_config = ConfigDict(use_enum_values=True, str_strip_whitespace=True)


class CourseCreate(CourseBase):
    course_id: str = Field(..., min_length=1)

    @field_validator("course_id")
    @classmethod
    def reject_reserved_course_id(cls, v):
        if v in RESERVED_COURSE_IDS:
            raise ValueError(f"course_id '{v}' is reserved")
        return v


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10)
    category: Optional[str] = Field(default=None, min_length=1)
    instructor: Optional[str] = Field(default=None, min_length=1)
    duration: Optional[str] = Field(default=None, min_length=1)
    price: Optional[str] = Field(default=None, min_length=1)
    rating: Optional[float] = Field(default=None, ge=MIN_RATING, le=MAX_RATING)
    skill_level: Optional[SkillLevelEnum] = None

    model_config = ConfigDict(use_enum_values=True, str_strip_whitespace=True)


class Course(CourseBase):
    course_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class CourseDetail(Course):
    cached: bool = False


class CourseSearchQuery(BaseModel):
    """Search descriptor. Its JSON form is also the search cache key suffix."""
    query: str = ""
    category: Optional[str] = None
    skill_level: Optional[SkillLevelEnum] = None
    min_rating: Optional[float] = Field(default=None, ge=MIN_RATING, le=MAX_RATING)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("query", mode="before")
    @classmethod
    def normalize_query(cls, v):
        if v is None:
            return ""
        return str(v).strip().lower()

    @field_validator("category", "skill_level", mode="before")
    @classmethod
    def normalize_filter(cls, v):
        return _blank_or_all_to_none(v)

    def cache_descriptor(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class CourseListFilter(BaseModel):
    category: Optional[str] = None
    skill_level: Optional[SkillLevelEnum] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("category", "skill_level", mode="before")
    @classmethod
    def normalize_filter(cls, v):
        return _blank_or_all_to_none(v)

    def cache_descriptor(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_courses: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            current_page=page,
            total_pages=(total + limit - 1) // limit,
            total_courses=total,
            has_next=page * limit < total,
            has_prev=page > 1,
        )


class CategoryFacet(BaseModel):
    category: str
    count: int
    avg_rating: float


class SkillLevelFacet(BaseModel):
    skill_level: str
    count: int


class SearchFacets(BaseModel):
    categories: List[CategoryFacet] = Field(default_factory=list)
    skill_levels: List[SkillLevelFacet] = Field(default_factory=list)


class CourseSearchResult(BaseModel):
    courses: List[Course]
    pagination: Pagination
    stats: SearchFacets
    search_query: CourseSearchQuery
    cached: bool = False


class CourseListResult(BaseModel):
    courses: List[Course]
    pagination: Pagination
    filters: Dict[str, Any] = Field(default_factory=dict)
    cached: bool = False


class CourseStats(BaseModel):
    total_courses: int
    categories_count: Dict[str, int]
    skill_level_count: Dict[str, int]
    average_rating: float
    cached: bool = False


class BulkInsertError(BaseModel):
    row: Optional[int] = None
    course_id: Optional[str] = None
    message: str


class BulkInsertResult(BaseModel):
    inserted_count: int
    duplicate_count: int
    errors: List[BulkInsertError] = Field(default_factory=list)


class CsvRowError(BaseModel):
    row: int
    course_id: Optional[str] = None
    errors: List[str]


class CsvImportResult(BaseModel):
    total_rows: int
    courses: List[CourseCreate] = Field(default_factory=list)
    rows: List[int] = Field(default_factory=list)
    errors: List[CsvRowError] = Field(default_factory=list)


class CourseUploadSummary(BaseModel):
    total_rows: int
    valid_courses: int
    inserted_courses: int
    duplicate_courses: int
    error_rows: int


class CourseUploadResult(BaseModel):
    summary: CourseUploadSummary
    errors: List[CsvRowError] = Field(default_factory=list)
    duplicates: List[BulkInsertError] = Field(default_factory=list)
