from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar, Union
import logging

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.cache import CacheManager
from app.core.cache_config import (
    CACHE_KEYS,
    CACHE_TTL,
    course_detail_key,
    course_list_key,
    search_results_key,
)
from app.core.constants import MAX_PAGE_SIZE, RESERVED_COURSE_IDS
from app.core.exceptions import CourseValidationError, DuplicateCourseError, field_errors_from_pydantic
from app.crud.course import course as crud_course
from app.schemas.course import (
    BulkInsertError,
    BulkInsertResult,
    Course as CourseSchema,
    CourseCreate,
    CourseDetail,
    CourseListFilter,
    CourseListResult,
    CourseSearchQuery,
    CourseSearchResult,
    CourseStats,
    CourseUpdate,
    Pagination,
    SearchFacets,
)
from app.services.cache_service import CacheService

logger = logging.getLogger(__name__)

SchemaType = TypeVar("SchemaType", bound=BaseModel)


class CourseService:
    """Course catalog operations with a read-through cache.

    Reads try the cache first and populate it on a miss. Writes go to the
    store first and, once committed, invalidate every cached view they can
    affect. Writes never populate the cache.
    """

    def __init__(self, cache: CacheManager, cache_service: Optional[CacheService] = None):
        self.cache = cache
        self.cache_service = cache_service or CacheService(cache)

    @staticmethod
    def _validate(schema: Type[SchemaType], data: Union[SchemaType, Dict[str, Any]]) -> SchemaType:
        if isinstance(data, schema):
            return data
        try:
            return schema.model_validate(data)
        except ValidationError as e:
            raise CourseValidationError.from_pydantic(e, message=f"Invalid {schema.__name__} input")

    # Reads

    async def get_course_by_id(self, db: Session, course_id: str) -> Optional[CourseDetail]:
        # No course can hold a reserved id, and "stats" would read the aggregates key
        if course_id in RESERVED_COURSE_IDS:
            return None

        cache_key = course_detail_key(course_id)
        cached = await self.cache.get(cache_key)
        if cached.hit:
            return CourseDetail.model_validate({**cached.value, "cached": True})

        course = crud_course.get_by_course_id(db, course_id)
        if not course:
            return None

        payload = CourseSchema.model_validate(course).model_dump(mode="json")
        await self.cache.set(cache_key, payload, ttl=CACHE_TTL["course_detail"])
        return CourseDetail.model_validate({**payload, "cached": False})

    async def search_courses(
        self, db: Session, search: Union[CourseSearchQuery, Dict[str, Any]]
    ) -> CourseSearchResult:
        descriptor = self._validate(CourseSearchQuery, search)
        cache_key = search_results_key(descriptor.cache_descriptor())

        cached = await self.cache.get(cache_key)
        if cached.hit:
            return CourseSearchResult.model_validate({**cached.value, "cached": True})

        courses, total = crud_course.search(db, descriptor=descriptor)
        facets = crud_course.facet_counts(db, descriptor=descriptor)
        result = CourseSearchResult(
            courses=[CourseSchema.model_validate(c) for c in courses],
            pagination=Pagination.build(descriptor.page, descriptor.limit, total),
            stats=SearchFacets.model_validate(facets),
            search_query=descriptor,
            cached=False,
        )
        await self.cache.set(
            cache_key,
            result.model_dump(mode="json", exclude={"cached"}),
            ttl=CACHE_TTL["search_results"],
        )
        return result

    async def list_courses(
        self,
        db: Session,
        filters: Union[CourseListFilter, Dict[str, Any], None] = None,
        page: int = 1,
        limit: int = 20,
    ) -> CourseListResult:
        filters = self._validate(CourseListFilter, filters or {})
        violations = []
        if page < 1:
            violations.append({"field": "page", "message": "page must be at least 1"})
        if limit < 1 or limit > MAX_PAGE_SIZE:
            violations.append({"field": "limit", "message": f"limit must be between 1 and {MAX_PAGE_SIZE}"})
        if violations:
            raise CourseValidationError("Invalid listing parameters", violations)

        filter_descriptor = filters.cache_descriptor()
        cache_key = course_list_key(filter_descriptor, page, limit)
        cached = await self.cache.get(cache_key)
        if cached.hit:
            return CourseListResult.model_validate({**cached.value, "cached": True})

        courses, total = crud_course.get_filtered(db, filters=filters, skip=(page - 1) * limit, limit=limit)
        result = CourseListResult(
            courses=[CourseSchema.model_validate(c) for c in courses],
            pagination=Pagination.build(page, limit, total),
            filters=filter_descriptor,
            cached=False,
        )
        await self.cache.set(
            cache_key,
            result.model_dump(mode="json", exclude={"cached"}),
            ttl=CACHE_TTL["course_list"],
        )
        return result

    async def get_course_stats(self, db: Session) -> CourseStats:
        cache_key = CACHE_KEYS["course_stats"]
        cached = await self.cache.get(cache_key)
        if cached.hit:
            return CourseStats.model_validate({**cached.value, "cached": True})

        stats = CourseStats.model_validate({**crud_course.get_stats(db), "cached": False})
        await self.cache.set(
            cache_key,
            stats.model_dump(mode="json", exclude={"cached"}),
            ttl=CACHE_TTL["course_stats"],
        )
        return stats

    # Writes

    async def create_course(self, db: Session, course_in: Union[CourseCreate, Dict[str, Any]]) -> CourseSchema:
        course_in = self._validate(CourseCreate, course_in)
        if crud_course.get_by_course_id(db, course_in.course_id):
            raise DuplicateCourseError(course_in.course_id)

        try:
            new_course = crud_course.create(db, obj_in=course_in)
        except IntegrityError:
            db.rollback()
            raise DuplicateCourseError(course_in.course_id)

        created = CourseSchema.model_validate(new_course)
        await self.cache_service.invalidate_course_cache()
        logger.info(f"Created course {created.course_id}")
        return created

    async def update_course(
        self, db: Session, course_id: str, course_in: Union[CourseUpdate, Dict[str, Any]]
    ) -> Optional[CourseSchema]:
        course_in = self._validate(CourseUpdate, course_in)
        updated_course = crud_course.update_by_course_id(db, course_id=course_id, obj_in=course_in)
        if not updated_course:
            return None

        updated = CourseSchema.model_validate(updated_course)
        await self.cache_service.invalidate_course_cache(course_id)
        logger.info(f"Updated course {course_id}")
        return updated

    async def delete_course(self, db: Session, course_id: str) -> bool:
        deleted_course = crud_course.delete_by_course_id(db, course_id=course_id)
        if not deleted_course:
            return False

        await self.cache_service.invalidate_course_cache(course_id)
        logger.info(f"Deleted course {course_id}")
        return True

    async def bulk_insert_courses(
        self,
        db: Session,
        courses: Sequence[Union[CourseCreate, Dict[str, Any]]],
        row_numbers: Optional[Sequence[int]] = None,
    ) -> BulkInsertResult:
        """Insert many courses, tolerating invalid rows and duplicate course_ids.

        ``row_numbers`` labels each record in the reported errors (for CSV
        uploads, the line number in the file); defaults to the 1-based index.
        """
        if row_numbers is None:
            row_numbers = range(1, len(courses) + 1)

        errors: List[BulkInsertError] = []
        rows = []
        for row_number, record in zip(row_numbers, courses):
            if isinstance(record, CourseCreate):
                rows.append((row_number, record.model_dump()))
                continue
            try:
                rows.append((row_number, CourseCreate.model_validate(record).model_dump()))
            except ValidationError as e:
                messages = [f"{v['field']}: {v['message']}" for v in field_errors_from_pydantic(e)]
                errors.append(BulkInsertError(
                    row=row_number,
                    course_id=record.get("course_id") if isinstance(record, dict) else None,
                    message="; ".join(messages),
                ))

        inserted, duplicate_count, duplicate_errors = crud_course.bulk_insert(db, rows=rows)
        errors.extend(duplicate_errors)

        if inserted:
            await self.cache_service.invalidate_course_cache()
        logger.info(f"Bulk insert finished: {inserted} inserted, {duplicate_count} duplicates, {len(errors)} errors")

        return BulkInsertResult(
            inserted_count=inserted,
            duplicate_count=duplicate_count,
            errors=sorted(errors, key=lambda e: e.row or 0),
        )
