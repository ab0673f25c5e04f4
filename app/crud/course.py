from sqlalchemy.orm import Session, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_, case, func, literal
from typing import Any, Dict, List, Optional, Set, Tuple
import logging

from app.crud.base import CRUDBase
from app.models.course import Course
from app.schemas.course import (
    CourseCreate,
    CourseUpdate,
    CourseListFilter,
    CourseSearchQuery,
    BulkInsertError,
)

logger = logging.getLogger(__name__)

# Weight of a term match per field when ranking search results
SEARCH_FIELD_WEIGHTS = (
    ("title", 3),
    ("category", 2),
    ("description", 1),
    ("instructor", 1),
)

_IN_CLAUSE_CHUNK = 500


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class CRUDCourse(CRUDBase[Course, CourseCreate, CourseUpdate]):

    def get_by_course_id(self, db: Session, course_id: str) -> Optional[Course]:
        return db.query(Course).filter(Course.course_id == course_id).first()

    def get_existing_course_ids(self, db: Session, course_ids: List[str]) -> Set[str]:
        existing: Set[str] = set()
        unique_ids = list(dict.fromkeys(course_ids))
        for start in range(0, len(unique_ids), _IN_CLAUSE_CHUNK):
            chunk = unique_ids[start:start + _IN_CLAUSE_CHUNK]
            rows = db.query(Course.course_id).filter(Course.course_id.in_(chunk)).all()
            existing.update(row[0] for row in rows)
        return existing

    # Listing

    def _apply_list_filters(self, query: Query, filters: CourseListFilter) -> Query:
        if filters.category:
            query = query.filter(Course.category == filters.category)
        if filters.skill_level:
            query = query.filter(Course.skill_level == filters.skill_level)
        return query

    def get_filtered(
        self, db: Session, *, filters: CourseListFilter, skip: int = 0, limit: int = 20
    ) -> Tuple[List[Course], int]:
        query = self._apply_list_filters(db.query(Course), filters)
        total = query.count()
        courses = (
            query.order_by(Course.created_at.desc(), Course.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return courses, total

    # Search

    @staticmethod
    def _search_terms(text: str) -> List[str]:
        return [term for term in text.split() if term]

    def _apply_search_filters(self, query: Query, descriptor: CourseSearchQuery) -> Query:
        terms = self._search_terms(descriptor.query)
        if terms:
            query = query.filter(or_(*[
                getattr(Course, field).ilike(_like_pattern(term), escape="\\")
                for term in terms
                for field, _ in SEARCH_FIELD_WEIGHTS
            ]))
        if descriptor.category:
            query = query.filter(Course.category.ilike(_like_pattern(descriptor.category), escape="\\"))
        if descriptor.skill_level:
            query = query.filter(Course.skill_level == descriptor.skill_level)
        if descriptor.min_rating is not None:
            query = query.filter(Course.rating >= descriptor.min_rating)
        return query

    def _relevance_score(self, terms: List[str]):
        score = literal(0)
        for term in terms:
            pattern = _like_pattern(term)
            for field, weight in SEARCH_FIELD_WEIGHTS:
                score = score + case(
                    (getattr(Course, field).ilike(pattern, escape="\\"), weight),
                    else_=0,
                )
        return score

    def search(self, db: Session, *, descriptor: CourseSearchQuery) -> Tuple[List[Course], int]:
        query = self._apply_search_filters(db.query(Course), descriptor)
        total = query.count()

        terms = self._search_terms(descriptor.query)
        if terms:
            ordering = [self._relevance_score(terms).desc(), Course.rating.desc(), Course.id.asc()]
        else:
            ordering = [Course.rating.desc(), Course.created_at.desc(), Course.id.desc()]

        courses = (
            query.order_by(*ordering)
            .offset((descriptor.page - 1) * descriptor.limit)
            .limit(descriptor.limit)
            .all()
        )
        return courses, total

    def facet_counts(self, db: Session, *, descriptor: CourseSearchQuery) -> Dict[str, List[Dict[str, Any]]]:
        category_rows = (
            self._apply_search_filters(
                db.query(Course.category, func.count(Course.id), func.avg(Course.rating)),
                descriptor,
            )
            .group_by(Course.category)
            .order_by(func.count(Course.id).desc(), Course.category)
            .all()
        )
        skill_rows = (
            self._apply_search_filters(
                db.query(Course.skill_level, func.count(Course.id)),
                descriptor,
            )
            .group_by(Course.skill_level)
            .order_by(func.count(Course.id).desc())
            .all()
        )
        return {
            "categories": [
                {"category": category, "count": count, "avg_rating": round(float(avg or 0), 2)}
                for category, count, avg in category_rows
            ],
            "skill_levels": [
                {"skill_level": _enum_value(level), "count": count}
                for level, count in skill_rows
            ],
        }

    # Aggregates

    def get_stats(self, db: Session) -> Dict[str, Any]:
        total = db.query(func.count(Course.id)).scalar() or 0
        category_rows = db.query(Course.category, func.count(Course.id)).group_by(Course.category).all()
        skill_rows = db.query(Course.skill_level, func.count(Course.id)).group_by(Course.skill_level).all()
        average = db.query(func.avg(Course.rating)).scalar()
        return {
            "total_courses": total,
            "categories_count": {category: count for category, count in category_rows},
            "skill_level_count": {_enum_value(level): count for level, count in skill_rows},
            "average_rating": round(float(average), 2) if average is not None else 0.0,
        }

    # Mutations

    def update_by_course_id(
        self, db: Session, *, course_id: str, obj_in: CourseUpdate
    ) -> Optional[Course]:
        db_obj = self.get_by_course_id(db, course_id)
        if not db_obj:
            return None
        return self.update(db, db_obj=db_obj, obj_in=obj_in)

    def delete_by_course_id(self, db: Session, *, course_id: str) -> Optional[Course]:
        db_obj = self.get_by_course_id(db, course_id)
        if not db_obj:
            return None
        return self.remove(db, db_obj=db_obj)

    def bulk_insert(
        self, db: Session, *, rows: List[Tuple[Optional[int], Dict[str, Any]]]
    ) -> Tuple[int, int, List[BulkInsertError]]:
        """Insert ``(row_number, course_data)`` pairs, skipping duplicate course_ids.

        Returns ``(inserted_count, duplicate_count, duplicate_errors)``.
        """
        duplicates: List[BulkInsertError] = []
        existing = self.get_existing_course_ids(db, [data["course_id"] for _, data in rows])
        seen: Set[str] = set()
        candidates: List[Tuple[Optional[int], Dict[str, Any]]] = []

        for row_number, data in rows:
            course_id = data["course_id"]
            if course_id in existing or course_id in seen:
                duplicates.append(BulkInsertError(
                    row=row_number,
                    course_id=course_id,
                    message=f"Duplicate course_id '{course_id}'",
                ))
                continue
            seen.add(course_id)
            candidates.append((row_number, data))

        if not candidates:
            return 0, len(duplicates), duplicates

        try:
            db.add_all([Course(**data) for _, data in candidates])
            db.commit()
            return len(candidates), len(duplicates), duplicates
        except IntegrityError:
            db.rollback()
            logger.warning("Bulk insert hit a concurrent duplicate; retrying row by row")

        inserted = 0
        for row_number, data in candidates:
            try:
                db.add(Course(**data))
                db.commit()
                inserted += 1
            except IntegrityError:
                db.rollback()
                duplicates.append(BulkInsertError(
                    row=row_number,
                    course_id=data["course_id"],
                    message=f"Duplicate course_id '{data['course_id']}'",
                ))
        return inserted, len(duplicates), duplicates


course = CRUDCourse(Course)
