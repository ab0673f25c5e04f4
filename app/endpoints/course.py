from typing import Optional
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.user import User
from app.schemas.response import APIResponse
from app.schemas.course import (
    Course,
    CourseCreate,
    CourseDetail,
    CourseListResult,
    CourseSearchResult,
    CourseStats,
    CourseUpdate,
    CourseUploadResult,
    CourseUploadSummary,
)
from app.services.course import CourseService
from app.services.csv_import import parse_course_csv
from app.utils import deps

router = APIRouter()

CSV_CONTENT_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}


def _mark_cache_status(request: Request, cached: bool):
    request.state.cache_status = "HIT" if cached else "MISS"


@router.get("/search", response_model=APIResponse[CourseSearchResult])
async def search_courses(
    request: Request,
    q: str = "",
    category: Optional[str] = None,
    skill_level: Optional[str] = None,
    min_rating: Optional[float] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
):
    result = await course_service.search_courses(db, {
        "query": q,
        "category": category,
        "skill_level": skill_level,
        "min_rating": min_rating,
        "page": page,
        "limit": limit,
    })
    _mark_cache_status(request, result.cached)
    return APIResponse(message="Courses retrieved successfully", data=result)


@router.get("/stats", response_model=APIResponse[CourseStats])
async def get_course_stats(
    request: Request,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
):
    stats = await course_service.get_course_stats(db)
    _mark_cache_status(request, stats.cached)
    return APIResponse(message="Course statistics retrieved successfully", data=stats)


@router.post("/upload", response_model=APIResponse[CourseUploadResult])
async def upload_courses(
    *,
    file: UploadFile = File(...),
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
    admin: User = Depends(deps.get_current_admin),
):
    filename = (file.filename or "").lower()
    if file.content_type not in CSV_CONTENT_TYPES and not filename.endswith(".csv"):
        raise HTTPException(status_code=400, detail="Invalid file type. Please upload a CSV file.")

    file_content = await file.read()
    if len(file_content) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=413, detail="File too large.")

    parsed = parse_course_csv(file_content)
    if parsed.total_rows == 0:
        raise HTTPException(status_code=400, detail="CSV file is empty or contains no valid data")

    inserted = await course_service.bulk_insert_courses(db, parsed.courses, row_numbers=parsed.rows)

    summary = CourseUploadSummary(
        total_rows=parsed.total_rows,
        valid_courses=len(parsed.courses),
        inserted_courses=inserted.inserted_count,
        duplicate_courses=inserted.duplicate_count,
        error_rows=len(parsed.errors),
    )
    return APIResponse(
        message="Course upload completed",
        data=CourseUploadResult(summary=summary, errors=parsed.errors, duplicates=inserted.errors),
    )


@router.get("/", response_model=APIResponse[CourseListResult])
async def list_courses(
    request: Request,
    category: Optional[str] = None,
    skill_level: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
):
    result = await course_service.list_courses(
        db, {"category": category, "skill_level": skill_level}, page=page, limit=limit
    )
    _mark_cache_status(request, result.cached)
    return APIResponse(message="Courses retrieved successfully", data=result)


@router.post("/", response_model=APIResponse[Course], status_code=status.HTTP_201_CREATED)
async def create_course(
    *,
    course_in: CourseCreate,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
    admin: User = Depends(deps.get_current_admin),
):
    new_course = await course_service.create_course(db, course_in)
    return APIResponse(message="Course created successfully", data=new_course)


@router.get("/{course_id}", response_model=APIResponse[CourseDetail])
async def read_course(
    *,
    request: Request,
    course_id: str,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
):
    course = await course_service.get_course_by_id(db, course_id)
    if not course:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No course found with ID: {course_id}")
    _mark_cache_status(request, course.cached)
    return APIResponse(message="Course retrieved successfully", data=course)


@router.put("/{course_id}", response_model=APIResponse[Course])
async def update_course(
    *,
    course_id: str,
    course_in: CourseUpdate,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
    admin: User = Depends(deps.get_current_admin),
):
    updated_course = await course_service.update_course(db, course_id, course_in)
    if not updated_course:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No course found with ID: {course_id}")
    return APIResponse(message="Course updated successfully", data=updated_course)


@router.delete("/{course_id}", response_model=APIResponse[dict])
async def delete_course(
    *,
    course_id: str,
    db: Session = Depends(deps.get_db),
    course_service: CourseService = Depends(deps.get_course_service),
    admin: User = Depends(deps.get_current_admin),
):
    deleted = await course_service.delete_course(db, course_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No course found with ID: {course_id}")
    return APIResponse(message="Course deleted successfully")
