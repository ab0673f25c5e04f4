from typing import Any, Dict, List, Optional
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.core.exceptions import CourseValidationError, CsvImportError, DuplicateCourseError
from app.schemas.response import ErrorResponse, ErrorDetail, FieldViolation
from datetime import datetime, timezone
import logging
import uuid

logger = logging.getLogger(__name__)

def _get_error_code(status_code: int) -> str:
    code_map = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        409: "CONFLICT",
        413: "PAYLOAD_TOO_LARGE",
        422: "VALIDATION_ERROR",
        500: "INTERNAL_SERVER_ERROR",
        503: "SERVICE_UNAVAILABLE",
    }
    return code_map.get(status_code, f"HTTP_{status_code}")

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())

def _error_response(
    request: Request,
    request_id: str,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    field_errors: Optional[List[Dict[str, str]]] = None,
) -> JSONResponse:
    error_response = ErrorResponse(
        error=ErrorDetail(
            code=code,
            message=message,
            details=jsonable_encoder(details) if details else None,
            field_errors=[FieldViolation(**v) for v in field_errors or []],
        ),
        timestamp=datetime.now(timezone.utc).isoformat(),
        path=str(request.url),
        request_id=request_id
    )
    return JSONResponse(status_code=status_code, content=error_response.model_dump())

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = _request_id(request)
    field_errors = [
        {
            # drop the "body"/"query" prefix FastAPI puts on every location
            "field": ".".join(str(part) for part in error["loc"][1:]) or str(error["loc"][0]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"[{request_id}] Validation error: {field_errors}", extra={"request_id": request_id})
    return _error_response(
        request, request_id, 422, "VALIDATION_ERROR", "Request validation failed",
        details={"validation_errors": exc.errors()},
        field_errors=field_errors,
    )

async def course_validation_exception_handler(request: Request, exc: CourseValidationError):
    request_id = _request_id(request)
    logger.warning(f"[{request_id}] Course validation error: {exc.errors}", extra={"request_id": request_id})
    return _error_response(request, request_id, 422, "VALIDATION_ERROR", exc.message, field_errors=exc.errors)

async def duplicate_course_exception_handler(request: Request, exc: DuplicateCourseError):
    request_id = _request_id(request)
    logger.warning(f"[{request_id}] {exc}", extra={"request_id": request_id})
    return _error_response(
        request, request_id, 409, "CONFLICT", str(exc), details={"course_id": exc.course_id}
    )

async def csv_import_exception_handler(request: Request, exc: CsvImportError):
    request_id = _request_id(request)
    logger.warning(f"[{request_id}] CSV import rejected: {exc}", extra={"request_id": request_id})
    return _error_response(request, request_id, 400, "BAD_REQUEST", str(exc))

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    request_id = _request_id(request)
    logger.warning(f"[{request_id}] HTTP {exc.status_code}: {exc.detail}", extra={"request_id": request_id})
    response = _error_response(
        request, request_id, exc.status_code, _get_error_code(exc.status_code),
        exc.detail if isinstance(exc.detail, str) else str(exc.detail),
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response

async def global_exception_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    logger.error(f"[{request_id}] Unhandled exception: {exc}", exc_info=True, extra={"request_id": request_id})
    return _error_response(
        request, request_id, 500, "INTERNAL_SERVER_ERROR", "An unexpected error occurred",
        details={"error_type": type(exc).__name__},
    )
