from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.cache import create_cache_manager
from app.core.config import settings
from app.core.database import init_db
from app.core.exceptions import CourseValidationError, CsvImportError, DuplicateCourseError
from app.core.logging import configure_logging
from app.endpoints import admin, auth, course, utility
from app.middleware.exceptions import (
    course_validation_exception_handler,
    csv_import_exception_handler,
    duplicate_course_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.middleware.logging import RequestLoggingMiddleware

configure_logging()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

app.state.cache = create_cache_manager(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(CourseValidationError, course_validation_exception_handler)
app.add_exception_handler(DuplicateCourseError, duplicate_course_exception_handler)
app.add_exception_handler(CsvImportError, csv_import_exception_handler)

app.include_router(auth.router, prefix="/auth", tags=["Auth"])
app.include_router(course.router, prefix="/courses", tags=["Courses"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])
app.include_router(utility.router, tags=["Health"])

@app.on_event("startup")
async def startup_event():
    init_db()

@app.on_event("shutdown")
async def shutdown_event():
    await app.state.cache.close()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
