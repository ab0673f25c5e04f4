from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.crud.course import course as crud_course
from app.models.user import User
from app.schemas.auth import AdminUser
from app.schemas.response import APIResponse
from app.services.cache_service import CacheService
from app.utils import deps

router = APIRouter()


@router.get("/dashboard", response_model=APIResponse[dict])
async def get_dashboard(
    db: Session = Depends(deps.get_db),
    cache_service: CacheService = Depends(deps.get_cache_service),
    admin: User = Depends(deps.get_current_admin),
):
    return APIResponse(
        message="Welcome to the admin dashboard!",
        data={
            "admin": AdminUser.model_validate(admin).model_dump(mode="json"),
            "dashboard": {
                "total_courses": crud_course.count(db),
                "cache_backend": cache_service.cache.backend.name,
                "cache_status": await cache_service.connection_status(),
                "generated_at": datetime.now(timezone.utc).isoformat(),
            },
        },
    )


@router.get("/cache/stats", response_model=APIResponse[dict])
async def get_cache_stats(
    cache_service: CacheService = Depends(deps.get_cache_service),
    admin: User = Depends(deps.get_current_admin),
):
    """Cache hit/miss counters and backend info"""
    stats = await cache_service.get_cache_stats()
    return APIResponse(message="Cache statistics retrieved", data=stats)


@router.post("/cache/clear", response_model=APIResponse[dict])
async def clear_cache(
    patterns: Optional[List[str]] = Body(default=None, embed=True),
    cache_service: CacheService = Depends(deps.get_cache_service),
    admin: User = Depends(deps.get_current_admin),
):
    """Clear catalog cache entries, optionally restricted to the given key patterns"""
    if patterns:
        cleared_count = 0
        for pattern in patterns:
            cleared_count += await cache_service.cache.delete_pattern(pattern)
        message = f"Cleared {cleared_count} cache entries matching patterns: {patterns}"
    else:
        cleared_count = await cache_service.clear_catalog_cache()
        message = f"Cleared {cleared_count} catalog cache entries"
    return APIResponse(message=message, data={"cleared": cleared_count})


@router.get("/cache/health", response_model=APIResponse[dict])
async def cache_health_check(
    cache_service: CacheService = Depends(deps.get_cache_service),
    admin: User = Depends(deps.get_current_admin),
):
    is_healthy = await cache_service.health_check()
    status = "healthy" if is_healthy else "unhealthy"
    return APIResponse(message=f"Cache is {status}", data={"healthy": is_healthy})
