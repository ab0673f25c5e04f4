import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.services.cache_service import CacheService
from app.utils import deps

logger = logging.getLogger(__name__)

router = APIRouter()

_started_at = time.monotonic()


@router.get("/health")
async def health_check(
    db: Session = Depends(deps.get_db),
    cache_service: CacheService = Depends(deps.get_cache_service),
):
    health = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {"database": "unknown", "cache": "unknown"},
        "version": settings.VERSION,
        "uptime": round(time.monotonic() - _started_at, 2),
    }

    try:
        db.execute(text("SELECT 1"))
        health["services"]["database"] = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        health["services"]["database"] = "disconnected"
        health["status"] = "degraded"

    # The cache is optional; an outage does not degrade the service
    health["services"]["cache"] = await cache_service.connection_status()

    return JSONResponse(content=health, status_code=200 if health["status"] == "healthy" else 503)
