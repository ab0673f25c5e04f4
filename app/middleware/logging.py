import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Polled by load balancers; only worth logging when something is wrong
QUIET_PATHS = {"/health"}

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and reports how the course cache served it.

    Endpoints record ``request.state.cache_status`` (``HIT`` or ``MISS``); it is
    echoed back in the ``X-Cache`` header.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else None

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"[{request_id}] {method} {path} - ERROR",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "client": client_host,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                    "error": str(exc)
                }
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        status_code = response.status_code
        cache_status = getattr(request.state, "cache_status", None)
        cache_msg = f" [CACHE: {cache_status}]" if cache_status else ""

        if status_code >= 400:
            log_level = logging.WARNING
        elif path in QUIET_PATHS:
            log_level = logging.DEBUG
        else:
            log_level = logging.INFO
        logger.log(
            log_level,
            f"[{request_id}] {method} {path} - {status_code}{cache_msg} ({duration_ms}ms)",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "query": str(request.url.query),
                "client": client_host,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "cache_status": cache_status
            }
        )

        response.headers["X-Request-ID"] = request_id
        if cache_status:
            response.headers["X-Cache"] = cache_status
        response.headers["X-Process-Time"] = str(round(duration_ms / 1000, 4))

        return response
