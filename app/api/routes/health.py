"""
Health check routes.

- /health: liveness (always 200 while the app runs)
- /health/ready: readiness (storage and receipt transport reachable)
"""
from fastapi import APIRouter, Response
import logging

from app.core.config import settings
from app.core.timezone import utc_now

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """Liveness probe for monitoring and load balancers."""
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": settings.APP_NAME,
    }


@router.get("/health/ready")
async def readiness_check(response: Response):
    """
    Readiness probe.

    Only the backends actually configured are checked; the in-process
    ones are always "ok".
    """
    checks = {"storage": "ok", "receipts": "ok"}

    if settings.STORAGE_BACKEND.lower() == "supabase":
        from app.services.supabase import check_supabase_connection

        checks["storage"] = "ok" if await check_supabase_connection() else "error"

    if settings.RECEIPT_TRANSPORT.lower() == "redis":
        from app.services.redis import check_redis_connection

        checks["receipts"] = "ok" if await check_redis_connection() else "error"

    ready = all(value == "ok" for value in checks.values())
    if not ready:
        response.status_code = 503
        logger.warning(f"[Health] Not ready: {checks}")

    return {"status": "ready" if ready else "degraded", "checks": checks}
