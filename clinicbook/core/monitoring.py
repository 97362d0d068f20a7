"""Health checks and monitoring endpoints"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from clinicbook.config.database import get_db
from clinicbook.config.redis import get_redis
from clinicbook.config.settings import settings

logger = logging.getLogger(__name__)

health_router = APIRouter()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "clinicbook-api"}


@health_router.get("/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """Detailed health check with dependencies"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = f"unhealthy: {str(e)}"

    # Redis only backs the ledger when configured
    if settings.IDEMPOTENCY_BACKEND == "redis":
        try:
            get_redis().ping()
            checks["redis"] = "healthy"
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            checks["redis"] = f"unhealthy: {str(e)}"
    else:
        checks["redis"] = "not configured"

    if all(status == "healthy" for key, status in checks.items() if key in ("api", "database")) and \
            checks["redis"] in ("healthy", "not configured"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return checks
