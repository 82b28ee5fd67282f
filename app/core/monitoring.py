"""Health checks and monitoring endpoints"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from redis.exceptions import RedisError

from app.config.database import get_db
from app.config.redis import get_redis

logger = logging.getLogger(__name__)

health_router = APIRouter()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "scheduling-api"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Detailed health check with dependencies"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        logger.warning(f"Database health check failed: {e}")
        checks["database"] = f"unhealthy: {str(e)}"

    # Check Redis
    try:
        redis_client = await get_redis()
        await redis_client.ping()
        checks["redis"] = "healthy"
        await redis_client.aclose()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis health check failed: {e}")
        checks["redis"] = f"unhealthy: {str(e)}"

    # Overall status
    if all(status == "healthy" for status in checks.values() if status != "unknown"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return checks
