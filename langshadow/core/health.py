"""
Health check utilities
"""
from typing import Dict, Any
from sqlalchemy import text
from sqlalchemy.engine import Engine
import logging

from langshadow import __version__
from langshadow.core.config import settings
from langshadow.core.redis import get_redis_client

logger = logging.getLogger(__name__)


async def check_database(db_engine: Engine) -> Dict[str, Any]:
    """
    Check database connectivity.

    Returns:
        Dictionary with status and details
    """
    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}"
        }


async def check_redis() -> Dict[str, Any]:
    """
    Check Redis connectivity.

    Returns:
        Dictionary with status and details
    """
    try:
        get_redis_client().ping()
        return {
            "status": "healthy",
            "message": "Redis connection successful"
        }
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return {
            "status": "unhealthy",
            "message": f"Redis connection failed: {str(e)}"
        }


async def get_health_status(db_engine: Engine) -> Dict[str, Any]:
    """
    Get overall health status.

    Redis only degrades replication dispatch, so it does not make the
    service unhealthy.
    """
    db_status = await check_database(db_engine)
    redis_status = await check_redis()

    overall_status = "healthy"
    if db_status["status"] != "healthy":
        overall_status = "unhealthy"

    return {
        "status": overall_status,
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "components": {
            "database": db_status,
            "redis": redis_status,
        }
    }
