"""
Health check routes for monitoring and service discovery.
Provides endpoints to verify service health and database connectivity.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from taskboard.api.deps import get_app_settings
from taskboard.core.config import Settings
from taskboard.core.logging import get_logger
from taskboard.db.session import get_session

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(settings: Annotated[Settings, Depends(get_app_settings)]) -> dict:
    """
    Basic health check endpoint.
    Returns service status and version information.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
    }


@router.get("/health/db")
def database_health_check(session: Annotated[Session, Depends(get_session)]) -> dict:
    """
    Database health check endpoint.
    Verifies database connectivity by executing a simple query.
    """
    try:
        result = session.connection().execute(text("SELECT 1")).scalar()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "database": "error"}

    return {
        "status": "healthy",
        "database": "ok",
        "result": int(result) if result is not None else 1,
    }
