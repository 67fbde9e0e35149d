"""
Health check endpoints.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.db.session import get_engine, run_blocking
from app.dependencies import get_broker
from app.schemas.responses import HealthResponse, ReadinessResponse
from app.services.progress_broker import ProgressBroker

logger = logging.getLogger(__name__)

router = APIRouter()


def _ping_database() -> None:
    with get_engine().connect() as connection:
        connection.execute(text("SELECT 1"))


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=get_settings().app_version,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(broker: ProgressBroker = Depends(get_broker)):
    """
    Readiness check endpoint.

    Verifies the database answers and reports how many jobs have live
    progress subscribers.
    """
    try:
        await run_blocking(_ping_database)
        database = "ready"
    except SQLAlchemyError as e:
        logger.warning(f"Database readiness check failed: {e}")
        database = "unavailable"

    return ReadinessResponse(
        ready=database == "ready",
        database=database,
        active_progress_jobs=len(broker.active_jobs()),
    )
