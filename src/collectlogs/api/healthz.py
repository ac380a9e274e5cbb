"""
Health check endpoints.

- /healthz: Liveness probe (always 200 if service alive)
- /readyz: Readiness probe (200 only if the database answers)
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..core.database import get_db

logger = structlog.get_logger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/healthz", status_code=200, summary="Liveness probe")
async def liveness_check() -> Dict[str, Any]:
    """Liveness probe - always returns 200 if service is alive."""
    return {
        "status": "alive",
        "timestamp": _now(),
        "service": "collectlogs",
        "version": "0.1.0",
    }


@router.get(
    "/readyz",
    summary="Readiness probe",
    description="""
    Readiness probe endpoint.

    Returns 200 when the database holding settings and convert rules
    answers, 503 Service Unavailable otherwise.
    """,
)
async def readiness_check(response: Response) -> Dict[str, Any]:
    try:
        with get_db() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Readiness check failed", error=str(e), error_type=type(e).__name__)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "not_ready",
            "reason": "database_unavailable",
            "error": str(e),
            "timestamp": _now(),
        }

    return {
        "status": "ready",
        "timestamp": _now(),
        "checks": {"database": "healthy"},
    }
