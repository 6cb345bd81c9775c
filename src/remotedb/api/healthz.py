"""
Probe endpoints for orchestrators.

``/healthz`` answers as long as the process serves requests. ``/readyz``
answers 200 only when the gateway could actually run a query.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Response, status

from .. import __version__
from ..config import Settings, get_settings
from ..core.health import HealthChecker

logger = structlog.get_logger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/healthz", summary="Liveness probe")
async def liveness() -> Dict[str, Any]:
    return {
        "status": "alive",
        "service": "remotedb",
        "version": __version__,
        "timestamp": _now(),
    }


@router.get(
    "/readyz",
    summary="Readiness probe",
    responses={503: {"description": "At least one check failed"}},
    description="""
    Checks that a standard API key is configured, that the query log
    directory and rate limit store are writable, and that the database
    server accepts connections. Returns 503 when any check fails.
    """,
)
async def readiness(response: Response, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    result = await HealthChecker(settings).check_all()

    body: Dict[str, Any] = {
        "status": "ready" if result.is_healthy else "not_ready",
        "timestamp": _now(),
        "checks": {name: asdict(check) for name, check in result.checks.items()},
    }

    if not result.is_healthy:
        logger.warning("Not ready", failed_checks=result.failed_checks)
        body["failed_checks"] = result.failed_checks
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return body
