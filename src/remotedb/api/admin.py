"""
Admin API endpoints.

Provides administrative functions like an immediate log retention sweep.
All endpoints require the privileged API key.
"""

import structlog
from fastapi import APIRouter, Depends, Request

from ..config import Settings, get_settings
from ..core.auth import authenticate_api_key, mask_key
from ..core.exceptions import AuthenticationError, ConfigurationError
from ..core.query_log import QueryLog
from ..models import AccessTier, AdminStatusResponse, ErrorResponse, LogCleanupResponse
from .query import client_identity, collect_request_params

logger = structlog.get_logger(__name__)

router = APIRouter()


async def require_privileged_key(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """
    Authenticate the caller and insist on the privileged tier.

    Accepts the key as ``apikey`` (query string, form or JSON) like the
    query endpoint.
    """
    security = settings.security
    if not security.admin_api_key:
        raise ConfigurationError("Admin API key not configured.")

    params = await collect_request_params(request)
    presented = params.get("apikey")
    tier = authenticate_api_key(presented, security.api_key, security.admin_api_key)

    if tier is not AccessTier.PRIVILEGED:
        logger.warning(
            "Admin access denied",
            client_ip=client_identity(request),
            apikey=mask_key(presented),
        )
        raise AuthenticationError("Admin API key required.")

    return presented


@router.post(
    "/v1/admin/logs:cleanup",
    response_model=LogCleanupResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - admin key required"},
        500: {"model": ErrorResponse, "description": "Admin key not configured"},
    },
    summary="Delete expired query logs now",
    description="""
    Run the log retention sweep immediately.

    Deletes `*.log` files in the query log directory whose modification
    time is older than `keep_logs_for_days`. Runs even when automatic
    cleanup is disabled; does nothing when retention is 0 (keep forever).
    """,
)
async def cleanup_logs(
    request: Request,
    settings: Settings = Depends(get_settings),
    admin_key: str = Depends(require_privileged_key),
) -> LogCleanupResponse:
    """
    Delete expired query log files.
    """
    logger.info("Manual log cleanup requested", admin_key=mask_key(admin_key))

    deleted = await QueryLog(settings.logging).cleanup_old_logs(force=True)

    metrics = getattr(request.app.state, 'metrics', None)
    if metrics:
        metrics.record_log_cleanup(len(deleted))

    return LogCleanupResponse(
        message=f"Deleted {len(deleted)} expired log file(s)",
        keep_logs_for_days=settings.logging.keep_logs_for_days,
        deleted_files=[path.name for path in deleted],
    )


@router.get("/v1/admin/status", response_model=AdminStatusResponse)
async def get_admin_status(
    settings: Settings = Depends(get_settings),
    admin_key: str = Depends(require_privileged_key),
) -> AdminStatusResponse:
    """
    Get effective configuration, without secrets.
    """
    logger.debug("Admin status requested", admin_key=mask_key(admin_key))

    return AdminStatusResponse(
        admin_key_configured=bool(settings.security.admin_api_key),
        max_requests_per_hour=settings.security.max_requests_per_hour,
        max_query_length=settings.security.max_query_length,
        logging_enabled=settings.logging.enable_logging,
        log_level=settings.logging.log_level,
        keep_logs_for_days=settings.logging.keep_logs_for_days,
        auto_cleanup_logs=settings.logging.auto_cleanup_logs,
        database_host=settings.database.host,
        database_port=settings.database.port,
    )
