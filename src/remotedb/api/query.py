"""
Remote query endpoint.

Main endpoint: GET|POST /api/remotedb?apikey=...&keyspace=...&query=...
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Request

from ..config import Settings, get_settings
from ..core.pipeline import QueryPipeline
from ..models.query import ErrorResponse, QueryResponse

logger = structlog.get_logger(__name__)

router = APIRouter()

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def get_query_pipeline(request: Request, settings: Settings = Depends(get_settings)) -> QueryPipeline:
    """Dependency to build the processing pipeline for this request."""
    metrics = getattr(request.app.state, 'metrics', None)

    return QueryPipeline(
        settings=settings,
        metrics=metrics,
    )


async def collect_request_params(request: Request) -> Dict[str, Any]:
    """
    Merge query string and body parameters.

    Body fields (form or JSON object) override query string fields.
    """
    params: Dict[str, Any] = dict(request.query_params)

    if request.method != "POST":
        return params

    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type in FORM_CONTENT_TYPES:
        form = await request.form()
        params.update({key: value for key, value in form.items() if isinstance(value, str)})
    elif content_type == "application/json":
        try:
            body = await request.json()
        except ValueError:
            logger.debug("Ignoring malformed JSON body")
            body = None
        if isinstance(body, dict):
            params.update({key: value for key, value in body.items() if isinstance(value, str)})

    return params


def client_identity(request: Request) -> str:
    """Network identity used for rate limiting and logs."""
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


@router.api_route(
    "/remotedb",
    methods=["GET", "POST"],
    response_model=QueryResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing parameters, unsafe query or query failure"},
        401: {"model": ErrorResponse, "description": "Missing or invalid API key"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Configuration missing or database connection failure"},
    },
    summary="Execute a query on a keyspace",
    description="""
    Run one SQL statement on the database named by `keyspace`.

    **Processing Pipeline:**
    1. API key authentication (standard or privileged)
    2. Rate limiting per client address (requests per hour)
    3. Parameter checks (keyspace, query)
    4. Query validation for standard keys (length, DROP/ALTER/CREATE/TRUNCATE, comments)
    5. Execution on a fresh connection
    6. Query log entry and JSON response

    Privileged keys bypass query validation.
    """,
)
async def remote_query(
    request: Request,
    pipeline: QueryPipeline = Depends(get_query_pipeline),
) -> QueryResponse:
    """
    Execute a remote query.

    """
    pipeline.maybe_schedule_cleanup()

    params = await collect_request_params(request)
    return await pipeline.handle(params, client_identity(request))
