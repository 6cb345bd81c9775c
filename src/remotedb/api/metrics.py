"""
Prometheus scrape endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from ..core.metrics import MetricsCollector

router = APIRouter()


def get_metrics_collector(request: Request) -> Optional[MetricsCollector]:
    """Collector created by the application lifespan, if it has run."""
    return getattr(request.app.state, "metrics", None)


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    response_class=Response,
    description="""
    Gateway metrics in the Prometheus text format:

    - `remotedb_queries_total{tier,status}`
    - `remotedb_query_duration_seconds{tier}`
    - `remotedb_response_size_bytes`
    - `remotedb_rejections_total{reason}`
    - `remotedb_log_files_deleted_total`
    - `uptime_seconds`
    """,
)
async def scrape_metrics(collector: Optional[MetricsCollector] = Depends(get_metrics_collector)) -> Response:
    if collector is not None:
        collector.update_system_metrics()
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
