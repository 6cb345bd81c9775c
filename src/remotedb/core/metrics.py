"""
Prometheus metrics collection.

Stateless service with in-memory metrics; Prometheus handles storage.
"""

import time
from typing import Optional

import structlog
from prometheus_client import Counter, Gauge, Histogram, Info

from .. import __version__

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for the RemoteDB gateway.
    """

    def __init__(self) -> None:
        # Service info
        self.service_info = Info(
            "remotedb_service",
            "RemoteDB gateway information"
        )
        self.service_info.info({
            "version": __version__,
            "service": "remotedb",
        })

        # Query metrics
        self.queries_total = Counter(
            "remotedb_queries_total",
            "Total queries handled",
            ["tier", "status"]
        )

        self.query_duration = Histogram(
            "remotedb_query_duration_seconds",
            "Time spent handling successful queries",
            ["tier"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
        )

        self.response_size_bytes = Histogram(
            "remotedb_response_size_bytes",
            "Size of JSON-encoded query payloads",
            buckets=[64, 256, 1024, 4096, 16384, 65536, 262144, 1048576]
        )

        # Rejections
        self.rejections_total = Counter(
            "remotedb_rejections_total",
            "Requests rejected before or during execution",
            ["reason"]
        )

        # Retention
        self.log_files_deleted_total = Counter(
            "remotedb_log_files_deleted_total",
            "Log files removed by the retention sweep"
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds"
        )

        # Track start time for uptime calculation
        self._start_time = time.time()

    def record_query(self, tier: str, duration_seconds: float, response_bytes: int) -> None:
        """Record a successful query."""
        self.queries_total.labels(tier=tier, status="ok").inc()
        self.query_duration.labels(tier=tier).observe(duration_seconds)
        self.response_size_bytes.observe(response_bytes)

    def record_rejection(self, reason: str, tier: Optional[str] = None) -> None:
        """Record a request that ended in an error response."""
        self.rejections_total.labels(reason=reason).inc()
        if tier is not None:
            self.queries_total.labels(tier=tier, status="error").inc()

    def record_log_cleanup(self, deleted: int) -> None:
        self.log_files_deleted_total.inc(deleted)

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
