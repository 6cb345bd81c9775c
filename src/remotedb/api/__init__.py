"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /api/remotedb - Remote query endpoint
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
- /v1/admin/* - Log cleanup and status
"""
from .admin import router as admin_router
from .healthz import router as healthz_router
from .metrics import router as metrics_router
from .query import router as query_router

__all__ = ["admin_router", "healthz_router", "metrics_router", "query_router"]
