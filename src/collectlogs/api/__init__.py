"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /v1/cron - Scheduled work trigger (cron secret)
- /v1/admin/* - Settings and convert rule administration
- /metrics - Prometheus metrics
- /healthz, /readyz - Health checks
"""
from .admin import router as admin_router
from .cron import router as cron_router
from .healthz import router as healthz_router
from .metrics import router as metrics_router

__all__ = ["admin_router", "cron_router", "healthz_router", "metrics_router"]
