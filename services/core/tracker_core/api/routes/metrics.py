"""Metrics API routes for observability.

Provides endpoints for:
- GET /metrics - Pipeline metrics recorded by this process
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from tracker_core.api.routes.cron import verify_cron_secret
from tracker_core.observability.metrics import MetricsCollector, get_collector

router = APIRouter(tags=["metrics"])


def get_metrics_collector() -> MetricsCollector:
    return get_collector()


@router.get("/metrics", dependencies=[Depends(verify_cron_secret)])
async def get_metrics(
    collector: MetricsCollector = Depends(get_metrics_collector),
) -> dict[str, Any]:
    """Get all metrics (requires the cron secret when one is configured).

    Returns counters (lock outcomes, sources and items fetched, visibility
    rows created, failed runs), gauges (last run time) and histograms
    (run duration).
    """
    return {
        "collected_at": datetime.now(timezone.utc).isoformat(),
        "service": "tracker-core",
        "application": collector.get_all(),
    }
