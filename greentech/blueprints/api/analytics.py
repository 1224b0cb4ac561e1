"""
Analytics API
=============

- GET  /api/analytics/           scores for the latest snapshot (AI insight applied when present)
- GET  /api/analytics/history    stored score snapshots, newest first (?limit=)
- GET  /api/analytics/series     chart series: stored snapshots oldest first, then live samples
- POST /api/analytics/insight    request a fresh AI insight now
"""
from __future__ import annotations

import logging

from flask import Blueprint

from greentech.blueprints.api._common import fail, get_analytics_service, get_limit, success
from greentech.utils.http import safe_route

logger = logging.getLogger(__name__)

analytics_api = Blueprint("analytics_api", __name__)


@analytics_api.get("/")
@safe_route("Failed to compute analytics")
def get_current_analytics():
    service = get_analytics_service()
    return success(service.current().to_dict())


@analytics_api.get("/history")
@safe_route("Failed to get analytics history")
def get_analytics_history():
    service = get_analytics_service()
    limit = get_limit(service.history_limit, service.history_limit)
    snapshots = service.history()[:limit]
    return success({"snapshots": [s.to_dict() for s in snapshots], "count": len(snapshots)})


@analytics_api.get("/series")
@safe_route("Failed to get analytics series")
def get_analytics_series():
    points = get_analytics_service().series()
    return success(
        {
            "points": [p.to_dict() for p in points],
            "count": len(points),
            "live_count": sum(1 for p in points if p.live),
        }
    )


@analytics_api.post("/insight")
@safe_route("Failed to refresh insight")
def refresh_insight():
    service = get_analytics_service()
    if not service.insights_enabled:
        return fail("AI insights are not configured", 409)
    insight = service.refresh_insight(force=True)
    return success(
        {
            "insight": insight.model_dump(mode="json") if insight is not None else None,
            "analytics": service.current().to_dict(),
        }
    )
