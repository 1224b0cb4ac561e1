"""
Alerts API
==========

- GET  /api/alerts/                  live alerts then stored alerts, with counters
- GET  /api/alerts/summary           counters only
- POST /api/alerts/<id>/resolve      live: hide until the condition clears; stored: resolve + read
- POST /api/alerts/<id>/dismiss      same store effect as resolve
- POST /api/alerts/<id>/read         mark as read
"""
from __future__ import annotations

import logging

from flask import Blueprint

from greentech.blueprints.api._common import get_alert_service, success
from greentech.utils.http import safe_route

logger = logging.getLogger(__name__)

alerts_api = Blueprint("alerts_api", __name__)


def _alerts_payload(service) -> dict:
    alerts = service.list_alerts()
    return {
        "alerts": [alert.to_dict() for alert in alerts],
        "count": len(alerts),
        "unread_count": sum(1 for alert in alerts if not alert.is_read),
        "critical_count": sum(1 for alert in alerts if alert.is_critical_unresolved),
    }


@alerts_api.get("/")
@safe_route("Failed to list alerts")
def list_alerts():
    return success(_alerts_payload(get_alert_service()))


@alerts_api.get("/summary")
@safe_route("Failed to get alert summary")
def alert_summary():
    return success(get_alert_service().summary())


@alerts_api.post("/<alert_id>/resolve")
@safe_route("Could not update alert")
def resolve_alert(alert_id: str):
    service = get_alert_service()
    service.resolve(alert_id)
    return success(_alerts_payload(service), message="Alert resolved")


@alerts_api.post("/<alert_id>/dismiss")
@safe_route("Could not update alert")
def dismiss_alert(alert_id: str):
    service = get_alert_service()
    service.dismiss(alert_id)
    return success(_alerts_payload(service), message="Alert dismissed")


@alerts_api.post("/<alert_id>/read")
@safe_route("Could not update alert")
def mark_alert_read(alert_id: str):
    service = get_alert_service()
    service.mark_read(alert_id)
    return success(_alerts_payload(service))
