from __future__ import annotations

from flask import Blueprint, current_app

from greentech.utils.http import success_response

status_bp = Blueprint("status", __name__)


@status_bp.get("/")
def status():
    container = current_app.config.get("CONTAINER")
    data = {"status": "ok"}
    if container is not None:
        data["mqtt"] = container.telemetry.connection_state.to_dict()
        data["store"] = container.store.name
        data["analytics"] = container.analytics_service.status()
        data["pipeline"] = container.pipeline.status() if container.pipeline is not None else None
    return success_response(data)
