"""
Telemetry API
=============

Live controller state and outbound commands.

- GET  /api/telemetry/                 latest snapshot, link state, queued commands
- POST /api/telemetry/commands         {"topic": "greenhouse/irrigation", "payload": "ON"}
- POST /api/telemetry/emergency-stop   MANUAL mode, irrigation OFF, ventilation CLOSE
"""
from __future__ import annotations

import logging

from flask import Blueprint
from pydantic import ValidationError

from greentech.blueprints.api._common import fail, get_json, get_telemetry, success
from greentech.schemas.insights import CommandRequest
from greentech.utils.http import safe_route

logger = logging.getLogger(__name__)

telemetry_api = Blueprint("telemetry_api", __name__)


def _telemetry_payload(telemetry) -> dict:
    return {
        "sensors": telemetry.snapshot().to_dict(),
        "connection": telemetry.connection_state.to_dict(),
        "pending_commands": [command.to_dict() for command in telemetry.pending_commands],
    }


@telemetry_api.get("/")
@safe_route("Failed to get telemetry")
def get_telemetry_state():
    """Latest sensor snapshot plus connection state."""
    return success(_telemetry_payload(get_telemetry()))


@telemetry_api.get("/health")
@safe_route("Failed to get link health")
def get_link_health():
    return success(get_telemetry().health())


@telemetry_api.post("/commands")
@safe_route("Failed to send command")
def send_command():
    """
    Publish a control command, or queue it while the link is down.

    Request body:
    - topic: one of the greenhouse/* topics
    - payload: literal value (AUTO|MANUAL, ON|OFF, OPEN|CLOSE)
    """
    try:
        body = CommandRequest(**get_json())
    except ValidationError as ve:
        return fail("Invalid request", 400, details={"errors": ve.errors(include_url=False)})

    telemetry = get_telemetry()
    queued = not telemetry.send(body.topic, body.payload)
    logger.info("Command %s=%s %s", body.topic, body.payload, "queued" if queued else "sent")
    return success(
        {"topic": body.topic, "payload": body.payload, "queued": queued},
        202 if queued else 200,
    )


@telemetry_api.post("/emergency-stop")
@safe_route("Failed to issue emergency stop")
def emergency_stop():
    telemetry = get_telemetry()
    telemetry.emergency_stop()
    logger.warning("Emergency stop requested via API")
    return success(_telemetry_payload(telemetry), message="Emergency stop issued")
