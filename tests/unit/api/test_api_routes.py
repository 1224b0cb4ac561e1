"""
Route tests for the status, telemetry, analytics and alerts blueprints.

Every response uses the {"ok", "data", "error"} envelope.
"""

import paho.mqtt.client as mqtt

from greentech.domain.agronomics import compute_analytics
from greentech.domain.exceptions import StoreError


def _evaluate_alerts(container):
    telemetry = container.telemetry
    container.alert_service.evaluate(telemetry.snapshot(), telemetry.connection_state)


# ==================== Status ====================


def test_status(client):
    resp = client.get("/status/")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["ok"] is True
    assert body["data"]["status"] == "ok"
    assert body["data"]["store"] == "sqlite"
    assert body["data"]["mqtt"]["is_connected"] is False


def test_unknown_api_path_returns_json_404(client):
    resp = client.get("/api/does-not-exist")

    assert resp.status_code == 404
    body = resp.get_json()
    assert body["ok"] is False
    assert body["data"] is None


# ==================== Telemetry ====================


def test_get_telemetry(client):
    resp = client.get("/api/telemetry/")

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["sensors"]["received"] == []
    assert data["connection"]["phase"] == "disconnected"
    assert data["pending_commands"] == []


def test_link_health(client):
    data = client.get("/api/telemetry/health").get_json()["data"]

    assert data["pending_commands"] == 0
    assert data["supervisor_running"] is False


def test_command_is_queued_while_disconnected(client, container):
    resp = client.post("/api/telemetry/commands", json={"topic": "greenhouse/irrigation", "payload": " ON "})

    assert resp.status_code == 202
    data = resp.get_json()["data"]
    assert data == {"topic": "greenhouse/irrigation", "payload": "ON", "queued": True}
    assert [c.payload for c in container.telemetry.pending_commands] == ["ON"]


def test_command_is_published_when_connected(client, container, mqtt_factory, wait_for):
    container.telemetry.connect("mqtt://broker.test")
    wait_for(lambda: container.telemetry.is_connected)

    resp = client.post("/api/telemetry/commands", json={"topic": "greenhouse/ventilation", "payload": "OPEN"})

    assert resp.status_code == 200
    assert resp.get_json()["data"]["queued"] is False
    assert ("greenhouse/ventilation", "OPEN", 1) in mqtt_factory.last.published


def test_command_is_reported_queued_when_publish_fails(client, container, mqtt_factory, wait_for):
    container.telemetry.connect("mqtt://broker.test")
    wait_for(lambda: container.telemetry.is_connected)
    mqtt_factory.last.publish_rc = mqtt.MQTT_ERR_NO_CONN

    first = client.post("/api/telemetry/commands", json={"topic": "greenhouse/irrigation", "payload": "ON"})
    second = client.post("/api/telemetry/commands", json={"topic": "greenhouse/irrigation", "payload": "OFF"})

    assert first.status_code == 202
    assert first.get_json()["data"]["queued"] is True
    # Queued behind the first command even though the link is up
    assert second.status_code == 202
    assert [c.payload for c in container.telemetry.pending_commands] == ["ON", "OFF"]


def test_invalid_command_payload(client):
    resp = client.post("/api/telemetry/commands", json={"topic": "greenhouse/irrigation", "payload": "MAYBE"})

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["ok"] is False
    assert "greenhouse/irrigation" in body["error"]["message"]


def test_unknown_command_topic(client):
    resp = client.post("/api/telemetry/commands", json={"topic": "greenhouse/lights", "payload": "ON"})
    assert resp.status_code == 400


def test_missing_command_body(client):
    resp = client.post("/api/telemetry/commands")

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["ok"] is False
    assert body["error"]["message"] == "Invalid request"
    assert body["details"]["errors"]


def test_emergency_stop_queues_safe_commands(client):
    resp = client.post("/api/telemetry/emergency-stop")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Emergency stop issued"
    pending = [(c["topic"], c["payload"]) for c in body["data"]["pending_commands"]]
    assert pending == [
        ("greenhouse/mode", "MANUAL"),
        ("greenhouse/irrigation", "OFF"),
        ("greenhouse/ventilation", "CLOSE"),
    ]


# ==================== Analytics ====================


def test_current_analytics_without_readings(client):
    resp = client.get("/api/analytics/")

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert 0 <= data["plant_health_score"] <= 100
    assert data["trend"] == "unknown"


def test_analytics_history_limit(client, container):
    for soil in range(10, 80, 10):
        container.analytics_repo.save("user-1", compute_analytics(24.0, 60.0, soil))
    container.analytics_service.refresh_history()

    data = client.get("/api/analytics/history?limit=5").get_json()["data"]

    assert data["count"] == 5
    assert len(data["snapshots"]) == 5
    assert {"plant_health_score", "snapshot", "created_at"} <= set(data["snapshots"][0])


def test_analytics_series_merges_stored_and_live(client, container, mqtt_factory, wait_for):
    container.analytics_repo.save("user-1", compute_analytics(24.0, 60.0, 55))
    container.analytics_service.refresh_history()
    container.telemetry.connect("mqtt://broker.test")
    wait_for(lambda: container.telemetry.is_connected)
    mqtt_factory.last.deliver("greenhouse/temperature", b"26.5")
    container.analytics_service.record_live_point()

    data = client.get("/api/analytics/series").get_json()["data"]

    assert data["count"] == 2
    assert data["live_count"] == 1
    stored, live = data["points"]
    assert stored["live"] is False
    assert stored["temp"] == 24.0
    assert live["live"] is True
    assert live["temp"] == 26.5
    assert live["plant_health_score"] is None


def test_store_failure_returns_generic_500(client, container, monkeypatch):
    def _fail():
        raise StoreError("disk I/O error at /var/lib/greentech/telemetry.db")

    monkeypatch.setattr(container.analytics_service, "series", _fail)

    resp = client.get("/api/analytics/series")

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["ok"] is False
    assert body["error"]["message"] == "An internal error occurred"
    assert "telemetry.db" not in resp.get_data(as_text=True)


def test_insight_refresh_requires_provider(client):
    resp = client.post("/api/analytics/insight")

    assert resp.status_code == 409
    assert resp.get_json()["error"]["message"] == "AI insights are not configured"


# ==================== Alerts ====================


def test_alert_list_includes_live_and_stored(client, container):
    _evaluate_alerts(container)

    data = client.get("/api/alerts/").get_json()["data"]

    ids = [alert["id"] for alert in data["alerts"]]
    assert ids[0] == "live-connection-lost"
    assert ids[1].startswith("store-")
    assert data["count"] == 2
    assert data["unread_count"] == 2
    assert data["critical_count"] == 0


def test_resolve_live_alert(client, container):
    _evaluate_alerts(container)

    resp = client.post("/api/alerts/live-connection-lost/resolve")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["message"] == "Alert resolved"
    ids = [alert["id"] for alert in body["data"]["alerts"]]
    assert "live-connection-lost" not in ids
    assert body["data"]["count"] == 1


def test_resolve_and_read_stored_alert(client, container):
    _evaluate_alerts(container)
    (stored,) = container.alert_service.durable_alerts()

    read = client.post(f"/api/alerts/{stored.id}/read").get_json()["data"]
    assert read["unread_count"] == 1

    client.post(f"/api/alerts/{stored.id}/dismiss")
    (row,) = container.alert_repo.list_for_user("user-1")
    assert row.is_resolved


def test_unknown_alert_returns_404(client):
    resp = client.post("/api/alerts/store-424242/resolve")

    assert resp.status_code == 404
    assert resp.get_json()["ok"] is False


def test_alert_summary(client, container):
    _evaluate_alerts(container)

    data = client.get("/api/alerts/summary").get_json()["data"]

    assert data["live"] == 1
    assert data["stored"] == 1
    assert data["persistence_enabled"] is True
