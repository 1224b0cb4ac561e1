"""
Shared test fixtures for the GreenTech telemetry test suite.

Provides:
- In-memory SQLite record store with both tables created
- Repository instances wired to the test store
- A fake paho client factory so the connection manager runs without a broker
- A controllable epoch-seconds clock
- A Flask test client wired to a ServiceContainer built on the fakes

Usage:
    def test_example(telemetry, mqtt_factory, wait_for):
        telemetry.connect("mqtt://broker.test")
        wait_for(lambda: telemetry.is_connected)
"""

from __future__ import annotations

import logging
import os
import sys
import time
from types import SimpleNamespace
from typing import Any, Callable, List

import pytest

# Ensure repository root is on sys.path so tests can import application modules
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import paho.mqtt.client as mqtt

from greentech.config import AppConfig
from greentech.domain.telemetry import ConnectionState, SensorState
from greentech.enums.common import ConnectionPhase
from greentech.hardware.mqtt.telemetry_client import TelemetryConnectionManager
from greentech.infrastructure.repositories.alerts import AlertRepository
from greentech.infrastructure.repositories.analytics import AnalyticsRepository
from greentech.infrastructure.store.sqlite import SQLiteRecordStore

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("greentech").setLevel(logging.WARNING)


# ============================ Helpers ======================================


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMQTTClient:
    """
    Stand-in for ``paho.mqtt.client.Client``.

    ``connect()`` succeeds immediately (or raises when ``fail_connect``); the
    first ``loop()`` call delivers the CONNACK with ``connack_rc``.
    """

    def __init__(self, *, connack_rc: int = 0, fail_connect: bool = False, publish_rc: int = mqtt.MQTT_ERR_SUCCESS):
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.connack_rc = connack_rc
        self.fail_connect = fail_connect
        self.publish_rc = publish_rc
        self.loop_rc = mqtt.MQTT_ERR_SUCCESS

        self.client_id = ""
        self.kwargs: dict = {}
        self.connected_to = None
        self.credentials = None
        self.subscriptions: List[tuple] = []
        self.published: List[tuple] = []
        self.disconnected = False
        self._acked = False

    # --- paho surface -------------------------------------------------------
    def connect(self, host, port, keepalive=60):
        if self.fail_connect:
            raise ConnectionRefusedError("connection refused")
        self.connected_to = (host, port, keepalive)
        return mqtt.MQTT_ERR_SUCCESS

    def loop(self, timeout=1.0):
        if not self._acked:
            self._acked = True
            self.on_connect(self, None, {}, self.connack_rc)
            if self.connack_rc != 0:
                # paho reports a refused CONNACK from the same loop call
                return mqtt.MQTT_ERR_CONN_REFUSED
        time.sleep(0.005)
        return self.loop_rc

    def subscribe(self, topics):
        self.subscriptions.extend(topics)
        return mqtt.MQTT_ERR_SUCCESS, 1

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, payload, qos))
        return SimpleNamespace(rc=self.publish_rc, mid=len(self.published))

    def disconnect(self):
        self.disconnected = True
        return mqtt.MQTT_ERR_SUCCESS

    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def tls_set(self):
        pass

    def ws_set_options(self, path="/mqtt"):
        pass

    # --- test helpers ---------------------------------------------------------
    def deliver(self, topic: str, payload: Any) -> None:
        """Simulate an inbound message on the network thread."""
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))


class FakeClientFactory:
    """Callable passed as ``client_factory``; remembers every client it built."""

    def __init__(self, **client_kwargs: Any):
        self.client_kwargs = client_kwargs
        self.clients: List[FakeMQTTClient] = []

    def __call__(self, client_id: str = "", **kwargs: Any) -> FakeMQTTClient:
        client = FakeMQTTClient(**self.client_kwargs)
        client.client_id = client_id
        client.kwargs = kwargs
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeMQTTClient:
        return self.clients[-1]


def _wait_for(predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    raise AssertionError(f"condition not met within {timeout}s")


# ============================ Basic Fixtures ===============================


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def wait_for():
    """Poll a predicate until it holds; fails the test after the timeout."""
    return _wait_for


@pytest.fixture()
def connected():
    return ConnectionState(phase=ConnectionPhase.CONNECTED)


@pytest.fixture()
def disconnected():
    return ConnectionState()


@pytest.fixture()
def make_state():
    """Build a SensorState where only the given fields count as received."""

    def _make(**values: Any) -> SensorState:
        received = frozenset(name for name in values if name in {"temperature", "humidity", "soil_moisture"})
        return SensorState(received=received, **values)

    return _make


# ========================== Store Fixtures =================================


@pytest.fixture()
def sqlite_store():
    """In-memory SQLite store; each test gets a fresh database."""
    store = SQLiteRecordStore(":memory:")
    yield store
    store.close()


@pytest.fixture()
def alert_repo(sqlite_store):
    return AlertRepository(sqlite_store)


@pytest.fixture()
def analytics_repo(sqlite_store):
    return AnalyticsRepository(sqlite_store)


# ========================== MQTT Fixtures ==================================


@pytest.fixture()
def mqtt_factory():
    return FakeClientFactory()


@pytest.fixture()
def telemetry(mqtt_factory):
    """Connection manager on fake clients with short retry delays."""
    manager = TelemetryConnectionManager(
        client_id="greentech-test",
        reconnect_delay=0.05,
        loop_timeout=0.01,
        client_factory=mqtt_factory,
    )
    yield manager
    manager.disconnect()


@pytest.fixture()
def make_telemetry():
    """Build managers whose fake clients take ``client_kwargs`` (e.g. ``connack_rc=5``)."""
    managers = []

    def _make(**client_kwargs: Any):
        factory = FakeClientFactory(**client_kwargs)
        manager = TelemetryConnectionManager(reconnect_delay=0.05, loop_timeout=0.01, client_factory=factory)
        managers.append(manager)
        return manager, factory

    yield _make
    for manager in managers:
        manager.disconnect()


# ========================== Application Fixtures ===========================


@pytest.fixture()
def app_config():
    return AppConfig(
        environment="testing",
        enable_mqtt=False,
        start_pipeline=False,
        store_backend="sqlite",
        database_path=":memory:",
        user_id="user-1",
        llm_provider="none",
    )


@pytest.fixture()
def container(app_config, sqlite_store, telemetry):
    from greentech.services.container import ServiceContainer

    built = ServiceContainer.build(app_config, store=sqlite_store, telemetry=telemetry)
    yield built
    built.shutdown()


@pytest.fixture()
def app(container):
    from greentech import create_app

    flask_app = create_app(container=container, start_pipeline=False)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture()
def client(app):
    return app.test_client()
