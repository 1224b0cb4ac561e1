"""
    Connection manager for the greenhouse controller's MQTT link.

    Owns the single broker connection of the process: a supervisor thread
    connects, drives the paho network loop and reconnects after a fixed delay
    for as long as the manager is running. Inbound messages update the
    lock-guarded sensor state; outbound commands are published at QoS 1 or,
    while the link is down, queued and flushed in submission order as soon as
    the broker acknowledges the next connection.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional

import paho.mqtt.client as mqtt

from greentech.domain.telemetry import (
    ConnectionState,
    PendingCommand,
    SensorState,
    SensorStateStore,
    Topic,
    build_command,
    irrigation_word,
    ventilation_word,
)
from greentech.enums.common import ConnectionPhase, OperatingMode
from greentech.hardware.mqtt.client_factory import (
    BrokerEndpoint,
    configure_client,
    create_mqtt_client,
    parse_broker_url,
)

_mqtt_logger = logging.getLogger("greentech.mqtt")

QOS = 1
DEFAULT_RECONNECT_DELAY = 5.0


@dataclass
class LinkHealth:
    """
    Counters describing the health of the broker link.
    """

    successful_publishes: int = 0
    failed_publishes: int = 0
    queued_commands: int = 0
    flushed_commands: int = 0
    active_subscriptions: int = 0
    unknown_topics: int = 0

    @property
    def success_rate(self) -> float:
        """Calculate publish success rate percentage"""
        total_publishes = self.successful_publishes + self.failed_publishes
        if total_publishes == 0:
            return 0.0
        return (self.successful_publishes / total_publishes) * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "queued_commands": self.queued_commands,
            "flushed_commands": self.flushed_commands,
            "active_subscriptions": self.active_subscriptions,
            "unknown_topics": self.unknown_topics,
            "publish_success_rate": round(self.success_rate, 2),
        }


class TelemetryConnectionManager:
    """
    Single supervised connection to the greenhouse broker.

    Public lifecycle is :meth:`connect` / :meth:`disconnect`; neither blocks
    on the network. Transport failures never raise: they are recorded in
    :attr:`connection_state` and retried after ``reconnect_delay`` seconds.
    """

    def __init__(
        self,
        *,
        client_id: str = "",
        keepalive: int = 60,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        loop_timeout: float = 1.0,
        client_factory: Optional[Callable[..., mqtt.Client]] = None,
    ):
        """
        Args:
            client_id: MQTT client identifier; empty lets the broker assign one.
            keepalive: Keepalive interval in seconds.
            reconnect_delay: Fixed delay between connection attempts.
            loop_timeout: Max seconds one network-loop iteration may block.
            client_factory: Builds paho clients; defaults to ``create_mqtt_client``.
        """
        self.client_id = client_id
        self.keepalive = keepalive
        self.reconnect_delay = reconnect_delay
        self.loop_timeout = loop_timeout
        self._client_factory = client_factory

        self._sensors = SensorStateStore()
        self._connection = ConnectionState()
        self._health = LinkHealth()
        self._state_lock = threading.Lock()

        # send() and the reconnect flush share this lock so flush order is submission order
        self._command_lock = threading.RLock()
        self._pending: Deque[PendingCommand] = deque()

        self._client: Optional[mqtt.Client] = None
        self._endpoint: Optional[BrokerEndpoint] = None
        self._credentials: Optional[tuple] = None
        self._stop_event = threading.Event()
        self._supervisor: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> SensorState:
        """Immutable copy of the latest sensor readings."""
        return self._sensors.snapshot()

    @property
    def connection_state(self) -> ConnectionState:
        with self._state_lock:
            return self._connection.copy()

    @property
    def is_connected(self) -> bool:
        with self._state_lock:
            return self._connection.is_connected

    @property
    def pending_commands(self) -> List[PendingCommand]:
        with self._command_lock:
            return list(self._pending)

    @property
    def endpoint(self) -> Optional[BrokerEndpoint]:
        return self._endpoint

    @property
    def is_running(self) -> bool:
        thread = self._supervisor
        return thread is not None and thread.is_alive()

    def health(self) -> Dict[str, Any]:
        """Connection state, publish counters and queue depth as a dict."""
        with self._state_lock:
            status = self._connection.to_dict()
            counters = self._health.to_dict()
        with self._command_lock:
            pending = len(self._pending)
        status.update(counters)
        status.update(
            {
                "endpoint": self._endpoint.display if self._endpoint else None,
                "pending_commands": pending,
                "rejected_payloads": self._sensors.rejected_payloads,
                "supervisor_running": self.is_running,
            }
        )
        return status

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, url: str, credentials: Optional[tuple] = None) -> None:
        """
        Start the supervised connection to ``url``.

        Raises:
            ConfigurationError: the URL is empty or uses an unsupported scheme.
        """
        endpoint = parse_broker_url(url)

        if self.is_running:
            if endpoint == self._endpoint and credentials == self._credentials:
                _mqtt_logger.debug("connect() ignored: already supervising %s", endpoint.display)
                return
            _mqtt_logger.info("Switching MQTT broker from %s to %s", self._endpoint.display, endpoint.display)
            self._stop_supervisor()

        self._configure(endpoint, credentials)
        self._supervisor = threading.Thread(
            target=self._supervise,
            name="mqtt-supervisor",
            daemon=True,
        )
        self._supervisor.start()

    def disconnect(self) -> None:
        """
        Stop the supervisor, close the link and drop queued commands.

        Safe to call any number of times.
        """
        self._stop_supervisor()
        with self._command_lock:
            dropped = len(self._pending)
            self._pending.clear()
        if dropped:
            _mqtt_logger.info("Dropped %s queued command(s) on disconnect", dropped)

    def _configure(self, endpoint: BrokerEndpoint, credentials: Optional[tuple]) -> None:
        self._endpoint = endpoint
        self._credentials = credentials
        self._stop_event = threading.Event()
        with self._state_lock:
            self._connection.phase = ConnectionPhase.CONNECTING

    def _stop_supervisor(self) -> None:
        self._stop_event.set()
        thread = self._supervisor
        self._supervisor = None
        self._teardown_client()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.reconnect_delay + self.loop_timeout + 5.0)
            if thread.is_alive():
                _mqtt_logger.warning("MQTT supervisor did not stop within timeout")
        with self._state_lock:
            was_connected = self._connection.is_connected
            self._connection.mark_disconnected()
            self._health.active_subscriptions = 0
        if was_connected:
            _mqtt_logger.info("Disconnected from MQTT broker.")

    # ------------------------------------------------------------------
    # Supervisor
    # ------------------------------------------------------------------

    def _supervise(self) -> None:
        stop_event = self._stop_event
        _mqtt_logger.info("MQTT supervisor started for %s", self._endpoint.display if self._endpoint else "?")
        try:
            while not stop_event.is_set():
                if not self._run_once():
                    stop_event.wait(self.reconnect_delay)
        except Exception as e:
            # Keep the manager consistent if something unexpected escapes paho
            _mqtt_logger.error("MQTT supervisor crashed: %s", e, exc_info=True)
            with self._state_lock:
                self._connection.record_error(e)
                self._connection.mark_disconnected()
        finally:
            _mqtt_logger.info("MQTT supervisor stopped")

    def _run_once(self) -> bool:
        """
        One supervisor step: open the link if needed, otherwise run one
        network-loop iteration.

        Returns:
            False when the link failed and the caller should wait
            ``reconnect_delay`` before the next step.
        """
        client = self._client
        if client is None:
            return self._open_link()

        rc = client.loop(timeout=self.loop_timeout)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            self._handle_link_loss(client, rc)
            return False
        return True

    def _open_link(self) -> bool:
        endpoint = self._endpoint
        if endpoint is None:
            return False

        with self._state_lock:
            self._connection.mark_connecting()
            attempt = self._connection.connection_attempts

        try:
            client = self._build_client(endpoint)
            client.connect(endpoint.host, endpoint.port, self.keepalive)
        except Exception as e:
            with self._state_lock:
                self._connection.record_error(e)
                self._connection.mark_disconnected()
            _mqtt_logger.warning(
                "MQTT connection attempt %s to %s failed: %s (retrying in %ss)",
                attempt,
                endpoint.display,
                e,
                self.reconnect_delay,
            )
            return False

        with self._command_lock:
            stopping = self._stop_event.is_set()
            if not stopping:
                self._client = client
        if stopping:
            self._close_client(client)
            return False
        _mqtt_logger.debug("MQTT socket open to %s, awaiting CONNACK", endpoint.display)
        return True

    def _build_client(self, endpoint: BrokerEndpoint) -> mqtt.Client:
        factory = self._client_factory or create_mqtt_client
        client = factory(client_id=self.client_id, transport=endpoint.transport)
        configure_client(client, endpoint, self._credentials)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_paho_message
        return client

    def _handle_link_loss(self, client: mqtt.Client, rc: int) -> None:
        reason = mqtt.error_string(rc)
        with self._command_lock:
            if self._client is client:
                self._client = None
        if self._stop_event.is_set():
            # Closed by disconnect(); nothing to report
            return
        with self._state_lock:
            # A refused CONNACK already recorded the broker's reason
            if rc != mqtt.MQTT_ERR_CONN_REFUSED:
                self._connection.record_error(f"Connection lost: {reason}")
            self._connection.mark_disconnected()
            self._health.active_subscriptions = 0
        _mqtt_logger.warning("MQTT link lost (%s); reconnecting in %ss", reason, self.reconnect_delay)
        self._close_client(client)

    def _teardown_client(self) -> None:
        with self._command_lock:
            client, self._client = self._client, None
        if client is not None:
            self._close_client(client)

    @staticmethod
    def _close_client(client: mqtt.Client) -> None:
        try:
            client.disconnect()
        except Exception as e:
            _mqtt_logger.debug("Ignoring error while closing MQTT client: %s", e)

    # ------------------------------------------------------------------
    # paho callbacks (network thread)
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, rc) -> None:
        if client is not self._client:
            return
        if rc != 0:
            reason = mqtt.connack_string(rc)
            with self._state_lock:
                self._connection.record_error(f"Broker refused connection: {reason}")
                self._connection.mark_disconnected()
            _mqtt_logger.error("Broker %s refused connection: %s", self._endpoint.display, reason)
            return

        result, _mid = client.subscribe([(topic.value, QOS) for topic in Topic])
        subscribed = len(Topic) if result == mqtt.MQTT_ERR_SUCCESS else 0
        if not subscribed:
            _mqtt_logger.error("Failed to subscribe to greenhouse topics: result code %s", result)

        with self._command_lock:
            with self._state_lock:
                self._connection.mark_connected()
                self._health.active_subscriptions = subscribed
            flushed = self._flush_pending_locked(client)

        _mqtt_logger.info(
            "Connected to MQTT broker %s (subscriptions: %s, flushed commands: %s)",
            self._endpoint.display,
            subscribed,
            flushed,
        )

    def _on_disconnect(self, client, userdata, rc) -> None:
        if client is not self._client:
            return
        with self._state_lock:
            self._connection.mark_disconnected()
            self._health.active_subscriptions = 0
            if rc != 0:
                self._connection.record_error(f"Unexpected disconnect: {mqtt.error_string(rc)}")
        if rc != 0:
            _mqtt_logger.warning("MQTT broker connection dropped (rc=%s)", rc)

    def _on_paho_message(self, client, userdata, msg) -> None:
        self._on_message(msg.topic, msg.payload)

    def _on_message(self, topic: str, payload: Any) -> None:
        """Apply one inbound message to the sensor state. Never raises."""
        try:
            resolved = Topic.from_wire(topic)
            if resolved is None:
                with self._state_lock:
                    self._health.unknown_topics += 1
                _mqtt_logger.debug("Ignoring message on unknown topic %s", topic)
                return
            self._sensors.apply(resolved, payload)
        except Exception as e:
            _mqtt_logger.error("Error handling MQTT message on %s: %s", topic, e, exc_info=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def send(self, topic: Any, payload: Any) -> bool:
        """
        Publish a command, or queue it while the link is down.

        Never blocks on the network and never raises for connectivity.

        Returns:
            True if the command went out now; False if it was queued (link
            down, a failed publish, or older commands still waiting).

        Raises:
            ValidationError: unknown topic or payload outside the topic's vocabulary.
        """
        command = build_command(topic, payload)
        with self._command_lock:
            client = self._client
            if client is not None and self.is_connected and not self._pending:
                if self._publish_locked(client, command):
                    return True
            self._pending.append(command)
            with self._state_lock:
                self._health.queued_commands += 1
        _mqtt_logger.info("Queued %s=%s until the broker link is up", command.topic.value, command.payload)
        return False

    def _publish_locked(self, client: mqtt.Client, command: PendingCommand) -> bool:
        """Publish under ``_command_lock``; False means the link is gone."""
        try:
            info = client.publish(command.topic.value, command.payload, qos=QOS)
        except Exception as e:
            with self._state_lock:
                self._health.failed_publishes += 1
                self._connection.record_error(e)
            _mqtt_logger.error("Error publishing to MQTT: %s", e)
            return False

        if info.rc == mqtt.MQTT_ERR_SUCCESS:
            with self._state_lock:
                self._health.successful_publishes += 1
            _mqtt_logger.debug("Published to %s: %s", command.topic.value, command.payload)
            return True

        with self._state_lock:
            self._health.failed_publishes += 1
        _mqtt_logger.error(
            "Failed to publish to %s: %s. MQTT result code: %s",
            command.topic.value,
            command.payload,
            info.rc,
        )
        return False

    def _flush_pending_locked(self, client: mqtt.Client) -> int:
        flushed = 0
        while self._pending:
            command = self._pending[0]
            if not self._publish_locked(client, command):
                break
            self._pending.popleft()
            flushed += 1
        if flushed:
            with self._state_lock:
                self._health.flushed_commands += flushed
        return flushed

    def set_mode(self, mode: Any) -> bool:
        return self.send(Topic.MODE, mode)

    def set_irrigation(self, on: bool) -> bool:
        return self.send(Topic.IRRIGATION, irrigation_word(on))

    def set_ventilation(self, open_: bool) -> bool:
        return self.send(Topic.VENTILATION, ventilation_word(open_))

    def emergency_stop(self) -> None:
        """Switch to MANUAL, stop irrigation and close ventilation, in that order."""
        _mqtt_logger.warning("Emergency stop requested")
        self.send(Topic.MODE, OperatingMode.MANUAL)
        self.send(Topic.IRRIGATION, irrigation_word(False))
        self.send(Topic.VENTILATION, ventilation_word(False))
