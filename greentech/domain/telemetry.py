"""
Telemetry Domain Objects
========================

Typed view of the greenhouse controller's topic set and the sensor state it
feeds.

The controller publishes one value per topic. Each topic is mapped to exactly
one ``SensorState`` field through a parser table keyed by :class:`Topic`; the
table is checked for completeness at import time so adding a topic without a
parser fails loudly instead of silently dropping messages.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from greentech.domain.exceptions import ValidationError
from greentech.enums.common import ConnectionPhase, OperatingMode
from greentech.utils.time import utc_now

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    """Broker topics exchanged with the greenhouse controller (case-sensitive)."""

    TEMPERATURE = "greenhouse/temperature"
    HUMIDITY = "greenhouse/humidity"
    SOIL_MOISTURE = "greenhouse/soilMoisturePercent"
    MODE = "greenhouse/mode"
    IRRIGATION = "greenhouse/irrigation"
    VENTILATION = "greenhouse/ventilation"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_wire(cls, topic: Any) -> Optional["Topic"]:
        """Resolve a raw topic string; unknown topics return None."""
        if isinstance(topic, cls):
            return topic
        try:
            return cls(str(topic))
        except ValueError:
            return None

    @property
    def is_control(self) -> bool:
        return self in _CONTROL_TOPICS


_CONTROL_TOPICS = frozenset({Topic.MODE, Topic.IRRIGATION, Topic.VENTILATION})

SENSOR_FIELDS: Tuple[str, ...] = ("temperature", "humidity", "soil_moisture")


# ---------------------------------------------------------------------------
# Payload parsers
# ---------------------------------------------------------------------------

def _decode(payload: Any) -> str:
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode("utf-8")
    return str(payload).strip()


def _parse_temperature(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"non-finite temperature {text!r}")
    return value


def _parse_humidity(text: str) -> float:
    value = float(text)
    if not math.isfinite(value) or not 0.0 <= value <= 100.0:
        raise ValueError(f"humidity out of range: {text!r}")
    return value


def _parse_soil_moisture(text: str) -> int:
    # The controller sends whole percentages but some firmware revisions append
    # a fractional part; truncate like an integer parse would.
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"non-finite soil moisture {text!r}")
    percent = int(value)
    if not 0 <= percent <= 100:
        raise ValueError(f"soil moisture out of range: {text!r}")
    return percent


def _literal(vocabulary: Dict[str, Any]) -> Callable[[str], Any]:
    def parse(text: str) -> Any:
        try:
            return vocabulary[text]
        except KeyError:
            raise ValueError(f"expected one of {sorted(vocabulary)}, got {text!r}") from None

    return parse


_MODE_WORDS = {"AUTO": OperatingMode.AUTO, "MANUAL": OperatingMode.MANUAL}
_IRRIGATION_WORDS = {"ON": True, "OFF": False}
_VENTILATION_WORDS = {"OPEN": True, "CLOSE": False}

# Topic -> (SensorState field, parser)
_PARSERS: Dict[Topic, Tuple[str, Callable[[str], Any]]] = {
    Topic.TEMPERATURE: ("temperature", _parse_temperature),
    Topic.HUMIDITY: ("humidity", _parse_humidity),
    Topic.SOIL_MOISTURE: ("soil_moisture", _parse_soil_moisture),
    Topic.MODE: ("mode", _literal(_MODE_WORDS)),
    Topic.IRRIGATION: ("irrigation", _literal(_IRRIGATION_WORDS)),
    Topic.VENTILATION: ("ventilation", _literal(_VENTILATION_WORDS)),
}

_unmapped = set(Topic) - set(_PARSERS)
if _unmapped:
    raise RuntimeError(f"Topics without a payload parser: {sorted(t.value for t in _unmapped)}")


def parse_payload(topic: Topic, payload: Any) -> Tuple[str, Any]:
    """
    Parse a raw payload for ``topic``.

    Returns:
        ``(field_name, value)`` for the SensorState field the topic feeds.

    Raises:
        ValueError: if the payload cannot be decoded into the field's type.
    """
    field_name, parser = _PARSERS[topic]
    try:
        text = _decode(payload)
    except UnicodeDecodeError as exc:
        raise ValueError(f"payload is not valid UTF-8: {exc}") from exc
    return field_name, parser(text)


# ---------------------------------------------------------------------------
# Sensor state
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SensorState:
    """
    Immutable snapshot of the latest controller readings.

    Fields keep their defaults (0 / AUTO / off) until a message for them
    arrives; ``received`` records which fields have had one so that "no data
    yet" can be told apart from a genuine zero reading.
    """

    temperature: float = 0.0
    humidity: float = 0.0
    soil_moisture: int = 0
    mode: OperatingMode = OperatingMode.AUTO
    irrigation: bool = False
    ventilation: bool = False
    received: FrozenSet[str] = frozenset()
    updated_at: Optional[datetime] = None

    def has_reading(self, field_name: str) -> bool:
        return field_name in self.received

    @property
    def is_complete(self) -> bool:
        """True once every numeric sensor has reported at least once."""
        return all(name in self.received for name in SENSOR_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "soil_moisture": self.soil_moisture,
            "mode": self.mode.value,
            "irrigation": "ON" if self.irrigation else "OFF",
            "ventilation": "OPEN" if self.ventilation else "CLOSE",
            "received": sorted(self.received),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SensorStateStore:
    """
    Lock-guarded owner of the live :class:`SensorState`.

    The MQTT network thread is the single writer (via :meth:`apply`); any other
    thread reads through :meth:`snapshot`, which hands out the current frozen
    instance.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = SensorState()
        self.rejected_payloads = 0

    def snapshot(self) -> SensorState:
        with self._lock:
            return self._state

    def apply(self, topic: Topic, payload: Any) -> bool:
        """
        Apply one inbound message.

        Unparsable payloads leave the previous value in place and are counted;
        the other fields are never touched.

        Returns:
            True if the field was updated, False if the payload was rejected.
        """
        try:
            field_name, value = parse_payload(topic, payload)
        except ValueError as exc:
            with self._lock:
                self.rejected_payloads += 1
            logger.warning("Ignoring payload on %s: %s", topic.value, exc)
            return False

        with self._lock:
            self._state = replace(
                self._state,
                **{field_name: value},
                received=self._state.received | {field_name},
                updated_at=utc_now(),
            )
        return True

    def reset(self) -> None:
        with self._lock:
            self._state = SensorState()
            self.rejected_payloads = 0


# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------

@dataclass
class ConnectionState:
    """
    Liveness of the broker link.

    Mutated only by the connection manager; callers receive copies via
    :meth:`copy`.
    """

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    last_connected_at: Optional[datetime] = None
    connection_attempts: int = 0

    @property
    def is_connected(self) -> bool:
        return self.phase == ConnectionPhase.CONNECTED

    def mark_connecting(self) -> None:
        self.phase = ConnectionPhase.CONNECTING
        self.connection_attempts += 1

    def mark_connected(self) -> None:
        self.phase = ConnectionPhase.CONNECTED
        self.last_error = None
        self.last_error_at = None
        self.last_connected_at = utc_now()

    def mark_disconnected(self) -> None:
        self.phase = ConnectionPhase.DISCONNECTED

    def record_error(self, error: Any) -> None:
        self.last_error = str(error)
        self.last_error_at = utc_now()

    def copy(self) -> "ConnectionState":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_connected_at": self.last_connected_at.isoformat() if self.last_connected_at else None,
            "connection_attempts": self.connection_attempts,
        }


# ---------------------------------------------------------------------------
# Outbound commands
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PendingCommand:
    """An outbound message waiting for the link to come back."""

    topic: Topic
    payload: str
    queued_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic.value,
            "payload": self.payload,
            "queued_at": self.queued_at.isoformat(),
        }


def build_command(topic: Any, payload: Any) -> PendingCommand:
    """
    Validate an outbound command and normalise it.

    Control topics accept only their literal vocabulary (``AUTO|MANUAL``,
    ``ON|OFF``, ``OPEN|CLOSE``); sensor topics accept anything their inbound
    parser would accept.

    Raises:
        ValidationError: unknown topic or payload outside the vocabulary.
    """
    resolved = Topic.from_wire(topic)
    if resolved is None:
        raise ValidationError(f"Unknown topic: {topic!r}", detail={"topic": str(topic)})

    if isinstance(payload, Enum):
        payload = payload.value
    text = _decode(payload) if payload is not None else ""
    try:
        parse_payload(resolved, text)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid payload for {resolved.value}: {exc}",
            detail={"topic": resolved.value, "payload": text},
        ) from exc
    return PendingCommand(topic=resolved, payload=text)


def irrigation_word(on: bool) -> str:
    return "ON" if on else "OFF"


def ventilation_word(open_: bool) -> str:
    return "OPEN" if open_ else "CLOSE"
