"""
Unit tests for greentech.domain.telemetry.

Tests topic resolution, payload parsing, the sensor state store and outbound
command validation.
"""

import dataclasses

import pytest

from greentech.domain.exceptions import ValidationError
from greentech.domain.telemetry import (
    ConnectionState,
    SensorState,
    SensorStateStore,
    Topic,
    build_command,
    parse_payload,
)
from greentech.enums.common import ConnectionPhase, OperatingMode


class TestTopic:
    def test_from_wire_resolves_known_topics(self):
        assert Topic.from_wire("greenhouse/soilMoisturePercent") is Topic.SOIL_MOISTURE
        assert Topic.from_wire(Topic.MODE) is Topic.MODE

    def test_topics_are_case_sensitive(self):
        assert Topic.from_wire("greenhouse/Temperature") is None
        assert Topic.from_wire("greenhouse/unknown") is None

    def test_control_topics(self):
        assert Topic.IRRIGATION.is_control
        assert not Topic.TEMPERATURE.is_control


class TestParsePayload:
    @pytest.mark.parametrize(
        "topic,payload,expected",
        [
            (Topic.TEMPERATURE, "23.5", ("temperature", 23.5)),
            (Topic.TEMPERATURE, b" -4 ", ("temperature", -4.0)),
            (Topic.HUMIDITY, b"45", ("humidity", 45.0)),
            (Topic.SOIL_MOISTURE, "42", ("soil_moisture", 42)),
            (Topic.SOIL_MOISTURE, "42.7", ("soil_moisture", 42)),
            (Topic.MODE, "MANUAL", ("mode", OperatingMode.MANUAL)),
            (Topic.IRRIGATION, "ON", ("irrigation", True)),
            (Topic.VENTILATION, "CLOSE", ("ventilation", False)),
        ],
    )
    def test_valid_payloads(self, topic, payload, expected):
        assert parse_payload(topic, payload) == expected

    @pytest.mark.parametrize(
        "topic,payload",
        [
            (Topic.TEMPERATURE, "abc"),
            (Topic.TEMPERATURE, "nan"),
            (Topic.HUMIDITY, "120"),
            (Topic.SOIL_MOISTURE, "-3"),
            (Topic.MODE, "auto"),
            (Topic.IRRIGATION, "1"),
            (Topic.VENTILATION, b"\xff\xfe"),
        ],
    )
    def test_invalid_payloads_raise(self, topic, payload):
        with pytest.raises(ValueError):
            parse_payload(topic, payload)


class TestSensorStateStore:
    def test_initial_state_has_no_readings(self):
        state = SensorStateStore().snapshot()

        assert state.temperature == 0.0
        assert state.mode == OperatingMode.AUTO
        assert state.received == frozenset()
        assert not state.is_complete
        assert state.updated_at is None

    def test_apply_updates_only_the_topic_field(self):
        store = SensorStateStore()
        assert store.apply(Topic.HUMIDITY, b"64.5")

        state = store.snapshot()
        assert state.humidity == 64.5
        assert state.temperature == 0.0
        assert state.received == frozenset({"humidity"})
        assert state.has_reading("humidity")
        assert not state.has_reading("temperature")

    def test_rejected_payload_keeps_previous_value(self):
        store = SensorStateStore()
        store.apply(Topic.TEMPERATURE, "21.0")

        assert not store.apply(Topic.TEMPERATURE, "garbage")
        assert store.snapshot().temperature == 21.0
        assert store.rejected_payloads == 1

    def test_last_message_wins(self):
        store = SensorStateStore()
        store.apply(Topic.SOIL_MOISTURE, "40")
        store.apply(Topic.SOIL_MOISTURE, "55")
        assert store.snapshot().soil_moisture == 55

    def test_snapshots_are_immutable(self):
        store = SensorStateStore()
        before = store.snapshot()
        store.apply(Topic.TEMPERATURE, "30")

        assert before.temperature == 0.0
        with pytest.raises(dataclasses.FrozenInstanceError):
            before.temperature = 12.0

    def test_complete_after_all_sensors_report(self):
        store = SensorStateStore()
        store.apply(Topic.TEMPERATURE, "22")
        store.apply(Topic.HUMIDITY, "50")
        assert not store.snapshot().is_complete
        store.apply(Topic.SOIL_MOISTURE, "60")
        assert store.snapshot().is_complete

    def test_reset(self):
        store = SensorStateStore()
        store.apply(Topic.TEMPERATURE, "22")
        store.apply(Topic.TEMPERATURE, "x")
        store.reset()
        assert store.snapshot() == SensorState()
        assert store.rejected_payloads == 0

    def test_to_dict_uses_wire_words(self):
        state = SensorState(irrigation=True, ventilation=False, mode=OperatingMode.MANUAL)
        data = state.to_dict()
        assert data["irrigation"] == "ON"
        assert data["ventilation"] == "CLOSE"
        assert data["mode"] == "MANUAL"


class TestConnectionState:
    def test_connect_clears_previous_error(self):
        state = ConnectionState()
        state.record_error("boom")
        state.mark_connected()

        assert state.is_connected
        assert state.last_error is None
        assert state.last_connected_at is not None

    def test_copy_is_independent(self):
        state = ConnectionState()
        copy = state.copy()
        state.mark_connecting()

        assert copy.phase == ConnectionPhase.DISCONNECTED
        assert copy.connection_attempts == 0
        assert state.connection_attempts == 1


class TestBuildCommand:
    def test_valid_control_command(self):
        command = build_command("greenhouse/irrigation", "ON")
        assert command.topic is Topic.IRRIGATION
        assert command.payload == "ON"

    def test_enum_payload_is_sent_as_its_value(self):
        assert build_command(Topic.MODE, OperatingMode.MANUAL).payload == "MANUAL"

    def test_unknown_topic_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_command("greenhouse/lights", "ON")
        assert exc_info.value.detail["topic"] == "greenhouse/lights"

    @pytest.mark.parametrize(
        "topic,payload",
        [("greenhouse/irrigation", "on"), ("greenhouse/ventilation", "ON"), ("greenhouse/mode", None)],
    )
    def test_payload_outside_vocabulary_rejected(self, topic, payload):
        with pytest.raises(ValidationError):
            build_command(topic, payload)

    def test_sensor_topic_accepts_numeric_payload(self):
        assert build_command(Topic.TEMPERATURE, 21.5).payload == "21.5"
