from greentech.hardware.mqtt.client_factory import BrokerEndpoint, create_mqtt_client, parse_broker_url
from greentech.hardware.mqtt.telemetry_client import LinkHealth, TelemetryConnectionManager

__all__ = [
    "BrokerEndpoint",
    "LinkHealth",
    "TelemetryConnectionManager",
    "create_mqtt_client",
    "parse_broker_url",
]
