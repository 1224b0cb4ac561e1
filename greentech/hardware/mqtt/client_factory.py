"""
Helpers for constructing MQTT clients that work across paho-mqtt 1.x and 2.x.

The 2.x releases add a callback API version flag; we use the legacy v3.1.1
callback signatures (``on_connect(client, userdata, flags, rc)``) while
remaining compatible with older installations that do not expose the enum.

Broker URLs are parsed here as well so that a bad URL fails before any client
or thread is created.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlsplit

import paho.mqtt.client as mqtt

from greentech.domain.exceptions import ConfigurationError

# scheme -> (transport, tls, default port)
_SCHEMES: Dict[str, tuple] = {
    "mqtt": ("tcp", False, 1883),
    "tcp": ("tcp", False, 1883),
    "mqtts": ("tcp", True, 8883),
    "ssl": ("tcp", True, 8883),
    "ws": ("websockets", False, 9001),
    "wss": ("websockets", True, 443),
}

DEFAULT_WS_PATH = "/mqtt"


@dataclass(frozen=True)
class BrokerEndpoint:
    """Resolved broker address."""

    scheme: str
    host: str
    port: int
    transport: str = "tcp"
    use_tls: bool = False
    path: str = ""
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def display(self) -> str:
        """Address without credentials, safe for logs."""
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"


def parse_broker_url(url: Optional[str]) -> BrokerEndpoint:
    """
    Parse ``mqtt://``, ``tcp://``, ``mqtts://``, ``ssl://``, ``ws://`` or
    ``wss://`` broker URLs.

    Raises:
        ConfigurationError: empty URL, unknown scheme, missing host or bad port.
    """
    raw = (url or "").strip()
    if not raw:
        raise ConfigurationError("MQTT broker URL is empty")

    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise ConfigurationError(
            f"Unsupported MQTT URL scheme {parts.scheme!r} in {raw!r}; "
            f"expected one of {sorted(_SCHEMES)}"
        )
    if not parts.hostname:
        raise ConfigurationError(f"MQTT broker URL has no host: {raw!r}")

    transport, use_tls, default_port = _SCHEMES[scheme]
    try:
        port = parts.port or default_port
    except ValueError:
        raise ConfigurationError(f"MQTT broker URL has an invalid port: {raw!r}") from None

    path = ""
    if transport == "websockets":
        path = parts.path or DEFAULT_WS_PATH

    return BrokerEndpoint(
        scheme=scheme,
        host=parts.hostname,
        port=port,
        transport=transport,
        use_tls=use_tls,
        path=path,
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password else None,
    )


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build an MQTT client that is forward-compatible with paho-mqtt 2.x and
    gracefully degrades when running with 1.x.

    Args:
        client_id: Optional client identifier.
        kwargs: Extra keyword arguments forwarded to the client constructor
            (``transport="websockets"`` for ws/wss brokers).
    """
    client_kwargs: Dict[str, Any] = {"client_id": client_id or ""}

    # Keep MQTT v3.1.1 protocol by default for broker compatibility.
    client_kwargs["protocol"] = kwargs.pop("protocol", getattr(mqtt, "MQTTv311", 4))
    client_kwargs.update(kwargs)

    callback_api_version = getattr(mqtt, "CallbackAPIVersion", None)
    if callback_api_version:
        api_candidates = ("VERSION1", "V1")
        callback_value = next(
            (getattr(callback_api_version, attr) for attr in api_candidates if hasattr(callback_api_version, attr)),
            None,
        )
        if callback_value is not None:
            client_kwargs["callback_api_version"] = callback_value

    try:
        return mqtt.Client(**client_kwargs)
    except TypeError:
        # Older paho versions do not support callback_api_version; retry with basics.
        client_kwargs.pop("callback_api_version", None)
        return mqtt.Client(**client_kwargs)


def configure_client(
    client: mqtt.Client,
    endpoint: BrokerEndpoint,
    credentials: Optional[tuple] = None,
) -> mqtt.Client:
    """Apply transport path, TLS and credentials for ``endpoint`` to ``client``."""
    if endpoint.transport == "websockets":
        client.ws_set_options(path=endpoint.path)
    if endpoint.use_tls:
        client.tls_set()

    username, password = None, None
    if credentials:
        username, password = credentials[0], credentials[1] if len(credentials) > 1 else None
    elif endpoint.username:
        username, password = endpoint.username, endpoint.password
    if username:
        client.username_pw_set(username, password or None)
    return client
