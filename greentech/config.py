"""
Configuration for the GreenTech telemetry core
==============================================
Runtime settings for the broker link, record store, background jobs and the
optional insight generator. Values come from ``GREENTECH_*`` environment
variables with development-friendly defaults.
Sets up the logging configuration as well.
"""

from __future__ import annotations

import logging
import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from greentech.domain.exceptions import ConfigurationError

SUPPORTED_STORE_BACKENDS = {"sqlite", "supabase"}
SUPPORTED_LLM_PROVIDERS = {"none", "openai"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("GREENTECH_ENV", "development"))
    secret_key: str = field(default_factory=lambda: os.getenv("GREENTECH_SECRET_KEY", "GreenTechDevSecretKey"))

    # Broker link
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("GREENTECH_ENABLE_MQTT", True))
    mqtt_url: str = field(default_factory=lambda: os.getenv("GREENTECH_MQTT_URL", "mqtt://localhost:1883"))
    mqtt_username: str = field(default_factory=lambda: os.getenv("GREENTECH_MQTT_USERNAME", ""))
    mqtt_password: str = field(default_factory=lambda: os.getenv("GREENTECH_MQTT_PASSWORD", ""))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("GREENTECH_MQTT_CLIENT_ID", ""))
    mqtt_keepalive: int = field(default_factory=lambda: _env_int("GREENTECH_MQTT_KEEPALIVE", 60))
    mqtt_reconnect_delay: float = field(default_factory=lambda: _env_float("GREENTECH_MQTT_RECONNECT_DELAY", 5.0))

    # Record store
    store_backend: str = field(default_factory=lambda: os.getenv("GREENTECH_STORE_BACKEND", "sqlite"))
    database_path: str = field(default_factory=lambda: os.getenv("GREENTECH_DATABASE_PATH", "database/greentech.db"))
    supabase_url: str = field(default_factory=lambda: os.getenv("GREENTECH_SUPABASE_URL", ""))
    supabase_key: str = field(default_factory=lambda: os.getenv("GREENTECH_SUPABASE_KEY", ""))
    supabase_access_token: str = field(default_factory=lambda: os.getenv("GREENTECH_SUPABASE_ACCESS_TOKEN", ""))
    supabase_timeout: int = field(default_factory=lambda: _env_int("GREENTECH_SUPABASE_TIMEOUT", 10))

    # Session user (opaque id issued by the external auth flow)
    user_id: str = field(default_factory=lambda: os.getenv("GREENTECH_USER_ID", ""))

    # Background jobs (seconds)
    start_pipeline: bool = field(default_factory=lambda: _env_bool("GREENTECH_START_PIPELINE", True))
    alert_evaluation_interval: int = field(default_factory=lambda: _env_int("GREENTECH_ALERT_EVALUATION_INTERVAL", 5))
    alert_refresh_interval: int = field(default_factory=lambda: _env_int("GREENTECH_ALERT_REFRESH_INTERVAL", 30))
    analytics_save_interval: int = field(default_factory=lambda: _env_int("GREENTECH_ANALYTICS_SAVE_INTERVAL", 60))
    insight_interval: int = field(default_factory=lambda: _env_int("GREENTECH_INSIGHT_INTERVAL", 120))
    history_refresh_interval: int = field(default_factory=lambda: _env_int("GREENTECH_HISTORY_REFRESH_INTERVAL", 300))
    history_limit: int = field(default_factory=lambda: _env_int("GREENTECH_HISTORY_LIMIT", 50))
    live_series_interval: int = field(default_factory=lambda: _env_int("GREENTECH_LIVE_SERIES_INTERVAL", 15))
    live_series_points: int = field(default_factory=lambda: _env_int("GREENTECH_LIVE_SERIES_POINTS", 40))
    alert_fetch_limit: int = field(default_factory=lambda: _env_int("GREENTECH_ALERT_FETCH_LIMIT", 50))
    scheduler_workers: int = field(default_factory=lambda: _env_int("GREENTECH_SCHEDULER_WORKERS", 2))

    # LLM Configuration
    # Provider: "none" (disabled) or "openai"
    llm_provider: str = field(default_factory=lambda: os.getenv("GREENTECH_LLM_PROVIDER", "none"))
    llm_api_key: str = field(default_factory=lambda: os.getenv("GREENTECH_LLM_API_KEY", ""))
    llm_model: str = field(default_factory=lambda: os.getenv("GREENTECH_LLM_MODEL", ""))
    llm_base_url: str = field(default_factory=lambda: os.getenv("GREENTECH_LLM_BASE_URL", ""))
    llm_max_tokens: int = field(default_factory=lambda: _env_int("GREENTECH_LLM_MAX_TOKENS", 400))
    llm_temperature: float = field(default_factory=lambda: _env_float("GREENTECH_LLM_TEMPERATURE", 0.5))
    llm_timeout: int = field(default_factory=lambda: _env_int("GREENTECH_LLM_TIMEOUT", 30))

    # HTTP API
    api_host: str = field(default_factory=lambda: os.getenv("GREENTECH_API_HOST", "0.0.0.0"))
    api_port: int = field(default_factory=lambda: _env_int("GREENTECH_API_PORT", 5000))

    DEBUG: bool = field(default_factory=lambda: _env_bool("GREENTECH_DEBUG", False))
    log_level: str = field(default_factory=lambda: os.getenv("GREENTECH_LOG_LEVEL", "INFO"))

    _DEFAULT_SECRET_KEY: str = field(default="GreenTechDevSecretKey", init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.store_backend = (self.store_backend or "").strip().lower()
        self.llm_provider = (self.llm_provider or "none").strip().lower()

        if self.store_backend not in SUPPORTED_STORE_BACKENDS:
            raise ConfigurationError(
                f"Unsupported store backend {self.store_backend!r}; "
                f"expected one of {sorted(SUPPORTED_STORE_BACKENDS)}"
            )
        if self.llm_provider not in SUPPORTED_LLM_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported LLM provider {self.llm_provider!r}; "
                f"expected one of {sorted(SUPPORTED_LLM_PROVIDERS)}"
            )
        if self.mqtt_reconnect_delay <= 0:
            raise ConfigurationError("GREENTECH_MQTT_RECONNECT_DELAY must be positive")

        for name in (
            "alert_evaluation_interval",
            "alert_refresh_interval",
            "analytics_save_interval",
            "insight_interval",
            "history_refresh_interval",
            "live_series_interval",
            "live_series_points",
        ):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")

        if self.environment == "production" and self.secret_key == self._DEFAULT_SECRET_KEY:
            raise ConfigurationError(
                "Cannot use the default secret key in production. "
                "Set GREENTECH_SECRET_KEY to a secure random value."
            )

    @property
    def mqtt_credentials(self) -> tuple[str, str] | None:
        if not self.mqtt_username:
            return None
        return self.mqtt_username, self.mqtt_password

    @property
    def ai_enabled(self) -> bool:
        return self.llm_provider != "none"

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "SECRET_KEY": self.secret_key,
            "DATABASE_PATH": self.database_path,
            "STORE_BACKEND": self.store_backend,
            "MQTT_URL": self.mqtt_url,
            "DEBUG": self.DEBUG,
            "JSON_SORT_KEYS": False,
        }


def setup_logging(debug: bool = False, log_level: str | None = None) -> None:
    """Setup logging configuration."""
    import sys
    from logging.handlers import RotatingFileHandler

    if debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName((log_level or "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "greentech_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "greentech_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "greentech_console"
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if not has_file:
        os.makedirs("logs", exist_ok=True)
        file_handler = RotatingFileHandler(
            "logs/greentech.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "greentech_file"
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"greentech_console", "greentech_file"}:
            handler.setLevel(level)

    # Broker traffic goes to its own rotating file so it cannot drown the main log
    mqtt_logger = logging.getLogger("greentech.mqtt")
    if not any(getattr(h, "name", "") == "greentech_mqtt_file" for h in mqtt_logger.handlers):
        mqtt_handler = RotatingFileHandler(
            "logs/mqtt.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        mqtt_handler.name = "greentech_mqtt_file"
        mqtt_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        mqtt_logger.addHandler(mqtt_handler)
        mqtt_logger.setLevel(logging.DEBUG if debug else logging.INFO)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(level))

    if _env_bool("GREENTECH_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config(**overrides: Any) -> AppConfig:
    """Helper for callers to load and validate configuration."""
    logger = logging.getLogger("config_loader")
    config = AppConfig(**overrides)

    if config.store_backend == "supabase" and not (config.supabase_url and config.supabase_key):
        raise ConfigurationError("Supabase store selected but GREENTECH_SUPABASE_URL/KEY are not set")
    if config.ai_enabled and not config.llm_api_key:
        logger.warning("LLM provider %s configured without an API key; insights disabled", config.llm_provider)
        config.llm_provider = "none"
    if not config.user_id:
        logger.info("No GREENTECH_USER_ID set; analytics and alerts will not be persisted")

    return config
