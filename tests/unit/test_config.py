import os

import pytest

from greentech import create_app
from greentech.config import AppConfig, load_config, setup_logging
from greentech.domain.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("GREENTECH_"):
            monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = AppConfig()

    assert config.store_backend == "sqlite"
    assert config.llm_provider == "none"
    assert config.alert_evaluation_interval == 5
    assert config.analytics_save_interval == 60
    assert config.insight_interval == 120
    assert config.live_series_interval == 15
    assert config.live_series_points == 40
    assert config.mqtt_credentials is None
    assert not config.ai_enabled


def test_values_are_normalized():
    config = AppConfig(store_backend=" SQLite ", llm_provider="OpenAI")

    assert config.store_backend == "sqlite"
    assert config.llm_provider == "openai"


@pytest.mark.parametrize(
    "overrides",
    [
        {"store_backend": "mongodb"},
        {"llm_provider": "llama"},
        {"insight_interval": 0},
        {"alert_refresh_interval": -1},
        {"mqtt_reconnect_delay": 0},
        {"live_series_points": 0},
        {"environment": "production"},
    ],
)
def test_invalid_configuration_rejected(overrides):
    with pytest.raises(ConfigurationError):
        AppConfig(**overrides)


def test_production_with_custom_secret():
    config = AppConfig(environment="production", secret_key="a-real-secret")
    assert config.as_flask_config()["SECRET_KEY"] == "a-real-secret"


def test_env_values(monkeypatch):
    monkeypatch.setenv("GREENTECH_MQTT_URL", "mqtts://broker.example.com")
    monkeypatch.setenv("GREENTECH_ENABLE_MQTT", "off")
    monkeypatch.setenv("GREENTECH_ALERT_REFRESH_INTERVAL", "45")
    monkeypatch.setenv("GREENTECH_MQTT_RECONNECT_DELAY", "2.5")

    config = AppConfig()

    assert config.mqtt_url == "mqtts://broker.example.com"
    assert config.enable_mqtt is False
    assert config.alert_refresh_interval == 45
    assert config.mqtt_reconnect_delay == 2.5


def test_bad_env_int(monkeypatch):
    monkeypatch.setenv("GREENTECH_HISTORY_LIMIT", "lots")

    with pytest.raises(ValueError, match="GREENTECH_HISTORY_LIMIT"):
        AppConfig()


def test_mqtt_credentials():
    config = AppConfig(mqtt_username="grower", mqtt_password="secret")
    assert config.mqtt_credentials == ("grower", "secret")


def test_load_config_disables_llm_without_key():
    config = load_config(llm_provider="openai")
    assert config.llm_provider == "none"

    config = load_config(llm_provider="openai", llm_api_key="sk-test")
    assert config.llm_provider == "openai"


def test_load_config_requires_supabase_credentials():
    with pytest.raises(ConfigurationError):
        load_config(store_backend="supabase")


def test_create_app_rejects_unknown_override():
    with pytest.raises(KeyError):
        create_app({"not_a_setting": True})


def test_create_app_from_overrides():
    app = create_app(
        {
            "DATABASE_PATH": ":memory:",
            "start_pipeline": False,
            "enable_mqtt": False,
            "user_id": "user-1",
        }
    )
    container = app.config["CONTAINER"]
    try:
        assert app.config["STORE_BACKEND"] == "sqlite"
        assert container.config.database_path == ":memory:"
        assert container.pipeline is not None
        assert not container.pipeline.is_running
        assert app.test_client().get("/status/").status_code == 200
    finally:
        container.shutdown()


def test_annotations_are_not_evaluated_at_import():
    # PEP 604 unions in signatures must stay strings on Python 3.9
    assert isinstance(AppConfig.mqtt_credentials.fget.__annotations__["return"], str)
    assert isinstance(setup_logging.__annotations__["log_level"], str)
