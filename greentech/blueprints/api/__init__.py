from greentech.blueprints.api.alerts import alerts_api
from greentech.blueprints.api.analytics import analytics_api
from greentech.blueprints.api.telemetry import telemetry_api

__all__ = ["alerts_api", "analytics_api", "telemetry_api"]
