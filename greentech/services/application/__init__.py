from greentech.services.application.alert_service import AlertService
from greentech.services.application.analytics_service import AnalyticsService

__all__ = ["AlertService", "AnalyticsService"]
