from greentech.infrastructure.repositories.alerts import AlertRepository
from greentech.infrastructure.repositories.analytics import AnalyticsRepository

__all__ = ["AlertRepository", "AnalyticsRepository"]
