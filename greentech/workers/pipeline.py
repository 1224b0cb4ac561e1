"""
Telemetry Pipeline: background jobs that keep alerts and analytics current.

Jobs (all fixed-rate, intervals from :class:`AppConfig`):
- alerts.evaluate: derive live alerts from the latest snapshot, persist due ones
- alerts.refresh: reload the user's stored alerts
- analytics.persist: save a score snapshot (the service enforces the save interval)
- analytics.insight: refresh the AI insight (the service enforces the insight interval)
- analytics.history: reload stored score snapshots for the trend
- analytics.series: sample the live readings for the dashboard chart

Usage:
    with TelemetryPipeline.from_container(container) as pipeline:
        ...

The context manager starts the broker connection and the scheduler on entry
and always tears both down on exit.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from greentech.workers.scheduler import IntervalScheduler

if TYPE_CHECKING:
    from greentech.config import AppConfig
    from greentech.hardware.mqtt.telemetry_client import TelemetryConnectionManager
    from greentech.services.application.alert_service import AlertService
    from greentech.services.application.analytics_service import AnalyticsService
    from greentech.services.container import ServiceContainer

logger = logging.getLogger(__name__)


class TelemetryPipeline:
    """Wires the connection manager and application services to the scheduler."""

    def __init__(
        self,
        config: "AppConfig",
        telemetry: "TelemetryConnectionManager",
        alert_service: "AlertService",
        analytics_service: "AnalyticsService",
        *,
        scheduler: Optional[IntervalScheduler] = None,
    ):
        self.config = config
        self.telemetry = telemetry
        self.alert_service = alert_service
        self.analytics_service = analytics_service
        self.scheduler = scheduler or IntervalScheduler(
            max_workers=config.scheduler_workers,
            name="TelemetryScheduler",
        )
        self._started = False

    @classmethod
    def from_container(cls, container: "ServiceContainer") -> "TelemetryPipeline":
        return cls(
            container.config,
            container.telemetry,
            container.alert_service,
            container.analytics_service,
            scheduler=container.scheduler,
        )

    # ==================== Tasks ====================

    def evaluate_alerts(self) -> None:
        self.alert_service.evaluate(self.telemetry.snapshot(), self.telemetry.connection_state)

    def refresh_alerts(self) -> None:
        self.alert_service.refresh()

    def persist_analytics(self) -> None:
        self.analytics_service.persist_snapshot()

    def refresh_insight(self) -> None:
        self.analytics_service.refresh_insight()

    def refresh_history(self) -> None:
        self.analytics_service.refresh_history()

    def sample_series(self) -> None:
        self.analytics_service.record_live_point()

    def register_jobs(self) -> None:
        """Register the default job set, replacing any jobs already scheduled."""
        cfg = self.config
        tick = cfg.alert_evaluation_interval
        self.scheduler.clear_jobs()
        self.scheduler.add_interval_job("alerts.evaluate", self.evaluate_alerts, tick, start_immediately=True)
        self.scheduler.add_interval_job("alerts.refresh", self.refresh_alerts, cfg.alert_refresh_interval)
        # Saving and insights are gated by their own intervals inside the service;
        # checking on every tick saves promptly once the link comes up.
        self.scheduler.add_interval_job("analytics.persist", self.persist_analytics, tick)
        self.scheduler.add_interval_job("analytics.insight", self.refresh_insight, tick)
        self.scheduler.add_interval_job("analytics.history", self.refresh_history, cfg.history_refresh_interval)
        self.scheduler.add_interval_job("analytics.series", self.sample_series, cfg.live_series_interval)

    # ==================== Lifecycle ====================

    def start(self) -> None:
        if self._started:
            logger.warning("Telemetry pipeline already started")
            return

        if self.config.enable_mqtt:
            self.telemetry.connect(self.config.mqtt_url, self.config.mqtt_credentials)
        else:
            logger.info("MQTT disabled, telemetry link not started")

        # Prime caches so the first API reads have history and stored alerts
        self.refresh_history()
        self.refresh_alerts()

        self.register_jobs()
        self.scheduler.start()
        self._started = True
        logger.info("Telemetry pipeline started")

    def stop(self) -> None:
        """Cancel every job and close the broker link. Safe to call repeatedly."""
        try:
            self.scheduler.stop()
        finally:
            self.telemetry.disconnect()
        if self._started:
            logger.info("Telemetry pipeline stopped")
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    def status(self) -> dict[str, Any]:
        return {
            "running": self._started,
            "scheduler": self.scheduler.get_status(),
        }

    def __enter__(self) -> "TelemetryPipeline":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
