from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from greentech.config import AppConfig
from greentech.hardware.mqtt.telemetry_client import TelemetryConnectionManager
from greentech.infrastructure.repositories.alerts import AlertRepository
from greentech.infrastructure.repositories.analytics import AnalyticsRepository
from greentech.infrastructure.store import RecordStore, create_record_store
from greentech.services.ai.insight_generator import InsightGenerator
from greentech.services.ai.llm_backends import create_backend
from greentech.services.application.alert_service import AlertService
from greentech.services.application.analytics_service import AnalyticsService
from greentech.workers.pipeline import TelemetryPipeline
from greentech.workers.scheduler import IntervalScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage core backend services."""

    config: AppConfig
    store: RecordStore
    analytics_repo: AnalyticsRepository
    alert_repo: AlertRepository
    telemetry: TelemetryConnectionManager
    insight_generator: InsightGenerator
    alert_service: AlertService
    analytics_service: AnalyticsService
    scheduler: IntervalScheduler
    pipeline: Optional[TelemetryPipeline] = None

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        store: Optional[RecordStore] = None,
        telemetry: Optional[TelemetryConnectionManager] = None,
    ) -> "ServiceContainer":
        """Construct the service container with all dependencies.

        Args:
            config: Application configuration
            store: Record store to use instead of the configured backend
            telemetry: Connection manager to use instead of a new one
        """
        logger.info("Building ServiceContainer...")

        store = store or create_record_store(config)
        analytics_repo = AnalyticsRepository(store)
        alert_repo = AlertRepository(store)
        logger.info("✓ Record store ready (%s)", store.name)

        telemetry = telemetry or TelemetryConnectionManager(
            client_id=config.mqtt_client_id,
            keepalive=config.mqtt_keepalive,
            reconnect_delay=config.mqtt_reconnect_delay,
        )

        backend = create_backend(
            config.llm_provider,
            api_key=config.llm_api_key,
            model=config.llm_model,
            base_url=config.llm_base_url or None,
            timeout=config.llm_timeout,
        )
        insight_generator = InsightGenerator(
            backend,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature,
        )

        user_id = config.user_id or None
        alert_service = AlertService(alert_repo, user_id, fetch_limit=config.alert_fetch_limit)
        analytics_service = AnalyticsService(
            telemetry,
            analytics_repo,
            user_id,
            insight_generator,
            save_interval=config.analytics_save_interval,
            insight_interval=config.insight_interval,
            history_limit=config.history_limit,
            live_series_points=config.live_series_points,
        )
        scheduler = IntervalScheduler(max_workers=config.scheduler_workers, name="TelemetryScheduler")

        container = cls(
            config=config,
            store=store,
            analytics_repo=analytics_repo,
            alert_repo=alert_repo,
            telemetry=telemetry,
            insight_generator=insight_generator,
            alert_service=alert_service,
            analytics_service=analytics_service,
            scheduler=scheduler,
        )
        container.pipeline = TelemetryPipeline.from_container(container)

        logger.info("ServiceContainer built successfully.")
        return container

    def start_pipeline(self) -> TelemetryPipeline:
        """Connect to the broker and start the background jobs."""
        if self.pipeline is None:
            self.pipeline = TelemetryPipeline.from_container(self)
        self.pipeline.start()
        return self.pipeline

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        if self.pipeline is not None:
            try:
                self.pipeline.stop()
                logger.info("✓ Telemetry pipeline stopped")
            except Exception as e:
                logger.warning("Failed to stop telemetry pipeline: %s", e)
        else:
            self.telemetry.disconnect()

        try:
            self.store.close()
        except Exception as e:
            logger.warning("Failed to close record store: %s", e)
        logger.info("ServiceContainer shutdown complete.")
