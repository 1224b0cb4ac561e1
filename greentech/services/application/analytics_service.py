"""
Analytics Service
=================

Application-level wrapper around the pure analytics engine:

- scores the latest sensor snapshot against the cached score history
- saves a score snapshot to the store at most once per save interval
- keeps the most recent AI insight and overlays it on the local result
- keeps a short rolling series of live readings for the dashboard chart

All store and LLM failures are logged and swallowed; the local result is
always available.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional

from greentech.domain.agronomics import (
    AnalyticsResult,
    ScoreSnapshot,
    SeriesPoint,
    apply_insight,
    compute_analytics,
    merge_series,
)
from greentech.domain.exceptions import StoreError
from greentech.infrastructure.repositories.analytics import AnalyticsRepository
from greentech.utils.time import from_epoch_seconds

if TYPE_CHECKING:
    from greentech.hardware.mqtt.telemetry_client import TelemetryConnectionManager
    from greentech.schemas.insights import AIInsight
    from greentech.services.ai.insight_generator import InsightGenerator

logger = logging.getLogger(__name__)

DEFAULT_SAVE_INTERVAL = 60.0
DEFAULT_INSIGHT_INTERVAL = 120.0
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_LIVE_SERIES_POINTS = 40


class AnalyticsService:
    """Scores live telemetry and manages persisted analytics snapshots."""

    def __init__(
        self,
        telemetry: "TelemetryConnectionManager",
        analytics_repo: Optional[AnalyticsRepository] = None,
        user_id: Optional[str] = None,
        insight_generator: Optional["InsightGenerator"] = None,
        *,
        save_interval: float = DEFAULT_SAVE_INTERVAL,
        insight_interval: float = DEFAULT_INSIGHT_INTERVAL,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        live_series_points: int = DEFAULT_LIVE_SERIES_POINTS,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.telemetry = telemetry
        self.analytics_repo = analytics_repo
        self.user_id = user_id or None
        self.insight_generator = insight_generator
        self.save_interval = float(save_interval)
        self.insight_interval = float(insight_interval)
        self.history_limit = int(history_limit)
        self._clock = clock or time.time

        self._lock = threading.Lock()
        self._history: List[ScoreSnapshot] = []
        self._live: Deque[SeriesPoint] = deque(maxlen=int(live_series_points))
        self._insight: Optional["AIInsight"] = None
        self._last_saved_at: Optional[float] = None
        self._last_insight_at: Optional[float] = None

    @property
    def persistence_enabled(self) -> bool:
        return self.analytics_repo is not None and self.user_id is not None

    @property
    def insights_enabled(self) -> bool:
        return self.insight_generator is not None and self.insight_generator.available

    @property
    def latest_insight(self) -> Optional["AIInsight"]:
        with self._lock:
            return self._insight

    def history(self) -> List[ScoreSnapshot]:
        """Cached snapshots, newest first."""
        with self._lock:
            return list(self._history)

    def current(self) -> AnalyticsResult:
        """Score the latest snapshot, with the latest insight applied if there is one."""
        state = self.telemetry.snapshot()
        with self._lock:
            history = list(self._history)
            insight = self._insight
        result = compute_analytics(state.temperature, state.humidity, state.soil_moisture, history=history)
        return apply_insight(result, insight)

    def _local_result(self) -> AnalyticsResult:
        state = self.telemetry.snapshot()
        return compute_analytics(state.temperature, state.humidity, state.soil_moisture, history=self.history())

    def persist_snapshot(self) -> Optional[ScoreSnapshot]:
        """
        Save the current scores if connected, all three sensors have
        reported and the save interval has elapsed since the last attempt.

        Returns the stored snapshot, or None when skipped or failed.
        """
        if not self.persistence_enabled or not self.telemetry.is_connected:
            return None
        if not self.telemetry.snapshot().is_complete:
            return None

        now = self._clock()
        with self._lock:
            if self._last_saved_at is not None and now - self._last_saved_at < self.save_interval:
                return None
            self._last_saved_at = now

        result = self._local_result()
        try:
            saved = self.analytics_repo.save(self.user_id, result)  # type: ignore[union-attr]
        except StoreError as exc:
            logger.warning("Failed to save analytics snapshot: %s", exc)
            return None

        with self._lock:
            self._history.insert(0, saved)
            del self._history[self.history_limit:]
        logger.debug(
            "Saved analytics snapshot (health=%s, irrigation=%s, risk=%s)",
            saved.plant_health_score,
            saved.irrigation_need_score,
            saved.climate_risk_score,
        )
        return saved

    def record_live_point(self) -> Optional[SeriesPoint]:
        """
        Append the current readings to the live series.

        Skipped while disconnected or before the first temperature reading;
        the oldest sample drops off once the series is full.
        """
        if not self.telemetry.is_connected:
            return None
        state = self.telemetry.snapshot()
        if not state.has_reading("temperature"):
            return None

        point = SeriesPoint(
            time=from_epoch_seconds(self._clock()),
            temperature=state.temperature,
            humidity=state.humidity,
            soil_moisture=state.soil_moisture,
            live=True,
        )
        with self._lock:
            self._live.append(point)
        return point

    def live_series(self) -> List[SeriesPoint]:
        with self._lock:
            return list(self._live)

    def series(self) -> List[SeriesPoint]:
        """Stored snapshots (oldest first) followed by the live samples."""
        with self._lock:
            return merge_series(self._history, self._live)

    def refresh_history(self) -> List[ScoreSnapshot]:
        """Reload stored snapshots; on failure the previous cache is kept."""
        if not self.persistence_enabled:
            return self.history()
        try:
            rows = self.analytics_repo.fetch_recent(self.user_id, limit=self.history_limit)  # type: ignore[union-attr]
        except StoreError as exc:
            logger.warning("Failed to fetch analytics history: %s", exc)
            return self.history()
        with self._lock:
            self._history = list(rows)
            return list(self._history)

    def refresh_insight(self, *, force: bool = False) -> Optional["AIInsight"]:
        """
        Ask the insight generator for a new narrative.

        Runs only while connected and with an available generator, at most
        once per insight interval unless ``force`` is set. A missing or
        malformed answer clears the previous insight so the local narrative
        is shown.
        """
        if not self.insights_enabled or not self.telemetry.is_connected:
            return None

        now = self._clock()
        with self._lock:
            if (
                not force
                and self._last_insight_at is not None
                and now - self._last_insight_at < self.insight_interval
            ):
                return self._insight
            self._last_insight_at = now

        insight = self.insight_generator.generate(  # type: ignore[union-attr]
            self._local_result(), self.telemetry.snapshot()
        )
        with self._lock:
            self._insight = insight
        return insight

    def clear_insight(self) -> None:
        with self._lock:
            self._insight = None
            self._last_insight_at = None

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "persistence_enabled": self.persistence_enabled,
                "insights_enabled": self.insights_enabled,
                "insight_provider": (
                    self.insight_generator.provider_name if self.insight_generator is not None else "none"
                ),
                "history_size": len(self._history),
                "live_points": len(self._live),
                "last_saved_at": self._last_saved_at,
                "last_insight_at": self._last_insight_at,
            }
