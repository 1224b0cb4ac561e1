"""
Alert Service
=============

Turns the live sensor snapshot into alerts and bridges them to the record
store.

Live alerts are recomputed on every evaluation from the current
:class:`SensorState` and connection liveness. Their ids depend only on the
condition kind, so the same condition keeps the same id across evaluations.
Each condition is written to the store at most once per cooldown window
(5 minutes); the ledger is stamped when the write is attempted, so a failing
store does not cause a write storm.

Durable alerts are the user's stored records, fetched newest first. Resolving
or dismissing a live alert hides it locally until its condition clears;
resolving or dismissing a durable alert writes ``is_resolved``/``is_read``
back to the store.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from greentech.domain.alerts import (
    CONNECTION_LOST,
    HUMIDITY_HIGH,
    HUMIDITY_HIGH_ABOVE,
    LIVE_PREFIX,
    SOIL_CRITICAL,
    SOIL_CRITICAL_BELOW,
    SOIL_LOW,
    SOIL_LOW_BELOW,
    STORED_PREFIX,
    TEMPERATURE_HIGH,
    TEMPERATURE_HIGH_ABOVE,
    AlertKind,
    AlertRecord,
    CooldownLedger,
    sort_newest_first,
)
from greentech.domain.exceptions import NotFoundError, StoreError
from greentech.domain.telemetry import ConnectionState, SensorState
from greentech.enums.common import AlertSeverity
from greentech.infrastructure.repositories.alerts import AlertRepository
from greentech.utils.time import from_epoch_seconds

logger = logging.getLogger(__name__)

DEFAULT_FETCH_LIMIT = 50


class AlertService:
    """Derives, deduplicates and persists greenhouse alerts for one session user."""

    def __init__(
        self,
        alert_repo: Optional[AlertRepository],
        user_id: Optional[str] = None,
        *,
        ledger: Optional[CooldownLedger] = None,
        clock: Optional[Callable[[], float]] = None,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
    ):
        """
        Args:
            alert_repo: Repository for stored alerts; None disables persistence
            user_id: Session user the stored alerts belong to
            ledger: Cooldown ledger; a fresh 5-minute ledger by default
            clock: Epoch-seconds clock shared with the default ledger
            fetch_limit: Maximum stored alerts kept after a refresh
        """
        self.alert_repo = alert_repo
        self.user_id = user_id or None
        self._clock = clock or time.time
        self.ledger = ledger or CooldownLedger(clock=self._clock)
        self.fetch_limit = fetch_limit

        self._lock = threading.RLock()
        self._live: Dict[str, AlertRecord] = {}
        self._live_since: Dict[str, datetime] = {}
        self._dismissed: Set[str] = set()
        self._read: Set[str] = set()
        self._durable: List[AlertRecord] = []
        self.write_failures = 0

    @property
    def persistence_enabled(self) -> bool:
        return self.alert_repo is not None and self.user_id is not None

    def _now(self) -> datetime:
        return from_epoch_seconds(self._clock())

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def derive_live_alerts(self, state: SensorState, connection: ConnectionState) -> List[AlertRecord]:
        """
        Evaluate the fixed condition list against one snapshot.

        Sensor conditions only fire for fields that have reported at least
        once; the connection condition fires whenever the link is down.
        """
        with self._lock:
            since = dict(self._live_since)
        now = self._now()

        def raise_(condition, description: str) -> AlertRecord:
            return condition.raise_alert(description, at=since.get(condition.kind, now))

        alerts: List[AlertRecord] = []

        if state.has_reading("soil_moisture"):
            soil = state.soil_moisture
            if soil < SOIL_CRITICAL_BELOW:
                alerts.append(
                    raise_(SOIL_CRITICAL, f"Soil moisture at {soil}%. Turn on irrigation or enable AUTO mode.")
                )
            elif soil < SOIL_LOW_BELOW:
                alerts.append(raise_(SOIL_LOW, f"Soil moisture at {soil}%. Monitor and consider irrigation."))

        if state.has_reading("temperature") and state.temperature > TEMPERATURE_HIGH_ABOVE:
            alerts.append(
                raise_(TEMPERATURE_HIGH, f"Temperature at {state.temperature:.1f}°C. Ventilation recommended.")
            )

        if state.has_reading("humidity") and state.humidity > HUMIDITY_HIGH_ABOVE:
            alerts.append(raise_(HUMIDITY_HIGH, f"Humidity at {state.humidity:.0f}%. Ventilation may help."))

        if not connection.is_connected:
            alerts.append(raise_(CONNECTION_LOST, "Live sensor data is not available. Check MQTT connection."))

        return alerts

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist_if_due(self, alert: AlertRecord) -> Optional[AlertRecord]:
        """
        Write ``alert`` to the store unless its kind is still cooling down.

        Returns the stored record, or None when skipped or when the write
        failed. Failures are logged, never raised.
        """
        if not self.persistence_enabled or not alert.kind:
            return None
        if not self.ledger.try_acquire(alert.kind):
            return None
        try:
            stored = self.alert_repo.create(self.user_id, alert)  # type: ignore[union-attr]
        except StoreError as exc:
            self.write_failures += 1
            logger.warning("Failed to persist %s alert: %s", alert.kind, exc)
            return None
        logger.info("Persisted %s alert as %s", alert.kind, stored.id)
        return stored

    def evaluate(self, state: SensorState, connection: ConnectionState) -> List[AlertRecord]:
        """
        Derive live alerts, persist the ones that are due and refresh stored
        alerts after any write. Dismissals of conditions that cleared are
        forgotten so a recurrence is shown again.

        Returns the visible live alerts.
        """
        live = self.derive_live_alerts(state, connection)
        active = {alert.kind for alert in live}

        with self._lock:
            for kind in list(self._live_since):
                if kind not in active:
                    del self._live_since[kind]
            for alert in live:
                self._live_since.setdefault(alert.kind, alert.created_at)
            self._live = {alert.kind: alert for alert in live}
            self._dismissed &= active
            self._read &= active

        written = [stored for stored in (self.persist_if_due(alert) for alert in live) if stored is not None]
        if written:
            self.refresh()
        return self.visible_live_alerts()

    def refresh(self) -> List[AlertRecord]:
        """Reload stored alerts; a failed fetch leaves the stored list empty."""
        durable: List[AlertRecord] = []
        if self.persistence_enabled:
            try:
                durable = self.alert_repo.list_for_user(self.user_id, limit=self.fetch_limit)  # type: ignore[union-attr]
            except StoreError as exc:
                logger.warning("Failed to fetch stored alerts: %s", exc)
                durable = []
        with self._lock:
            self._durable = sort_newest_first(durable)
            return list(self._durable)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def visible_live_alerts(self) -> List[AlertRecord]:
        with self._lock:
            visible = [
                alert.with_flags(is_read=kind in self._read)
                for kind, alert in self._live.items()
                if kind not in self._dismissed
            ]
        return sort_newest_first(visible)

    def durable_alerts(self) -> List[AlertRecord]:
        with self._lock:
            return list(self._durable)

    def list_alerts(self) -> List[AlertRecord]:
        """Visible live alerts (newest first), then stored alerts (newest first)."""
        return self.visible_live_alerts() + self.durable_alerts()

    def get(self, alert_id: str) -> AlertRecord:
        for alert in self.list_alerts():
            if alert.id == alert_id:
                return alert
        raise NotFoundError(f"Alert {alert_id} not found", detail={"alert_id": alert_id})

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _live_kind(self, alert_id: str) -> str:
        kind = alert_id[len(LIVE_PREFIX):]
        if kind not in AlertKind.ALL:
            raise NotFoundError(f"Alert {alert_id} not found", detail={"alert_id": alert_id})
        return kind

    def _stored(self, alert_id: str) -> AlertRecord:
        with self._lock:
            for alert in self._durable:
                if alert.id == alert_id:
                    return alert
        raise NotFoundError(f"Alert {alert_id} not found", detail={"alert_id": alert_id})

    def _close_stored(self, alert_id: str) -> None:
        alert = self._stored(alert_id)
        if alert.is_resolved and alert.is_read:
            return
        # Store errors propagate so the caller can report the failed action
        self.alert_repo.update_flags(  # type: ignore[union-attr]
            self.user_id, alert.source_id, is_read=True, is_resolved=True
        )
        self.refresh()

    def _hide_live(self, alert_id: str) -> None:
        kind = self._live_kind(alert_id)
        with self._lock:
            if kind in self._live:
                self._dismissed.add(kind)

    def resolve(self, alert_id: str) -> None:
        """
        Resolve an alert. Live alerts are hidden until their condition clears;
        stored alerts are marked resolved and read. Idempotent.

        Raises:
            NotFoundError: If ``alert_id`` is not a known alert
            StoreError: If the store rejects the update
        """
        if alert_id.startswith(LIVE_PREFIX):
            self._hide_live(alert_id)
        elif alert_id.startswith(STORED_PREFIX):
            self._close_stored(alert_id)
        else:
            raise NotFoundError(f"Alert {alert_id} not found", detail={"alert_id": alert_id})
        logger.info("Resolved alert %s", alert_id)

    def dismiss(self, alert_id: str) -> None:
        """Remove an alert from the list; same effect on the store as :meth:`resolve`."""
        if alert_id.startswith(LIVE_PREFIX):
            self._hide_live(alert_id)
        elif alert_id.startswith(STORED_PREFIX):
            self._close_stored(alert_id)
        else:
            raise NotFoundError(f"Alert {alert_id} not found", detail={"alert_id": alert_id})
        logger.info("Dismissed alert %s", alert_id)

    def mark_read(self, alert_id: str) -> None:
        if alert_id.startswith(LIVE_PREFIX):
            kind = self._live_kind(alert_id)
            with self._lock:
                if kind in self._live:
                    self._read.add(kind)
            return
        if not alert_id.startswith(STORED_PREFIX):
            raise NotFoundError(f"Alert {alert_id} not found", detail={"alert_id": alert_id})
        alert = self._stored(alert_id)
        if alert.is_read:
            return
        self.alert_repo.update_flags(self.user_id, alert.source_id, is_read=True)  # type: ignore[union-attr]
        self.refresh()

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    @property
    def unread_count(self) -> int:
        return sum(1 for alert in self.list_alerts() if not alert.is_read)

    @property
    def critical_unresolved_count(self) -> int:
        return sum(1 for alert in self.list_alerts() if alert.is_critical_unresolved)

    def summary(self) -> Dict[str, Any]:
        alerts = self.list_alerts()
        by_severity = {severity.value: 0 for severity in AlertSeverity}
        for alert in alerts:
            if not alert.is_resolved:
                by_severity[alert.severity.value] += 1
        return {
            "total": len(alerts),
            "live": sum(1 for alert in alerts if alert.is_live),
            "stored": sum(1 for alert in alerts if not alert.is_live),
            "unread": sum(1 for alert in alerts if not alert.is_read),
            "critical_unresolved": sum(1 for alert in alerts if alert.is_critical_unresolved),
            "unresolved_by_severity": by_severity,
            "cooldowns": self.ledger.snapshot(),
            "persistence_enabled": self.persistence_enabled,
        }
