"""
Alert Domain Objects
====================

Alert records (live and stored), the fixed set of live alert conditions, and
the per-kind cooldown ledger that throttles how often a condition is written
to the store.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from greentech.enums.common import AlertCategory, AlertSeverity
from greentech.utils.time import parse_timestamp, epoch_millis, utc_now

LIVE_PREFIX = "live-"
STORED_PREFIX = "store-"

# Minimum gap between two stored alerts of the same kind.
ALERT_COOLDOWN_MS = 5 * 60 * 1000


class AlertKind:
    """Condition-kind keys for live alerts."""

    SOIL_CRITICAL = "soil-critical"
    SOIL_LOW = "soil-low"
    TEMPERATURE_HIGH = "temperature-high"
    HUMIDITY_HIGH = "humidity-high"
    CONNECTION_LOST = "connection-lost"

    ALL = (SOIL_CRITICAL, SOIL_LOW, TEMPERATURE_HIGH, HUMIDITY_HIGH, CONNECTION_LOST)


def live_alert_id(kind: str) -> str:
    return f"{LIVE_PREFIX}{kind}"


def stored_alert_id(source_id: Any) -> str:
    return f"{STORED_PREFIX}{source_id}"


@dataclass(frozen=True)
class AlertRecord:
    """
    A raised condition.

    Live alerts are derived from the current sensor snapshot and carry the
    condition ``kind``; their id is a pure function of that kind. Stored
    alerts come from the record store and carry ``source_id``.
    """

    id: str
    title: str
    description: str
    severity: AlertSeverity
    category: AlertCategory
    created_at: datetime
    is_read: bool = False
    is_resolved: bool = False
    source_id: Optional[str] = None
    kind: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return self.source_id is None

    @property
    def is_critical_unresolved(self) -> bool:
        return self.severity == AlertSeverity.CRITICAL and not self.is_resolved

    def with_flags(self, *, is_read: Optional[bool] = None, is_resolved: Optional[bool] = None) -> "AlertRecord":
        return replace(
            self,
            is_read=self.is_read if is_read is None else is_read,
            is_resolved=self.is_resolved if is_resolved is None else is_resolved,
        )

    def to_store_values(self) -> Dict[str, Any]:
        """Column values for a new row in the ``alerts`` table."""
        return {
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category.value,
            "is_read": False,
            "is_resolved": False,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "category": self.category.value,
            "created_at": self.created_at.isoformat(),
            "is_read": self.is_read,
            "is_resolved": self.is_resolved,
            "source_id": self.source_id,
            "kind": self.kind,
            "live": self.is_live,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AlertRecord":
        """Build a stored alert from an ``alerts`` table row."""
        source_id = str(row["id"])
        try:
            severity = AlertSeverity(str(row.get("severity") or "low"))
        except ValueError:
            severity = AlertSeverity.LOW
        try:
            category = AlertCategory(str(row.get("category") or "system"))
        except ValueError:
            category = AlertCategory.SYSTEM
        return cls(
            id=stored_alert_id(source_id),
            title=str(row.get("title") or ""),
            description=str(row.get("description") or ""),
            severity=severity,
            category=category,
            created_at=parse_timestamp(row.get("created_at")) or utc_now(),
            is_read=bool(row.get("is_read")),
            is_resolved=bool(row.get("is_resolved")),
            source_id=source_id,
        )


@dataclass(frozen=True)
class AlertCondition:
    """Static description of one live alert condition."""

    kind: str
    severity: AlertSeverity
    category: AlertCategory
    title: str

    def raise_alert(self, description: str, *, at: Optional[datetime] = None) -> AlertRecord:
        return AlertRecord(
            id=live_alert_id(self.kind),
            title=self.title,
            description=description,
            severity=self.severity,
            category=self.category,
            created_at=at or utc_now(),
            kind=self.kind,
        )


SOIL_CRITICAL = AlertCondition(
    kind=AlertKind.SOIL_CRITICAL,
    severity=AlertSeverity.CRITICAL,
    category=AlertCategory.IRRIGATION,
    title="Low Soil Moisture - Irrigation Needed",
)
SOIL_LOW = AlertCondition(
    kind=AlertKind.SOIL_LOW,
    severity=AlertSeverity.HIGH,
    category=AlertCategory.SENSOR,
    title="Soil Moisture Low",
)
TEMPERATURE_HIGH = AlertCondition(
    kind=AlertKind.TEMPERATURE_HIGH,
    severity=AlertSeverity.HIGH,
    category=AlertCategory.CLIMATE,
    title="High Temperature",
)
HUMIDITY_HIGH = AlertCondition(
    kind=AlertKind.HUMIDITY_HIGH,
    severity=AlertSeverity.MEDIUM,
    category=AlertCategory.CLIMATE,
    title="High Humidity",
)
CONNECTION_LOST = AlertCondition(
    kind=AlertKind.CONNECTION_LOST,
    severity=AlertSeverity.MEDIUM,
    category=AlertCategory.SYSTEM,
    title="Controller Disconnected",
)

# Thresholds
SOIL_CRITICAL_BELOW = 30
SOIL_LOW_BELOW = 50
TEMPERATURE_HIGH_ABOVE = 30.0
HUMIDITY_HIGH_ABOVE = 75.0


class CooldownLedger:
    """
    Per-kind record of the last time an alert was written to the store.

    Process-local and in-memory. :meth:`try_acquire` checks and stamps in one
    step so two evaluation passes racing on the same kind produce one write.
    """

    def __init__(
        self,
        window_ms: int = ALERT_COOLDOWN_MS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.window_ms = int(window_ms)
        self._clock = clock or time.time
        self._last: Dict[str, int] = {}
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        return epoch_millis(self._clock())

    def last_persisted(self, kind: str) -> Optional[int]:
        with self._lock:
            return self._last.get(kind)

    def is_due(self, kind: str, now_ms: Optional[int] = None) -> bool:
        now = self.now_ms() if now_ms is None else now_ms
        with self._lock:
            last = self._last.get(kind)
        return last is None or now - last >= self.window_ms

    def try_acquire(self, kind: str) -> bool:
        """Stamp ``kind`` and return True if its cooldown has elapsed."""
        now = self.now_ms()
        with self._lock:
            last = self._last.get(kind)
            if last is not None and now - last < self.window_ms:
                return False
            self._last[kind] = now
            return True

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._last)

    def clear(self) -> None:
        with self._lock:
            self._last.clear()


def sort_newest_first(alerts: List[AlertRecord]) -> List[AlertRecord]:
    return sorted(alerts, key=lambda a: a.created_at, reverse=True)
