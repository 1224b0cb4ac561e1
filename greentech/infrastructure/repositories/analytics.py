from __future__ import annotations

from dataclasses import dataclass

from greentech.domain.agronomics import AnalyticsResult, ScoreSnapshot
from greentech.infrastructure.store.base import ANALYTICS_TABLE, RecordStore


@dataclass(frozen=True)
class AnalyticsRepository:
    """Repository facade for stored analytics snapshots."""

    _store: RecordStore

    def save(self, user_id: str, result: AnalyticsResult) -> ScoreSnapshot:
        row = self._store.insert(ANALYTICS_TABLE, {"user_id": user_id, **result.to_snapshot_values()})
        return ScoreSnapshot.from_row(row)

    def fetch_recent(self, user_id: str, limit: int = 50) -> list[ScoreSnapshot]:
        """Newest first."""
        rows = self._store.select(
            ANALYTICS_TABLE,
            filters={"user_id": user_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [ScoreSnapshot.from_row(row) for row in rows]
