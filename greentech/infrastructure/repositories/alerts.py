from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from greentech.domain.alerts import AlertRecord
from greentech.infrastructure.store.base import ALERTS_TABLE, RecordStore


@dataclass(frozen=True)
class AlertRepository:
    """Repository facade for stored alert records."""

    _store: RecordStore

    def create(self, user_id: str, alert: AlertRecord) -> AlertRecord:
        row = self._store.insert(ALERTS_TABLE, {"user_id": user_id, **alert.to_store_values()})
        return AlertRecord.from_row(row)

    def list_for_user(
        self,
        user_id: str,
        *,
        resolved: bool | None = None,
        limit: int = 50,
    ) -> list[AlertRecord]:
        """Newest first; ``resolved`` narrows to resolved/unresolved records."""
        filters: dict[str, Any] = {"user_id": user_id}
        if resolved is not None:
            filters["is_resolved"] = resolved
        rows = self._store.select(
            ALERTS_TABLE,
            filters=filters,
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [AlertRecord.from_row(row) for row in rows]

    def update_flags(
        self,
        user_id: str,
        source_id: str,
        *,
        is_read: bool | None = None,
        is_resolved: bool | None = None,
    ) -> bool:
        values: dict[str, Any] = {}
        if is_read is not None:
            values["is_read"] = is_read
        if is_resolved is not None:
            values["is_resolved"] = is_resolved
        if not values:
            return False
        changed = self._store.update(ALERTS_TABLE, {"id": source_id, "user_id": user_id}, values)
        return changed > 0
