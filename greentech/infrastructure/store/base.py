"""
Record Store Interface
======================

Table-and-filter record API shared by the remote (Supabase/PostgREST) and the
local (SQLite) backends. Only the two tables the telemetry core writes are
known; anything else is rejected before it reaches a backend.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from greentech.domain.exceptions import StoreError

logger = logging.getLogger(__name__)

ANALYTICS_TABLE = "analytics"
ALERTS_TABLE = "alerts"

TABLE_COLUMNS: Dict[str, FrozenSet[str]] = {
    ANALYTICS_TABLE: frozenset(
        {
            "id",
            "user_id",
            "plant_health_score",
            "irrigation_need_score",
            "climate_risk_score",
            "recommendations",
            "snapshot",
            "created_at",
        }
    ),
    ALERTS_TABLE: frozenset(
        {
            "id",
            "user_id",
            "title",
            "description",
            "severity",
            "category",
            "is_read",
            "is_resolved",
            "created_at",
        }
    ),
}

# Columns holding lists/objects
JSON_COLUMNS: FrozenSet[str] = frozenset({"recommendations", "snapshot"})
BOOL_COLUMNS: FrozenSet[str] = frozenset({"is_read", "is_resolved"})


def table_columns(table: str) -> FrozenSet[str]:
    try:
        return TABLE_COLUMNS[table]
    except KeyError:
        raise StoreError(f"Unknown table {table!r}", detail={"table": table}) from None


def require_columns(table: str, columns: Mapping[str, Any] | List[str], *, context: str) -> None:
    """Raise StoreError if any of ``columns`` is not a column of ``table``."""
    allowed = table_columns(table)
    unknown = sorted(c for c in columns if c not in allowed)
    if unknown:
        raise StoreError(
            f"{context}: unknown column(s) {unknown} for table {table!r}",
            detail={"table": table, "columns": unknown},
        )


# Columns a caller may never set: ids come from the backend, created_at is
# immutable once a row exists
_SERVER_OWNED: Dict[str, FrozenSet[str]] = {
    "insert": frozenset({"id"}),
    "update": frozenset({"id", "created_at"}),
}


def writable_values(table: str, values: Mapping[str, Any], *, operation: str) -> Dict[str, Any]:
    """
    ``values`` restricted to the columns ``operation`` may write on ``table``.

    Keys outside the table schema (or server-owned for the operation) are
    dropped with a warning, so a payload key never reaches SQL or a PostgREST
    body as a column name.
    """
    allowed = table_columns(table) - _SERVER_OWNED[operation]
    kept = {column: value for column, value in values.items() if column in allowed}
    dropped = sorted(column for column in values if column not in allowed)
    if dropped:
        logger.warning("%s:%s dropped column(s) %s", operation, table, dropped)
    return kept


class RecordStore(ABC):
    """Create/read/update records by table and equality filters."""

    name = "abstract"

    @abstractmethod
    def insert(self, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored (including ``id`` and ``created_at``)."""

    @abstractmethod
    def select(
        self,
        table: str,
        *,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return rows matching all ``filters`` (column equality)."""

    @abstractmethod
    def update(self, table: str, filters: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        """Update rows matching all ``filters``; return the number of rows changed."""

    def close(self) -> None:
        """Release backend resources."""
