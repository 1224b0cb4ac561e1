"""
Tests for the SQLite record store and the repositories built on it.
"""

import pytest

from greentech.domain.agronomics import compute_analytics
from greentech.domain.alerts import SOIL_CRITICAL, TEMPERATURE_HIGH
from greentech.domain.exceptions import StoreError
from greentech.infrastructure.store.base import ALERTS_TABLE, ANALYTICS_TABLE, writable_values


def _alert_row(user_id="user-1", created_at=None, **overrides):
    row = {
        "user_id": user_id,
        "title": "High Temperature",
        "description": "Temperature at 32.0°C.",
        "severity": "high",
        "category": "climate",
        "is_read": False,
        "is_resolved": False,
    }
    if created_at is not None:
        row["created_at"] = created_at
    row.update(overrides)
    return row


class TestSQLiteRecordStore:
    def test_insert_returns_stored_row(self, sqlite_store):
        row = sqlite_store.insert(
            ANALYTICS_TABLE,
            {
                "user_id": "user-1",
                "plant_health_score": 80,
                "irrigation_need_score": 15,
                "climate_risk_score": 20,
                "recommendations": ["Water soon"],
                "snapshot": {"temp": 24.0, "humidity": 60.0, "soil_moisture": 50.0},
            },
        )

        assert isinstance(row["id"], int)
        assert row["created_at"]
        assert row["recommendations"] == ["Water soon"]
        assert row["snapshot"]["humidity"] == 60.0

    def test_select_filters_and_orders_newest_first(self, sqlite_store):
        sqlite_store.insert(ALERTS_TABLE, _alert_row(created_at="2024-01-01T10:00:00+00:00", title="old"))
        sqlite_store.insert(ALERTS_TABLE, _alert_row(created_at="2024-01-01T12:00:00+00:00", title="new"))
        sqlite_store.insert(ALERTS_TABLE, _alert_row(user_id="someone-else", title="foreign"))

        rows = sqlite_store.select(ALERTS_TABLE, filters={"user_id": "user-1"})
        assert [r["title"] for r in rows] == ["new", "old"]

        limited = sqlite_store.select(ALERTS_TABLE, filters={"user_id": "user-1"}, limit=1)
        assert [r["title"] for r in limited] == ["new"]

        oldest_first = sqlite_store.select(ALERTS_TABLE, filters={"user_id": "user-1"}, descending=False)
        assert [r["title"] for r in oldest_first] == ["old", "new"]

    def test_booleans_round_trip(self, sqlite_store):
        row = sqlite_store.insert(ALERTS_TABLE, _alert_row())
        assert row["is_read"] is False

        changed = sqlite_store.update(ALERTS_TABLE, {"id": row["id"]}, {"is_read": True, "is_resolved": True})
        assert changed == 1

        (stored,) = sqlite_store.select(ALERTS_TABLE, filters={"is_resolved": True})
        assert stored["is_read"] is True

    def test_update_matches_string_ids(self, sqlite_store):
        row = sqlite_store.insert(ALERTS_TABLE, _alert_row())
        assert sqlite_store.update(ALERTS_TABLE, {"id": str(row["id"]), "user_id": "user-1"}, {"is_read": True}) == 1
        assert sqlite_store.update(ALERTS_TABLE, {"id": str(row["id"]), "user_id": "intruder"}, {"is_read": True}) == 0

    def test_unknown_insert_columns_are_dropped(self, sqlite_store):
        row = sqlite_store.insert(ALERTS_TABLE, _alert_row(**{"id": 999, "title; DROP TABLE alerts": "x"}))
        assert row["id"] != 999
        assert len(sqlite_store.select(ALERTS_TABLE)) == 1

    def test_update_cannot_rewrite_server_owned_columns(self, sqlite_store):
        row = sqlite_store.insert(ALERTS_TABLE, _alert_row(created_at="2024-01-01T00:00:00+00:00"))

        changed = sqlite_store.update(
            ALERTS_TABLE,
            {"id": row["id"]},
            {"id": 999, "created_at": "2030-01-01T00:00:00+00:00", "is_read": True},
        )

        assert changed == 1
        (stored,) = sqlite_store.select(ALERTS_TABLE)
        assert stored["id"] == row["id"]
        assert stored["created_at"] == "2024-01-01T00:00:00+00:00"
        assert stored["is_read"] is True

    def test_unknown_table_raises(self, sqlite_store):
        with pytest.raises(StoreError):
            sqlite_store.insert("users", {"name": "x"})

    def test_unknown_filter_column_raises(self, sqlite_store):
        with pytest.raises(StoreError):
            sqlite_store.select(ALERTS_TABLE, filters={"1=1 OR user_id": "x"})
        with pytest.raises(StoreError):
            sqlite_store.select(ALERTS_TABLE, order_by="severity; DROP TABLE alerts")

    def test_update_requires_filters(self, sqlite_store):
        with pytest.raises(StoreError):
            sqlite_store.update(ALERTS_TABLE, {}, {"is_read": True})

    def test_file_database_creates_parent_directory(self, tmp_path):
        from greentech.infrastructure.store.sqlite import SQLiteRecordStore

        path = tmp_path / "nested" / "greentech.db"
        store = SQLiteRecordStore(str(path))
        try:
            store.insert(ALERTS_TABLE, _alert_row())
        finally:
            store.close()
        assert path.exists()


class TestRepositories:
    def test_alert_repository_round_trip(self, alert_repo):
        stored = alert_repo.create("user-1", SOIL_CRITICAL.raise_alert("Soil moisture at 12%."))

        assert stored.id.startswith("store-")
        assert stored.kind is None
        assert not stored.is_read and not stored.is_resolved

        assert alert_repo.update_flags("user-1", stored.source_id, is_resolved=True, is_read=True)
        assert not alert_repo.update_flags("user-1", stored.source_id)

        (reloaded,) = alert_repo.list_for_user("user-1")
        assert reloaded.is_resolved and reloaded.is_read
        assert reloaded.title == SOIL_CRITICAL.title

    def test_alert_repository_resolved_filter(self, alert_repo):
        first = alert_repo.create("user-1", SOIL_CRITICAL.raise_alert("a"))
        alert_repo.create("user-1", TEMPERATURE_HIGH.raise_alert("b"))
        alert_repo.update_flags("user-1", first.source_id, is_resolved=True)

        unresolved = alert_repo.list_for_user("user-1", resolved=False)
        assert [a.title for a in unresolved] == [TEMPERATURE_HIGH.title]
        assert alert_repo.list_for_user("other-user") == []

    def test_analytics_repository_round_trip(self, analytics_repo):
        saved = analytics_repo.save("user-1", compute_analytics(35, 85, 15))

        assert saved.plant_health_score == 10
        assert saved.soil_moisture == 15.0
        assert saved.created_at is not None

        (recent,) = analytics_repo.fetch_recent("user-1", limit=5)
        assert recent.id == saved.id
        assert recent.recommendations == saved.recommendations


@pytest.mark.parametrize(
    "operation, expected",
    [
        ("insert", {"title": "x", "created_at": "2024-01-01"}),
        ("update", {"title": "x"}),
    ],
)
def test_writable_values_follow_table_schema(operation, expected):
    values = {"id": 1, "title": "x", "created_at": "2024-01-01", "title; --": "y"}
    assert writable_values(ALERTS_TABLE, values, operation=operation) == expected
