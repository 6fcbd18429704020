"""Tests for additive SQLite migrations."""

import sqlite3

from wastetrack.database.migrate import (
    ensure_notification_audience_column,
    ensure_payment_reference_column,
    ensure_pickup_location_columns,
    run_all_migrations,
)
from wastetrack.database.sqlite_client import get_store
from wastetrack.retrieval.contracts import PaymentFilters
from wastetrack.retrieval.translator import get_payments


def _columns(path, table):
    conn = sqlite3.connect(path)
    try:
        return [row[1] for row in conn.execute(f"PRAGMA table_info({table});")]
    finally:
        conn.close()


def test_payment_reference_backfilled_from_legacy_column(tmp_path):
    path = str(tmp_path / "legacy.db")
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE payments (id TEXT PRIMARY KEY, user_id TEXT, amount REAL, currency TEXT, "
        "payment_method TEXT, reference TEXT, status TEXT, metadata_json TEXT, created_at TEXT, updated_at TEXT)"
    )
    conn.execute(
        "INSERT INTO payments VALUES ('p1', 'u1', 10.0, 'NGN', 'cash', 'DEMO-REF-12345', 'completed', NULL, "
        "'2025-01-01T00:00:00.000000Z', '2025-01-01T00:00:00.000000Z')"
    )
    conn.commit()
    conn.close()

    assert ensure_payment_reference_column(path) is True
    assert ensure_payment_reference_column(path) is False
    assert "payment_reference" in _columns(path, "payments")

    store = get_store(path)
    try:
        page = get_payments(store, PaymentFilters(search_term="demo-ref"))
        assert [p.reference for p in page.data] == ["DEMO-REF-12345"]
    finally:
        store.dispose()


def test_pickup_location_columns_added(tmp_path):
    path = str(tmp_path / "old.db")
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE pickup_requests (id TEXT PRIMARY KEY, user_id TEXT, status TEXT)")
    conn.commit()
    conn.close()

    ensure_pickup_location_columns(path)
    ensure_pickup_location_columns(path)

    assert {"area", "street", "house_number", "coordinates"} <= set(_columns(path, "pickup_requests"))


def test_legacy_system_notifications_converted(tmp_path):
    path = str(tmp_path / "notes.db")
    conn = sqlite3.connect(path)
    conn.execute(
        "CREATE TABLE notifications (id TEXT PRIMARY KEY, user_id TEXT, type TEXT, title TEXT, "
        "message TEXT, data_json TEXT, read INTEGER, created_at TEXT)"
    )
    conn.execute("INSERT INTO notifications VALUES ('n1', 'system', 'system_alert', 't', 'm', NULL, 0, 'x')")
    conn.execute("INSERT INTO notifications VALUES ('n2', 'u1', 'system_alert', 't', 'm', NULL, 0, 'x')")
    conn.commit()
    conn.close()

    assert ensure_notification_audience_column(path) == 1

    conn = sqlite3.connect(path)
    try:
        rows = dict((r[0], (r[1], r[2])) for r in conn.execute("SELECT id, audience, user_id FROM notifications"))
    finally:
        conn.close()
    assert rows == {"n1": ("system", None), "n2": ("user", "u1")}


def test_migrations_on_missing_tables_are_noops(tmp_path):
    path = str(tmp_path / "empty.db")
    sqlite3.connect(path).close()
    run_all_migrations(path)
    assert ensure_payment_reference_column(path) is False
