"""Pytest configuration and fixtures."""

import sqlite3
from datetime import date, timedelta

import pytest

from wastetrack.database.sqlite_client import get_store
from wastetrack.utils.id_generator import new_payment_reference, new_record_id
from wastetrack.utils.time import storage_cutoff, storage_now


def days_ago(days: float) -> str:
    """Stored-form timestamp ``days`` days in the past."""
    return storage_cutoff(days=days)


def in_days(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


@pytest.fixture
def db_path(tmp_path) -> str:
    # File-backed so concurrent reads on worker threads share the same data
    return str(tmp_path / "test.db")


@pytest.fixture
def store(db_path):
    """Store client over a fresh SQLite database with the full schema."""
    client = get_store(db_path)
    try:
        yield client
    finally:
        client.dispose()


LEGACY_PAYMENTS_DDL = """
CREATE TABLE payments (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    amount REAL NOT NULL,
    currency TEXT NOT NULL,
    payment_method TEXT NOT NULL,
    reference TEXT UNIQUE,
    status TEXT NOT NULL,
    metadata_json TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


@pytest.fixture
def legacy_store(tmp_path):
    """Store whose payments table still names the reference column ``reference``."""
    path = str(tmp_path / "legacy.db")
    conn = sqlite3.connect(path)
    conn.executescript(LEGACY_PAYMENTS_DDL)
    conn.commit()
    conn.close()
    client = get_store(path)
    try:
        yield client
    finally:
        client.dispose()


@pytest.fixture
def make_user(store):
    def _make(**overrides):
        now = storage_now()
        row = {
            "id": new_record_id(),
            "email": None,
            "phone": "08031234567",
            "name": "Ada Obi",
            "role": "resident",
            "area": "Yaba",
            "street": "Herbert Macaulay Way",
            "house_number": "12",
            "coordinates": None,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        return store.table("users").insert(row)[0]
    return _make


@pytest.fixture
def make_pickup(store):
    def _make(user_id: str, **overrides):
        now = storage_now()
        row = {
            "id": new_record_id(),
            "user_id": user_id,
            "collector_id": None,
            "scheduled_date": in_days(3),
            "status": "requested",
            "notes": None,
            "completed_at": None,
            "created_at": now,
            "updated_at": now,
            "area": "Yaba",
            "street": "Herbert Macaulay Way",
            "house_number": "12",
            "coordinates": None,
        }
        row.update(overrides)
        return store.table("pickup_requests").insert(row)[0]
    return _make


def _payment_row(user_id: str, reference_column: str, overrides: dict) -> dict:
    now = storage_now()
    row = {
        "id": new_record_id(),
        "user_id": user_id,
        "amount": 5000.0,
        "currency": "NGN",
        "payment_method": "transfer",
        reference_column: new_payment_reference(),
        "status": "completed",
        "metadata_json": None,
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


@pytest.fixture
def make_payment(store):
    def _make(user_id: str, **overrides):
        return store.table("payments").insert(_payment_row(user_id, "payment_reference", overrides))[0]
    return _make


@pytest.fixture
def make_legacy_payment(legacy_store):
    def _make(user_id: str, **overrides):
        return legacy_store.table("payments").insert(_payment_row(user_id, "reference", overrides))[0]
    return _make


@pytest.fixture
def make_complaint(store):
    def _make(user_id: str, pickup_id: str, **overrides):
        now = storage_now()
        row = {
            "id": new_record_id(),
            "user_id": user_id,
            "pickup_id": pickup_id,
            "description": "Bins were left uncollected for a week",
            "photo_url": None,
            "status": "open",
            "priority": "medium",
            "admin_notes": None,
            "resolved_at": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        return store.table("complaints").insert(row)[0]
    return _make


@pytest.fixture
def make_subscription(store):
    def _make(user_id: str, **overrides):
        now = storage_now()
        row = {
            "id": new_record_id(),
            "user_id": user_id,
            "plan_type": "weekly",
            "status": "active",
            "amount": 3000.0,
            "currency": "NGN",
            "billing_cycle": "monthly",
            "start_date": date.today().isoformat(),
            "end_date": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        return store.table("subscriptions").insert(row)[0]
    return _make
