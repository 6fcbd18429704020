"""Minimal SQLite migration helpers for additive schema changes."""

import sqlite3
from typing import List, Tuple

from wastetrack.utils.logging import get_logger

logger = get_logger(__name__)

# Legacy notification rows addressed admins through this pseudo user id
LEGACY_SYSTEM_USER_ID = "system"


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    """Check if a column exists in a table."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [row[1] for row in cur.fetchall()]
    return column in cols


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    """Check if a table exists."""
    cur = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?;",
        (table,)
    )
    return cur.fetchone() is not None


def ensure_payment_reference_column(sqlite_path: str) -> bool:
    """
    Move a legacy payments table onto the ``payment_reference`` column.

    Legacy tables carry the reference in ``reference``. This adds
    ``payment_reference``, copies existing values across and indexes it. The
    legacy column is left in place so older writers keep working while both
    generations are live.

    Returns:
        True if the column was added, False if nothing needed doing
    """
    conn = sqlite3.connect(sqlite_path)
    try:
        if not _table_exists(conn, "payments"):
            return False
        if _column_exists(conn, "payments", "payment_reference"):
            return False
        conn.execute("ALTER TABLE payments ADD COLUMN payment_reference TEXT;")
        if _column_exists(conn, "payments", "reference"):
            conn.execute(
                "UPDATE payments SET payment_reference = reference WHERE payment_reference IS NULL;"
            )
        conn.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_payments_payment_reference ON payments(payment_reference);"
        )
        conn.commit()
        logger.info("Added payments.payment_reference to %s", sqlite_path)
        return True
    finally:
        conn.close()


def ensure_pickup_location_columns(sqlite_path: str) -> None:
    """
    Add denormalized location snapshot columns to pickup_requests if missing.

    Args:
        sqlite_path: Path to SQLite database file
    """
    conn = sqlite3.connect(sqlite_path)
    try:
        if not _table_exists(conn, "pickup_requests"):
            return
        additions: List[Tuple[str, str]] = [
            ("area", "TEXT"),
            ("street", "TEXT"),
            ("house_number", "TEXT"),
            ("coordinates", "TEXT"),  # "POINT(lng lat)"
        ]
        for col, coltype in additions:
            if not _column_exists(conn, "pickup_requests", col):
                conn.execute(f"ALTER TABLE pickup_requests ADD COLUMN {col} {coltype};")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_pickup_requests_area ON pickup_requests(area);")
        conn.commit()
    finally:
        conn.close()


def ensure_notification_audience_column(sqlite_path: str) -> int:
    """
    Add notifications.audience and convert legacy system rows.

    Rows addressed to the ``"system"`` pseudo user become
    ``audience='system'`` with a NULL user_id.

    Returns:
        Number of legacy system rows converted
    """
    conn = sqlite3.connect(sqlite_path)
    try:
        if not _table_exists(conn, "notifications"):
            return 0
        if not _column_exists(conn, "notifications", "audience"):
            conn.execute("ALTER TABLE notifications ADD COLUMN audience TEXT NOT NULL DEFAULT 'user';")
        cur = conn.execute(
            "UPDATE notifications SET audience = 'system', user_id = NULL WHERE user_id = ?;",
            (LEGACY_SYSTEM_USER_ID,),
        )
        conn.commit()
        return cur.rowcount or 0
    finally:
        conn.close()


def run_all_migrations(sqlite_path: str) -> None:
    ensure_payment_reference_column(sqlite_path)
    ensure_pickup_location_columns(sqlite_path)
    converted = ensure_notification_audience_column(sqlite_path)
    if converted:
        logger.info("Converted %d legacy system notifications", converted)
