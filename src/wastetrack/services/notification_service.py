"""In-app notifications.

User notifications belong to one user. System notifications are admin
broadcasts: audience SYSTEM and no user id.
"""

from typing import List, Optional

from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.domain.models import (
    BroadcastNotificationInput,
    Notification,
    NotificationAudience,
    SendNotificationInput,
)
from wastetrack.errors import AccessDeniedError, NotFoundError, QueryError
from wastetrack.retrieval.mappers import row_to_notification
from wastetrack.utils.id_generator import new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_cutoff, storage_now

from .base import dump_json, store_write

logger = get_logger(__name__)


def _insert(store: StoreClient, audience: NotificationAudience, user_id: Optional[str], data) -> Notification:
    row = {
        "id": new_record_id(),
        "audience": audience.value,
        "user_id": user_id,
        "type": data.type,
        "title": data.title,
        "message": data.message,
        "data_json": dump_json(data.data),
        "read": False,
        "created_at": storage_now(),
    }
    with store_write("send notification"):
        stored = store.table("notifications").insert(row)
    return row_to_notification(stored[0])


def send_notification(store: StoreClient, data: SendNotificationInput) -> Notification:
    return _insert(store, NotificationAudience.USER, data.user_id, data)


def broadcast_system_notification(store: StoreClient, data: BroadcastNotificationInput) -> Notification:
    notification = _insert(store, NotificationAudience.SYSTEM, None, data)
    logger.info("System notification broadcast: %s", data.title)
    return notification


def _read(query, label: str) -> List[Notification]:
    try:
        rows = query.execute().data
    except StoreError as exc:
        logger.error("Failed to fetch %s: %s", label, exc.message)
        raise QueryError(f"Failed to fetch {label}: {exc.message}") from exc
    return [row_to_notification(row) for row in rows]


def get_user_notifications(
    store: StoreClient,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> List[Notification]:
    """Newest-first notifications addressed to ``user_id``."""
    query = store.table("notifications").eq("audience", NotificationAudience.USER.value).eq("user_id", user_id)
    if unread_only:
        query = query.eq("read", False)
    return _read(query.order("created_at", ascending=False).limit(limit), "notifications")


def get_system_notifications(store: StoreClient, hours: int = 24) -> List[Notification]:
    """System broadcasts from the last ``hours`` hours, newest first."""
    query = (
        store.table("notifications")
        .eq("audience", NotificationAudience.SYSTEM.value)
        .gte("created_at", storage_cutoff(hours=hours))
        .order("created_at", ascending=False)
    )
    return _read(query, "system notifications")


def get_unread_count(store: StoreClient, user_id: str) -> int:
    try:
        return (
            store.table("notifications")
            .eq("audience", NotificationAudience.USER.value)
            .eq("user_id", user_id)
            .eq("read", False)
            .count()
        )
    except StoreError as exc:
        raise QueryError(f"Failed to count notifications: {exc.message}") from exc


def mark_notification_read(store: StoreClient, notification_id: str, user_id: str) -> Notification:
    """
    Mark one of the user's notifications as read.

    Raises:
        NotFoundError: If the notification does not exist
        AccessDeniedError: If it is addressed to someone else (or is a system broadcast)
    """
    try:
        row = store.table("notifications").eq("id", notification_id).first()
    except StoreError as exc:
        raise QueryError(f"Failed to fetch notification: {exc.message}") from exc
    if row is None:
        raise NotFoundError(f"Notification not found: {notification_id}")
    if row.get("user_id") != user_id:
        raise AccessDeniedError(f"Notification {notification_id} does not belong to user {user_id}")

    with store_write("mark notification read"):
        rows = store.table("notifications").eq("id", notification_id).update({"read": True})
    return row_to_notification(rows[0])


def mark_all_read(store: StoreClient, user_id: str) -> int:
    with store_write("mark notifications read"):
        rows = (
            store.table("notifications")
            .eq("audience", NotificationAudience.USER.value)
            .eq("user_id", user_id)
            .eq("read", False)
            .update({"read": True})
        )
    return len(rows)


def cleanup_old_notifications(store: StoreClient, days_old: int = 30) -> int:
    """Delete notifications (read or not) older than ``days_old`` days."""
    if days_old < 1:
        raise ValueError("days_old must be >= 1")
    with store_write("clean up notifications"):
        removed = (
            store.table("notifications")
            .lt("created_at", storage_cutoff(days=days_old))
            .delete()
        )
    logger.info("Removed %d notifications older than %d days", removed, days_old)
    return removed
