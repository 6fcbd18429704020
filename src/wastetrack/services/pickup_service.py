"""Pickup request lifecycle and collector schedules."""

from datetime import date
from typing import Any, Dict, List, Optional

from wastetrack.api.models import CollectorStats
from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.domain.models import (
    PENDING_PICKUP_STATUSES,
    CreatePickupRequestInput,
    LocationInput,
    PickupRequest,
    UpdatePickupStatusInput,
)
from wastetrack.errors import NotFoundError, QueryError, ServiceError
from wastetrack.retrieval.mappers import format_coordinates, row_to_pickup_request
from wastetrack.utils.id_generator import new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_cutoff, storage_now

from .audit_service import log_pickup_event
from .base import store_write

logger = get_logger(__name__)

STATUS_AUDIT_ACTIONS = {
    "picked_up": "pickup_completed",
    "missed": "pickup_missed",
}


def _read(query, label: str) -> List[Dict[str, Any]]:
    try:
        return query.execute().data
    except StoreError as exc:
        logger.error("Failed to fetch %s: %s", label, exc.message)
        raise QueryError(f"Failed to fetch {label}: {exc.message}") from exc


def _location_snapshot(store: StoreClient, data: CreatePickupRequestInput) -> Dict[str, Any]:
    """Address for a new pickup: the resident's profile, else the address given with the request."""
    rows = _read(
        store.table("users").select("area", "street", "house_number", "coordinates").eq("id", data.user_id),
        "user location",
    )
    profile = rows[0] if rows else {}
    if profile.get("area") and profile.get("street"):
        return {
            "area": profile.get("area"),
            "street": profile.get("street"),
            "house_number": profile.get("house_number") or "",
            "coordinates": profile.get("coordinates"),
        }
    if data.location is not None:
        return {
            "area": data.location.area,
            "street": data.location.street,
            "house_number": data.location.house_number,
            "coordinates": format_coordinates(data.location.coordinates),
        }
    raise ServiceError(f"Failed to create pickup request: no location on file for user {data.user_id}")


def create_pickup_request(store: StoreClient, data: CreatePickupRequestInput) -> PickupRequest:
    """
    Create a pickup request in ``requested`` status.

    The pickup stores its own copy of the address so later profile changes
    only move it while it is still pending.

    Raises:
        ServiceError: If no address is available or the write fails
    """
    now = storage_now()
    row = {
        "id": new_record_id(),
        "user_id": data.user_id,
        "collector_id": None,
        "scheduled_date": data.scheduled_date.isoformat(),
        "status": "requested",
        "notes": data.notes,
        "completed_at": None,
        "created_at": now,
        "updated_at": now,
        **_location_snapshot(store, data),
    }
    with store_write("create pickup request"):
        stored = store.table("pickup_requests").insert(row)

    pickup = row_to_pickup_request(stored[0])
    log_pickup_event(
        store,
        data.user_id,
        "pickup_created",
        pickup.id,
        new_data={"scheduled_date": row["scheduled_date"], "status": pickup.status},
    )
    return pickup


def get_pickup_request(store: StoreClient, pickup_id: str) -> Optional[PickupRequest]:
    rows = _read(store.table("pickup_requests").eq("id", pickup_id).limit(1), "pickup request")
    return row_to_pickup_request(rows[0]) if rows else None


def update_pickup_status(
    store: StoreClient,
    pickup_id: str,
    data: UpdatePickupStatusInput,
    actor_id: Optional[str] = None,
) -> PickupRequest:
    """
    Move a pickup to a new status.

    ``picked_up`` stamps ``completed_at``; a collector id in the input assigns
    the pickup to that collector.

    Raises:
        NotFoundError: If the pickup does not exist
    """
    existing = get_pickup_request(store, pickup_id)
    if existing is None:
        raise NotFoundError(f"Pickup request not found: {pickup_id}")

    now = storage_now()
    values: Dict[str, Any] = {"status": data.status, "updated_at": now}
    if data.status == "picked_up":
        values["completed_at"] = now
    if data.collector_id:
        values["collector_id"] = data.collector_id
    if data.notes is not None:
        values["notes"] = data.notes

    with store_write("update pickup status"):
        rows = store.table("pickup_requests").eq("id", pickup_id).update(values)

    updated = row_to_pickup_request(rows[0])
    log_pickup_event(
        store,
        actor_id or data.collector_id or existing.user_id,
        STATUS_AUDIT_ACTIONS.get(data.status, "pickup_updated"),
        pickup_id,
        old_data={"status": existing.status, "collector_id": existing.collector_id},
        new_data={"status": updated.status, "collector_id": updated.collector_id},
    )
    return updated


def get_next_pickup(store: StoreClient, user_id: str) -> Optional[PickupRequest]:
    """Earliest pending pickup scheduled today or later for ``user_id``."""
    rows = _read(
        store.table("pickup_requests")
        .eq("user_id", user_id)
        .in_("status", PENDING_PICKUP_STATUSES)
        .gte("scheduled_date", date.today().isoformat())
        .order("scheduled_date", ascending=True)
        .limit(1),
        "next pickup",
    )
    return row_to_pickup_request(rows[0]) if rows else None


def get_collector_pickups_for_date(store: StoreClient, collector_id: str, on_date: date) -> List[PickupRequest]:
    rows = _read(
        store.table("pickup_requests")
        .eq("collector_id", collector_id)
        .eq("scheduled_date", on_date.isoformat())
        .order("street", ascending=True),
        "collector pickups",
    )
    return [row_to_pickup_request(row) for row in rows]


def get_collector_stats(store: StoreClient, collector_id: str, days: int = 30) -> CollectorStats:
    """Status counts for a collector's pickups created in the last ``days`` days."""
    rows = _read(
        store.table("pickup_requests")
        .select("status")
        .eq("collector_id", collector_id)
        .gte("created_at", storage_cutoff(days=days)),
        "collector stats",
    )
    statuses = [row["status"] for row in rows]
    total = len(statuses)
    picked_up = statuses.count("picked_up")
    return CollectorStats(
        collector_id=collector_id,
        days=days,
        total=total,
        picked_up=picked_up,
        missed=statuses.count("missed"),
        pending=sum(1 for s in statuses if s in PENDING_PICKUP_STATUSES),
        completion_rate=(picked_up / total) * 100 if total else 0.0,
    )


def update_location_for_future_pickups(store: StoreClient, user_id: str, location: LocationInput) -> int:
    """Copy ``location`` onto the user's pending pickups scheduled after today; returns rows changed."""
    values = {
        "area": location.area,
        "street": location.street,
        "house_number": location.house_number,
        "coordinates": format_coordinates(location.coordinates),
        "updated_at": storage_now(),
    }
    with store_write("update pickup locations"):
        rows = (
            store.table("pickup_requests")
            .eq("user_id", user_id)
            .in_("status", PENDING_PICKUP_STATUSES)
            .gt("scheduled_date", date.today().isoformat())
            .update(values)
        )
    logger.info("Moved %d pending pickups for user %s to new location", len(rows), user_id)
    return len(rows)
