"""Complaints against pickups and their forward-only lifecycle."""

from typing import List, Optional

from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.domain.models import COMPLAINT_TRANSITIONS, Complaint, CreateComplaintInput, UpdateComplaintInput
from wastetrack.errors import InvalidTransitionError, NotFoundError, QueryError
from wastetrack.retrieval.mappers import row_to_complaint
from wastetrack.utils.id_generator import new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_now

from .audit_service import log_complaint_event
from .base import store_write

logger = get_logger(__name__)

RESOLVING_STATUSES = frozenset({"resolved", "closed"})


def create_complaint(store: StoreClient, data: CreateComplaintInput) -> Complaint:
    now = storage_now()
    row = {
        "id": new_record_id(),
        "user_id": data.user_id,
        "pickup_id": data.pickup_id,
        "description": data.description,
        "photo_url": data.photo_url,
        "status": "open",
        "priority": data.priority,
        "admin_notes": None,
        "resolved_at": None,
        "created_at": now,
        "updated_at": now,
    }
    with store_write("create complaint"):
        stored = store.table("complaints").insert(row)
    complaint = row_to_complaint(stored[0])
    log_complaint_event(
        store,
        data.user_id,
        "complaint_created",
        complaint.id,
        new_data={"pickup_id": data.pickup_id, "priority": data.priority},
    )
    return complaint


def get_complaint(store: StoreClient, complaint_id: str) -> Optional[Complaint]:
    try:
        row = store.table("complaints").eq("id", complaint_id).first()
    except StoreError as exc:
        raise QueryError(f"Failed to fetch complaint: {exc.message}") from exc
    return row_to_complaint(row) if row else None


def update_complaint(
    store: StoreClient,
    complaint_id: str,
    data: UpdateComplaintInput,
    actor_id: Optional[str] = None,
) -> Complaint:
    """
    Update status, priority or admin notes.

    Status only moves forward (open -> in_progress -> resolved -> closed,
    skipping allowed); setting the current status again is a no-op for the
    status. Entering resolved or closed stamps ``resolved_at`` once.

    Raises:
        NotFoundError: If the complaint does not exist
        InvalidTransitionError: If the status would move backwards
    """
    existing = get_complaint(store, complaint_id)
    if existing is None:
        raise NotFoundError(f"Complaint not found: {complaint_id}")

    values = {"updated_at": storage_now()}
    if data.status is not None and data.status != existing.status:
        if data.status not in COMPLAINT_TRANSITIONS[existing.status]:
            raise InvalidTransitionError(
                f"Cannot move complaint from {existing.status} to {data.status}"
            )
        values["status"] = data.status
        if data.status in RESOLVING_STATUSES and existing.resolved_at is None:
            values["resolved_at"] = values["updated_at"]
    if data.priority is not None:
        values["priority"] = data.priority
    if data.admin_notes is not None:
        values["admin_notes"] = data.admin_notes

    with store_write("update complaint"):
        rows = store.table("complaints").eq("id", complaint_id).update(values)
    updated = row_to_complaint(rows[0])

    resolving = values.get("status") in RESOLVING_STATUSES
    log_complaint_event(
        store,
        actor_id or existing.user_id,
        "complaint_resolved" if resolving else "complaint_updated",
        complaint_id,
        old_data={"status": existing.status, "priority": existing.priority},
        new_data={"status": updated.status, "priority": updated.priority},
    )
    return updated


def get_complaints_by_pickup(store: StoreClient, pickup_id: str) -> List[Complaint]:
    try:
        rows = store.table("complaints").eq("pickup_id", pickup_id).order("created_at", ascending=False).execute().data
    except StoreError as exc:
        raise QueryError(f"Failed to fetch complaints: {exc.message}") from exc
    return [row_to_complaint(row) for row in rows]
