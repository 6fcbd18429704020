"""Append-only audit trail.

Writing an audit entry must never break the operation being audited, so
``log_event`` logs and swallows its own failures and returns None.
"""

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.domain.models import AuditLog, CreateAuditLogInput
from wastetrack.retrieval.contracts import AuditLogFilters, PaginatedResponse, PaginationOptions
from wastetrack.retrieval.mappers import row_to_audit_log
from wastetrack.retrieval.translator import get_audit_logs
from wastetrack.utils.id_generator import new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_cutoff, storage_now

from .base import dump_json, store_write

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


def log_event(store: StoreClient, entry: CreateAuditLogInput | Dict[str, Any]) -> Optional[AuditLog]:
    """
    Record an audit entry.

    Args:
        store: Store client
        entry: Validated input or a plain dict with the same fields

    Returns:
        The stored AuditLog, or None if validation or the write failed
    """
    try:
        if not isinstance(entry, CreateAuditLogInput):
            entry = CreateAuditLogInput.model_validate(entry)
        rows = store.table("audit_logs").insert({
            "id": new_record_id(),
            "user_id": entry.user_id,
            "action": entry.action,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "old_data_json": dump_json(entry.old_data),
            "new_data_json": dump_json(entry.new_data),
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "metadata_json": dump_json(entry.metadata),
            "timestamp": storage_now(),
        })
    except (StoreError, ValidationError) as exc:
        logger.warning("Audit log write failed: %s", exc)
        return None
    return row_to_audit_log(rows[0]) if rows else None


def _entity_event(
    store: StoreClient,
    entity_type: str,
    user_id: str,
    action: str,
    entity_id: str,
    old_data: Optional[Dict[str, Any]] = None,
    new_data: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    return log_event(store, {
        "user_id": user_id or SYSTEM_ACTOR,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "old_data": old_data,
        "new_data": new_data,
        "metadata": metadata,
    })


def log_pickup_event(store, user_id, action, pickup_id, old_data=None, new_data=None, metadata=None):
    return _entity_event(store, "pickup_request", user_id, action, pickup_id, old_data, new_data, metadata)


def log_payment_event(store, user_id, action, payment_id, old_data=None, new_data=None, metadata=None):
    return _entity_event(store, "payment", user_id, action, payment_id, old_data, new_data, metadata)


def log_complaint_event(store, user_id, action, complaint_id, old_data=None, new_data=None, metadata=None):
    return _entity_event(store, "complaint", user_id, action, complaint_id, old_data, new_data, metadata)


def log_user_event(store, user_id, action, target_user_id, old_data=None, new_data=None, metadata=None):
    return _entity_event(store, "user", user_id, action, target_user_id, old_data, new_data, metadata)


def get_user_audit_logs(store: StoreClient, user_id: str, limit: int = 50) -> List[AuditLog]:
    """Most recent entries performed by ``user_id``."""
    page = get_audit_logs(store, AuditLogFilters(user_id=user_id), PaginationOptions(limit=limit))
    return page.data


def get_entity_audit_logs(
    store: StoreClient,
    entity_type: str,
    entity_id: str,
    pagination: PaginationOptions | None = None,
) -> PaginatedResponse:
    """History of one entity, newest first."""
    return get_audit_logs(store, AuditLogFilters(entity_type=entity_type, entity_id=entity_id), pagination)


def purge_audit_logs(store: StoreClient, older_than_days: int) -> int:
    """Delete entries older than ``older_than_days``; returns how many were removed."""
    if older_than_days < 1:
        raise ValueError("older_than_days must be >= 1")
    cutoff = storage_cutoff(days=older_than_days)
    with store_write("purge audit logs"):
        removed = store.table("audit_logs").lt("timestamp", cutoff).delete()
    logger.info("Purged %d audit log entries older than %d days", removed, older_than_days)
    return removed
