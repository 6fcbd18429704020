"""Convert raw store rows into typed entities."""

import json
import re
from typing import Any, Dict, Optional, Tuple

from wastetrack.domain.models import (
    AuditLog,
    Complaint,
    Location,
    Notification,
    NotificationAudience,
    Payment,
    PickupRequest,
    Subscription,
    SubscriptionPricing,
    User,
)
from wastetrack.utils.time import parse_timestamp

# Column holding the payment reference, newest schema generation first
PAYMENT_REFERENCE_COLUMNS: Tuple[str, ...] = ("payment_reference", "reference")

_POINT_RE = re.compile(r"POINT\(([^)]+)\)")


def payment_reference_columns() -> Tuple[str, ...]:
    """Reference column names to try, in order, against the live payments table."""
    return PAYMENT_REFERENCE_COLUMNS


def payment_reference_from_row(row: Dict[str, Any]) -> str:
    for column in PAYMENT_REFERENCE_COLUMNS:
        if row.get(column):
            return row[column]
    return f"PAY-{row['id']}"


def parse_coordinates(value: Any) -> Optional[Tuple[float, float]]:
    """Parse ``POINT(lng lat)`` into ``(lng, lat)``; anything else yields None."""
    if not isinstance(value, str):
        return None
    match = _POINT_RE.search(value)
    if not match:
        return None
    parts = match.group(1).split()
    if len(parts) != 2:
        return None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None


def format_coordinates(coordinates: Optional[Tuple[float, float]]) -> Optional[str]:
    if coordinates is None:
        return None
    lng, lat = coordinates
    return f"POINT({lng} {lat})"


def _load_json(value: Any) -> Optional[Dict[str, Any]]:
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return value
    try:
        loaded = json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return None
    return loaded if isinstance(loaded, dict) else None


def _location(row: Dict[str, Any]) -> Location:
    return Location(
        area=row.get("area") or "",
        street=row.get("street") or "",
        house_number=row.get("house_number") or "",
        coordinates=parse_coordinates(row.get("coordinates")),
    )


def row_to_user(row: Dict[str, Any]) -> User:
    return User(
        id=row["id"],
        email=row.get("email") or None,
        phone=row.get("phone") or "",
        name=row.get("name") or "",
        role=row["role"],
        location=_location(row),
        is_active=bool(row.get("is_active", True)),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row.get("updated_at") or row["created_at"]),
    )


def row_to_pickup_request(row: Dict[str, Any]) -> PickupRequest:
    return PickupRequest(
        id=row["id"],
        user_id=row["user_id"],
        collector_id=row.get("collector_id") or None,
        scheduled_date=parse_timestamp(row["scheduled_date"]).date(),
        status=row["status"],
        notes=row.get("notes") or None,
        completed_at=parse_timestamp(row.get("completed_at")),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row.get("updated_at") or row["created_at"]),
        location=_location(row),
    )


def row_to_payment(row: Dict[str, Any]) -> Payment:
    return Payment(
        id=row["id"],
        user_id=row["user_id"],
        amount=float(row["amount"]),
        currency=row.get("currency") or "NGN",
        payment_method=row["payment_method"],
        reference=payment_reference_from_row(row),
        status=row["status"],
        created_at=parse_timestamp(row["created_at"]),
        metadata=_load_json(row.get("metadata_json")),
    )


def row_to_complaint(row: Dict[str, Any]) -> Complaint:
    return Complaint(
        id=row["id"],
        user_id=row["user_id"],
        pickup_id=row["pickup_id"],
        description=row["description"],
        photo_url=row.get("photo_url") or None,
        status=row["status"],
        priority=row.get("priority") or "medium",
        created_at=parse_timestamp(row["created_at"]),
        resolved_at=parse_timestamp(row.get("resolved_at")),
        admin_notes=row.get("admin_notes") or None,
    )


def row_to_subscription(row: Dict[str, Any]) -> Subscription:
    end_date = parse_timestamp(row.get("end_date"))
    return Subscription(
        id=row["id"],
        user_id=row["user_id"],
        plan_type=row["plan_type"],
        status=row["status"],
        start_date=parse_timestamp(row["start_date"]).date(),
        end_date=end_date.date() if end_date else None,
        pricing=SubscriptionPricing(
            amount=float(row["amount"]),
            currency=row.get("currency") or "NGN",
            billing_cycle=row.get("billing_cycle") or "",
        ),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row.get("updated_at") or row["created_at"]),
    )


def row_to_audit_log(row: Dict[str, Any]) -> AuditLog:
    return AuditLog(
        id=row["id"],
        user_id=row["user_id"],
        action=row["action"],
        entity_type=row["entity_type"],
        entity_id=row.get("entity_id") or None,
        old_data=_load_json(row.get("old_data_json")),
        new_data=_load_json(row.get("new_data_json")),
        ip_address=row.get("ip_address") or None,
        user_agent=row.get("user_agent") or None,
        timestamp=parse_timestamp(row["timestamp"]),
        metadata=_load_json(row.get("metadata_json")),
    )


def row_to_notification(row: Dict[str, Any]) -> Notification:
    return Notification(
        id=row["id"],
        audience=NotificationAudience(row.get("audience") or NotificationAudience.USER.value),
        user_id=row.get("user_id") or None,
        type=row["type"],
        title=row["title"],
        message=row["message"],
        data=_load_json(row.get("data_json")),
        read=bool(row.get("read")),
        created_at=parse_timestamp(row["created_at"]),
    )
