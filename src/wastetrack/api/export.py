"""Export API: paged list queries serialized for external consumption."""

import csv
import json
from io import StringIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from ..database.store_client import StoreClient
from ..retrieval.aggregation import get_customer_details
from ..retrieval.contracts import (
    PaginatedResponse,
    PaginationOptions,
    PaymentFilters,
    PickupRequestFilters,
    SortOptions,
    UserFilters,
)
from ..retrieval.translator import get_payments, get_pickup_requests
from ..services.audit_service import log_event
from ..utils.time import utc_now_z

EXPORT_SCHEMA_VERSION = "1"

PAYMENT_COLUMNS = [
    "id",
    "user_id",
    "amount",
    "currency",
    "payment_method",
    "reference",
    "status",
    "created_at",
]

PICKUP_COLUMNS = [
    "id",
    "user_id",
    "collector_id",
    "scheduled_date",
    "status",
    "area",
    "street",
    "house_number",
    "notes",
    "completed_at",
    "created_at",
]

CUSTOMER_COLUMNS = [
    "id",
    "name",
    "phone",
    "email",
    "area",
    "street",
    "house_number",
    "is_active",
    "subscription_plan",
    "subscription_status",
    "total_payments",
    "last_payment_date",
    "pickup_count",
    "last_pickup_date",
    "completion_rate",
]


def _pickup_row(pickup) -> Dict[str, Any]:
    row = pickup.model_dump(mode="json", exclude={"location"})
    row.update(pickup.location.model_dump(mode="json", exclude={"coordinates"}))
    return row


def _customer_row(customer) -> Dict[str, Any]:
    row = customer.model_dump(mode="json", exclude={"location", "subscription"})
    row.update(customer.location.model_dump(mode="json", exclude={"coordinates"}))
    row["subscription_plan"] = customer.subscription.plan_type if customer.subscription else None
    row["subscription_status"] = customer.subscription.status if customer.subscription else None
    return row


def _render(
    page: PaginatedResponse,
    columns: List[str],
    flatten: Callable[[BaseModel], Dict[str, Any]],
    format: str,
    out: Path | None,
) -> str:
    if format == "json":
        export_data = {
            "export_schema_version": EXPORT_SCHEMA_VERSION,
            "exported_at_utc": utc_now_z(),
            "data": [item.model_dump(mode="json") for item in page.data],
            "pagination": page.pagination.model_dump(),
        }
        output = json.dumps(export_data, indent=2, sort_keys=True)
        if out:
            out.write_text(output, encoding="utf-8")
            return f"Exported to {out}"
        return output
    elif format == "csv":
        # Stable column order, no nested structures
        buffer = StringIO()
        writer = csv.writer(buffer)
        writer.writerow(columns)
        for item in page.data:
            row = flatten(item)
            writer.writerow(["" if row.get(col) is None else row.get(col) for col in columns])
        output = buffer.getvalue()
        if out:
            out.write_text(output, encoding="utf-8", newline="")
            return f"Exported to {out}"
        return output
    else:
        raise ValueError(f"Unsupported format: {format}")


def _audit_export(store: StoreClient, actor_id: Optional[str], kind: str, format: str, rows: int) -> None:
    log_event(store, {
        "user_id": actor_id or "system",
        "action": "data_export",
        "entity_type": "system",
        "metadata": {"export": kind, "format": format, "rows": rows},
    })


def export_payments(
    store: StoreClient,
    filters: PaymentFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
    format: str = "json",
    out: Path | None = None,
    actor_id: Optional[str] = None,
) -> str:
    """
    Export one page of payments.

    Args:
        store: Store client
        filters: Payment filters
        pagination: Page to export (limit is capped like any list query)
        sort: Sort options
        format: "json" or "csv"
        out: Output file path (if None, returns as string)
        actor_id: Who requested the export, for the audit trail

    Returns:
        Exported data as string (if out is None) or a confirmation message
    """
    if format not in ("json", "csv"):
        raise ValueError(f"Unsupported format: {format}")
    page = get_payments(store, filters, pagination, sort)
    output = _render(page, PAYMENT_COLUMNS, lambda p: p.model_dump(mode="json"), format, out)
    _audit_export(store, actor_id, "payments", format, len(page.data))
    return output


def export_pickups(
    store: StoreClient,
    filters: PickupRequestFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
    format: str = "json",
    out: Path | None = None,
    actor_id: Optional[str] = None,
) -> str:
    if format not in ("json", "csv"):
        raise ValueError(f"Unsupported format: {format}")
    page = get_pickup_requests(store, filters, pagination, sort)
    output = _render(page, PICKUP_COLUMNS, _pickup_row, format, out)
    _audit_export(store, actor_id, "pickups", format, len(page.data))
    return output


def export_customers(
    store: StoreClient,
    collector_id: str,
    filters: UserFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
    format: str = "json",
    out: Path | None = None,
    actor_id: Optional[str] = None,
) -> str:
    """Export one page of a collector's customers with their subscription/payment/pickup stats."""
    if format not in ("json", "csv"):
        raise ValueError(f"Unsupported format: {format}")
    page = get_customer_details(store, collector_id, filters, pagination, sort)
    output = _render(page, CUSTOMER_COLUMNS, _customer_row, format, out)
    _audit_export(store, actor_id or collector_id, "customers", format, len(page.data))
    return output
