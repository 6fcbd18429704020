"""Operator dashboard metrics."""

from collections import Counter
from typing import Any, Dict, List

from wastetrack.api.models import AdminMetrics, AreaMetrics, AreaMetricsReport
from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.errors import QueryError
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import utc_now_z

logger = get_logger(__name__)

OPEN_COMPLAINT_STATUSES = ("open", "in_progress")


def _rows(query, label: str) -> List[Dict[str, Any]]:
    try:
        return query.execute().data
    except StoreError as exc:
        logger.error("Failed to fetch %s: %s", label, exc.message)
        raise QueryError(f"Failed to fetch {label}: {exc.message}") from exc


def get_metrics(store: StoreClient) -> AdminMetrics:
    """
    Snapshot of user, pickup, complaint and revenue totals.

    Revenue counts completed payments only.
    """
    users = _rows(store.table("users").select("role", "is_active"), "user metrics")
    pickups = _rows(store.table("pickup_requests").select("status"), "pickup metrics")
    open_complaints = _rows(
        store.table("complaints").select("id").in_("status", OPEN_COMPLAINT_STATUSES),
        "complaint metrics",
    )
    payments = _rows(
        store.table("payments").select("amount").eq("status", "completed"),
        "payment metrics",
    )

    return AdminMetrics(
        users_by_role=dict(Counter(row["role"] for row in users)),
        active_users=sum(1 for row in users if row.get("is_active")),
        pickups_by_status=dict(Counter(row["status"] for row in pickups)),
        open_complaints=len(open_complaints),
        completed_revenue=round(sum(float(row["amount"] or 0) for row in payments), 2),
        generated_at_utc=utc_now_z(),
    )


def get_area_metrics(store: StoreClient) -> AreaMetricsReport:
    """Per-area pickup and open-complaint counts, areas sorted by name."""
    pickups = _rows(store.table("pickup_requests").select("id", "area", "status"), "pickup metrics")
    complaints = _rows(
        store.table("complaints").select("pickup_id").in_("status", OPEN_COMPLAINT_STATUSES),
        "complaint metrics",
    )

    area_by_pickup = {row["id"]: row.get("area") or "unknown" for row in pickups}
    areas: Dict[str, AreaMetrics] = {}
    for row in pickups:
        area = row.get("area") or "unknown"
        metrics = areas.setdefault(area, AreaMetrics(area=area))
        metrics.pickups += 1
        if row["status"] == "picked_up":
            metrics.picked_up += 1
    for row in complaints:
        area = area_by_pickup.get(row["pickup_id"])
        if area is not None:
            areas[area].open_complaints += 1
    for metrics in areas.values():
        metrics.completion_rate = (metrics.picked_up / metrics.pickups) * 100 if metrics.pickups else 0.0

    return AreaMetricsReport(
        areas=[areas[name] for name in sorted(areas)],
        generated_at_utc=utc_now_z(),
    )
