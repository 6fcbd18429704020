"""Customer details for a collector: paged residents enriched from related tables."""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Sequence

from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.domain.models import User
from wastetrack.errors import QueryError
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import parse_timestamp

from .contracts import (
    CustomerDetails,
    PaginatedResponse,
    PaginationOptions,
    SortOptions,
    UserFilters,
    empty_page,
)
from .mappers import row_to_subscription
from .translator import get_users

logger = get_logger(__name__)

COMPLETED_PICKUP_STATUS = "picked_up"


def _fetch(query, label: str) -> List[Dict[str, Any]]:
    try:
        return query.execute().data
    except StoreError as exc:
        logger.error("Failed to fetch %s: %s", label, exc.message)
        raise QueryError(f"Failed to fetch {label}: {exc.message}") from exc


def find_collector_customer_ids(store: StoreClient, collector_id: str) -> List[str]:
    """Distinct resident ids that have ever had a pickup assigned to ``collector_id``, first-seen order."""
    rows = _fetch(
        store.table("pickup_requests").select("user_id").eq("collector_id", collector_id),
        "collector customers",
    )
    return list(dict.fromkeys(row["user_id"] for row in rows if row.get("user_id")))


def fetch_related_rows(
    store: StoreClient,
    collector_id: str,
    user_ids: Sequence[str],
) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Batch-fetch the rows needed to enrich ``user_ids``.

    The three reads touch disjoint tables and run concurrently; the call
    returns once all of them have finished.

    Returns:
        (active subscriptions, completed payments, pickups with this collector)
    """
    ids = list(user_ids)
    queries = {
        "subscriptions": store.table("subscriptions")
        .in_("user_id", ids)
        .eq("status", "active")
        .order("created_at", ascending=False),
        "payments": store.table("payments")
        .select("user_id", "amount", "created_at")
        .in_("user_id", ids)
        .eq("status", "completed"),
        "pickup counts": store.table("pickup_requests")
        .select("user_id", "status", "created_at")
        .eq("collector_id", collector_id)
        .in_("user_id", ids),
    }
    with ThreadPoolExecutor(max_workers=len(queries)) as executor:
        futures = {label: executor.submit(_fetch, query, label) for label, query in queries.items()}
        results = {label: future.result() for label, future in futures.items()}
    return results["subscriptions"], results["payments"], results["pickup counts"]


def _latest(rows: Iterable[Dict[str, Any]]):
    stamps = [parse_timestamp(row["created_at"]) for row in rows if row.get("created_at")]
    return max(stamps) if stamps else None


def join_customer_details(
    users: Sequence[User],
    subscriptions: Sequence[Dict[str, Any]],
    payments: Sequence[Dict[str, Any]],
    pickups: Sequence[Dict[str, Any]],
) -> List[CustomerDetails]:
    """
    Join users with their related rows, one CustomerDetails per user in input order.

    Pure function: no store access. ``completion_rate`` is the percentage of
    the user's pickups that reached ``picked_up`` (0 when there are none).
    A user with several active plans gets the most recently created one.
    """
    subscriptions_by_user: Dict[str, Dict[str, Any]] = {}
    for row in subscriptions:
        kept = subscriptions_by_user.get(row["user_id"])
        # Stored timestamps have fixed precision, so string order is time order
        if kept is None or (row.get("created_at") or "") > (kept.get("created_at") or ""):
            subscriptions_by_user[row["user_id"]] = row

    payments_by_user: Dict[str, List[Dict[str, Any]]] = {}
    for row in payments:
        payments_by_user.setdefault(row["user_id"], []).append(row)

    pickups_by_user: Dict[str, List[Dict[str, Any]]] = {}
    for row in pickups:
        pickups_by_user.setdefault(row["user_id"], []).append(row)

    details: List[CustomerDetails] = []
    for user in users:
        user_payments = payments_by_user.get(user.id, [])
        user_pickups = pickups_by_user.get(user.id, [])
        subscription_row = subscriptions_by_user.get(user.id)

        completed = sum(1 for p in user_pickups if p.get("status") == COMPLETED_PICKUP_STATUS)
        completion_rate = (completed / len(user_pickups)) * 100 if user_pickups else 0.0

        details.append(
            CustomerDetails(
                **user.model_dump(),
                subscription=row_to_subscription(subscription_row) if subscription_row else None,
                total_payments=round(sum(float(p.get("amount") or 0) for p in user_payments), 2),
                last_payment_date=_latest(user_payments),
                pickup_count=len(user_pickups),
                last_pickup_date=_latest(user_pickups),
                completion_rate=completion_rate,
            )
        )
    return details


def get_customer_details(
    store: StoreClient,
    collector_id: str,
    filters: UserFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
) -> PaginatedResponse:
    """
    Page of a collector's residents with subscription, payment and pickup stats.

    Paging is applied to the resident list before enrichment, so the related
    reads are bounded by the page size rather than the collector's customer
    count. A collector with no pickup history (or an unknown collector)
    yields an empty page without any related reads.

    Args:
        store: Store client
        collector_id: Collector whose customers to list
        filters: User-level filters (is_active, area, search_term); role is
            always resident
        pagination: Page request
        sort: Sort on user columns (defaults to name asc)

    Returns:
        PaginatedResponse of CustomerDetails

    Raises:
        QueryError: If any underlying read fails
    """
    filters = filters or UserFilters()
    pagination = pagination or PaginationOptions()
    sort = sort or SortOptions(field="name", direction="asc")

    customer_ids = find_collector_customer_ids(store, collector_id)
    if not customer_ids:
        return empty_page(pagination)

    user_filters = UserFilters(
        role=["resident"],
        is_active=filters.is_active,
        area=filters.area,
        search_term=filters.search_term,
    )
    users_page = get_users(store, user_filters, pagination, sort, user_ids=customer_ids)
    if not users_page.data:
        return empty_page(pagination, users_page.pagination.total)

    page_ids = [user.id for user in users_page.data]
    subscriptions, payments, pickups = fetch_related_rows(store, collector_id, page_ids)

    return PaginatedResponse(
        data=join_customer_details(users_page.data, subscriptions, payments, pickups),
        pagination=users_page.pagination,
    )
