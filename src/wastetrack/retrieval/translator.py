"""Query translator: filter objects in, paginated typed entities out.

Each ``get_*`` function turns a partial filter object into store predicates
(equality, set membership, inclusive ranges, case-insensitive substring
search OR-ed across the entity's text fields), applies one sort, fetches one
page plus the exact match count and maps rows to entities. Read-only.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence

from wastetrack.database.store_client import ColumnNotFoundError, QueryBuilder, StoreClient, StoreError, like_pattern
from wastetrack.errors import QueryError
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import to_storage

from .contracts import (
    AuditLogFilters,
    ComplaintFilters,
    DateRangeFilter,
    GlobalSearchResults,
    PaginatedResponse,
    PaginationOptions,
    PaymentFilters,
    PickupRequestFilters,
    SortOptions,
    UserFilters,
    calculate_pagination,
)
from .mappers import (
    payment_reference_columns,
    row_to_audit_log,
    row_to_complaint,
    row_to_payment,
    row_to_pickup_request,
    row_to_user,
)

logger = get_logger(__name__)

PICKUP_SEARCH_FIELDS = ("area", "street", "house_number", "notes")
COMPLAINT_SEARCH_FIELDS = ("description", "admin_notes")
USER_SEARCH_FIELDS = ("name", "email", "phone", "area", "street")

PAYMENT_SORT_ALIASES = {"createdAt": "created_at"}

SEARCH_DATA_TYPES = ("pickups", "payments", "complaints", "users")


def _apply_text_search(query: QueryBuilder, search_term: Optional[str], fields: Sequence[str]) -> QueryBuilder:
    if search_term and search_term.strip():
        query = query.or_ilike(fields, search_term.strip())
    return query


def _apply_date_range(query: QueryBuilder, filters: DateRangeFilter, column: str = "created_at") -> QueryBuilder:
    if filters.start_date is not None:
        query = query.gte(column, to_storage(filters.start_date))
    if filters.end_date is not None:
        query = query.lte(column, to_storage(filters.end_date))
    return query


def _apply_sort_and_page(query: QueryBuilder, sort: SortOptions, pagination: PaginationOptions) -> QueryBuilder:
    return query.order(sort.field, ascending=sort.ascending).range(pagination.offset, pagination.end)


def _run_page(
    query: QueryBuilder,
    entity_label: str,
    pagination: PaginationOptions,
    mapper: Callable[[Dict[str, Any]], Any],
) -> PaginatedResponse:
    """Execute a paged query and wrap store failures with the entity name."""
    try:
        result = query.execute(count=True)
    except StoreError as exc:
        logger.error("Failed to fetch %s: %s (code=%s)", entity_label, exc.message, exc.code)
        raise QueryError(f"Failed to fetch {entity_label}: {exc.message}") from exc
    return _page_from_result(result.data, result.count, entity_label, pagination, mapper)


def _page_from_result(rows, count, entity_label, pagination, mapper) -> PaginatedResponse:
    try:
        data = [mapper(row) for row in rows]
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("Failed to map %s row: %s", entity_label, exc)
        raise QueryError(f"Failed to map {entity_label}: {exc}") from exc
    return PaginatedResponse(
        data=data,
        pagination=calculate_pagination(pagination.page, pagination.limit, count or 0),
    )


def get_pickup_requests(
    store: StoreClient,
    filters: PickupRequestFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
) -> PaginatedResponse:
    """
    Page of pickup requests matching ``filters``.

    Args:
        store: Store client
        filters: Optional filters (user, collector, status set, area substring,
            created_at range, free text over area/street/house number/notes)
        pagination: Page request (defaults to page 1, 20 rows)
        sort: Sort field/direction (defaults to created_at desc)

    Returns:
        PaginatedResponse of PickupRequest

    Raises:
        QueryError: If the store rejects the query
    """
    filters = filters or PickupRequestFilters()
    pagination = pagination or PaginationOptions()
    sort = sort or SortOptions()

    query = store.table("pickup_requests")
    if filters.user_id:
        query = query.eq("user_id", filters.user_id)
    if filters.collector_id:
        query = query.eq("collector_id", filters.collector_id)
    if filters.status:
        query = query.in_("status", filters.status)
    if filters.area:
        query = query.ilike("area", like_pattern(filters.area))
    query = _apply_date_range(query, filters)
    query = _apply_text_search(query, filters.search_term, PICKUP_SEARCH_FIELDS)
    query = _apply_sort_and_page(query, sort, pagination)

    return _run_page(query, "pickup requests", pagination, row_to_pickup_request)


def _build_payment_query(
    store: StoreClient,
    filters: PaymentFilters,
    pagination: PaginationOptions,
    sort: SortOptions,
    reference_column: str,
) -> QueryBuilder:
    query = store.table("payments")
    if filters.user_id:
        query = query.eq("user_id", filters.user_id)
    if filters.payment_method:
        query = query.in_("payment_method", filters.payment_method)
    if filters.status:
        query = query.in_("status", filters.status)
    if filters.min_amount is not None:
        query = query.gte("amount", filters.min_amount)
    if filters.max_amount is not None:
        query = query.lte("amount", filters.max_amount)
    query = _apply_date_range(query, filters)
    if filters.search_term and filters.search_term.strip():
        query = query.ilike(reference_column, like_pattern(filters.search_term.strip()))
    sort_field = PAYMENT_SORT_ALIASES.get(sort.field, sort.field)
    return query.order(sort_field, ascending=sort.ascending).range(pagination.offset, pagination.end)


def get_payments(
    store: StoreClient,
    filters: PaymentFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
) -> PaginatedResponse:
    """
    Page of payments matching ``filters``.

    The free-text search runs against the payment reference. The payments
    table has been through a column rename (``reference`` ->
    ``payment_reference``) and either generation may be live, so when the
    search column is missing the same query is retried once with the other
    name before giving up.

    Raises:
        QueryError: If the store rejects the query on every reference column
    """
    filters = filters or PaymentFilters()
    pagination = pagination or PaginationOptions()
    sort = sort or SortOptions()

    searching = bool(filters.search_term and filters.search_term.strip())
    columns = payment_reference_columns()
    first_error: Optional[StoreError] = None

    for attempt, reference_column in enumerate(columns):
        query = _build_payment_query(store, filters, pagination, sort, reference_column)
        logger.debug(
            "Executing payments query: user_id=%s page=%s limit=%s sort=%s reference_column=%s",
            filters.user_id, pagination.page, pagination.limit, sort.field, reference_column,
        )
        try:
            result = query.execute(count=True)
        except ColumnNotFoundError as exc:
            first_error = first_error or exc
            retryable = searching and exc.column == reference_column and attempt + 1 < len(columns)
            if retryable:
                logger.warning(
                    "payments.%s not found; retrying search with %s", reference_column, columns[attempt + 1]
                )
                continue
            # Report the reference-column failure only if that is what finally failed
            error = first_error if exc.column in columns else exc
            logger.error("Failed to fetch payments: %s (code=%s)", error.message, error.code)
            raise QueryError(f"Failed to fetch payments: {error.message}") from exc
        except StoreError as exc:
            logger.error("Failed to fetch payments: %s (code=%s)", exc.message, exc.code)
            raise QueryError(f"Failed to fetch payments: {exc.message}") from exc
        return _page_from_result(result.data, result.count, "payments", pagination, row_to_payment)

    # Only reachable if no reference columns are configured
    raise QueryError("Failed to fetch payments: no reference column available")


def get_complaints(
    store: StoreClient,
    filters: ComplaintFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
) -> PaginatedResponse:
    """Page of complaints; free text searches description and admin notes."""
    filters = filters or ComplaintFilters()
    pagination = pagination or PaginationOptions()
    sort = sort or SortOptions()

    query = store.table("complaints")
    if filters.user_id:
        query = query.eq("user_id", filters.user_id)
    if filters.pickup_id:
        query = query.eq("pickup_id", filters.pickup_id)
    if filters.status:
        query = query.in_("status", filters.status)
    if filters.priority:
        query = query.in_("priority", filters.priority)
    query = _apply_date_range(query, filters)
    query = _apply_text_search(query, filters.search_term, COMPLAINT_SEARCH_FIELDS)
    query = _apply_sort_and_page(query, sort, pagination)

    return _run_page(query, "complaints", pagination, row_to_complaint)


def get_users(
    store: StoreClient,
    filters: UserFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
    *,
    user_ids: Optional[Sequence[str]] = None,
) -> PaginatedResponse:
    """
    Page of users.

    Args:
        user_ids: Restrict to these ids (used to page a precomputed id set)
    """
    filters = filters or UserFilters()
    pagination = pagination or PaginationOptions()
    sort = sort or SortOptions()

    query = store.table("users")
    if user_ids is not None:
        query = query.in_("id", list(user_ids))
    if filters.role:
        query = query.in_("role", filters.role)
    if filters.is_active is not None:
        query = query.eq("is_active", filters.is_active)
    if filters.area:
        query = query.ilike("area", like_pattern(filters.area))
    query = _apply_text_search(query, filters.search_term, USER_SEARCH_FIELDS)
    query = _apply_sort_and_page(query, sort, pagination)

    return _run_page(query, "users", pagination, row_to_user)


def get_audit_logs(
    store: StoreClient,
    filters: AuditLogFilters | None = None,
    pagination: PaginationOptions | None = None,
    sort: SortOptions | None = None,
) -> PaginatedResponse:
    """Page of audit log entries, newest first by default."""
    filters = filters or AuditLogFilters()
    pagination = pagination or PaginationOptions(limit=50)
    sort = sort or SortOptions(field="timestamp", direction="desc")

    query = store.table("audit_logs")
    if filters.user_id:
        query = query.eq("user_id", filters.user_id)
    if filters.action:
        query = query.eq("action", filters.action)
    if filters.entity_type:
        query = query.eq("entity_type", filters.entity_type)
    if filters.entity_id:
        query = query.eq("entity_id", filters.entity_id)
    query = _apply_date_range(query, filters, column="timestamp")
    query = _apply_sort_and_page(query, sort, pagination)

    return _run_page(query, "audit logs", pagination, row_to_audit_log)


def global_search(
    store: StoreClient,
    search_term: str,
    user_id: Optional[str] = None,
    data_types: Sequence[str] = ("pickups", "payments", "complaints"),
    limit: int = 10,
) -> GlobalSearchResults:
    """
    Search several entity kinds at once; each kind returns its first page.

    Users are only searched when no ``user_id`` scope is given (admin view).
    A blank term returns empty results without touching the store.
    """
    results = GlobalSearchResults()
    if not search_term or not search_term.strip():
        return results

    unknown = [t for t in data_types if t not in SEARCH_DATA_TYPES]
    if unknown:
        raise ValueError(f"Unknown search data types: {', '.join(unknown)}")

    page = PaginationOptions(page=1, limit=limit)
    searches: Dict[str, Callable[[], PaginatedResponse]] = {}
    if "pickups" in data_types:
        searches["pickups"] = lambda: get_pickup_requests(
            store, PickupRequestFilters(search_term=search_term, user_id=user_id), page
        )
    if "payments" in data_types:
        searches["payments"] = lambda: get_payments(
            store, PaymentFilters(search_term=search_term, user_id=user_id), page
        )
    if "complaints" in data_types:
        searches["complaints"] = lambda: get_complaints(
            store, ComplaintFilters(search_term=search_term, user_id=user_id), page
        )
    if "users" in data_types and not user_id:
        searches["users"] = lambda: get_users(store, UserFilters(search_term=search_term), page)

    if not searches:
        return results

    with ThreadPoolExecutor(max_workers=len(searches)) as executor:
        futures = {kind: executor.submit(search) for kind, search in searches.items()}
        found: Dict[str, List[Any]] = {kind: future.result().data for kind, future in futures.items()}

    return GlobalSearchResults(**found)
