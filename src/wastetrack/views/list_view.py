"""Stateful list controllers for UI-facing code.

A ListView binds a paged query to four pieces of state (page, page size,
sort, filters) and re-issues the query whenever one of them changes.
Status moves ``idle -> loading -> success | error`` and back to ``loading``
on every new request. A failed fetch records the error message and keeps the
last good data and pagination.

Every request is tagged with a sequence number and a response is applied
only if it belongs to the most recently issued request, so a slow response
for an old page can never overwrite a newer one.
"""

import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from wastetrack.database.store_client import StoreClient
from wastetrack.retrieval.aggregation import get_customer_details
from wastetrack.retrieval.contracts import (
    ComplaintFilters,
    GlobalSearchResults,
    PaginatedResponse,
    PaginationInfo,
    PaginationOptions,
    PaymentFilters,
    PickupRequestFilters,
    SortOptions,
    UserFilters,
)
from wastetrack.retrieval.translator import (
    get_complaints,
    get_payments,
    get_pickup_requests,
    get_users,
    global_search,
)
from wastetrack.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=BaseModel)

Loader = Callable[[Any, PaginationOptions, SortOptions], PaginatedResponse]


class ViewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ListViewState:
    status: ViewStatus = ViewStatus.IDLE
    data: List[Any] = field(default_factory=list)
    pagination: Optional[PaginationInfo] = None
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.status == ViewStatus.LOADING


class ListView(Generic[F]):
    """
    Paged list bound to a loader ``(filters, pagination, sort) -> PaginatedResponse``.

    Args:
        loader: Query to run
        base_filters: Caller-supplied filters; ``set_filters`` overrides layer on top
        initial_page: First page to load
        initial_limit: Page size
        sort: Initial sort
        auto_fetch: Fetch on construction and on every state change
        error_message: Message used when the loader fails without one
        can_fetch: Extra guard; fetches are skipped while it returns False
    """

    def __init__(
        self,
        loader: Loader,
        base_filters: F,
        *,
        initial_page: int = 1,
        initial_limit: int = 20,
        sort: Optional[SortOptions] = None,
        auto_fetch: bool = True,
        error_message: str = "Failed to fetch data",
        can_fetch: Callable[[], bool] = lambda: True,
    ):
        self._loader = loader
        self._base_filters = base_filters
        self._filter_overrides: Dict[str, Any] = {}
        self._pagination = PaginationOptions(page=initial_page, limit=initial_limit)
        self._sort = sort or SortOptions()
        self._auto_fetch = auto_fetch
        self._error_message = error_message
        self._can_fetch = can_fetch
        self._state = ListViewState()
        self._lock = threading.Lock()
        self._issued_seq = 0
        if auto_fetch:
            self._on_change()

    # State

    @property
    def state(self) -> ListViewState:
        return self._state

    @property
    def data(self) -> List[Any]:
        return self._state.data

    @property
    def error(self) -> Optional[str]:
        return self._state.error

    @property
    def current_page(self) -> int:
        return self._pagination.page

    @property
    def current_limit(self) -> int:
        return self._pagination.limit

    @property
    def current_sort(self) -> SortOptions:
        return self._sort

    @property
    def filters(self) -> F:
        """Effective filters: base filters with overrides applied."""
        if not self._filter_overrides:
            return self._base_filters
        return self._base_filters.model_copy(update=self._filter_overrides)

    @property
    def latest_request(self) -> int:
        return self._issued_seq

    # Changes

    def go_to_page(self, page: int) -> None:
        new = PaginationOptions(page=page, limit=self._pagination.limit)
        if new != self._pagination:
            self._pagination = new
            self._on_change()

    def change_limit(self, limit: int) -> None:
        self._pagination = PaginationOptions(page=1, limit=limit)
        self._on_change()

    def change_sort(self, field_name: str, direction: str = "asc") -> None:
        self._sort = SortOptions(field=field_name, direction=direction)
        self._pagination = PaginationOptions(page=1, limit=self._pagination.limit)
        self._on_change()

    def set_filters(self, **overrides: Any) -> None:
        """Override individual filter fields; ``None`` clears an override."""
        updated = dict(self._filter_overrides)
        for key, value in overrides.items():
            if key not in type(self._base_filters).model_fields:
                raise ValueError(f"Unknown filter field: {key}")
            if value is None:
                updated.pop(key, None)
            else:
                updated[key] = value
        if updated != self._filter_overrides:
            self._filter_overrides = updated
            self._on_change()

    def set_base_filters(self, base_filters: F) -> None:
        if base_filters != self._base_filters:
            self._base_filters = base_filters
            self._on_change()

    def refresh(self) -> bool:
        """Fetch now; returns True if the response was applied."""
        if not self._can_fetch():
            return False
        seq, args = self._begin()
        return self._run(seq, args)

    def refresh_async(self, executor: Executor) -> Optional[Future]:
        """Submit a fetch to ``executor``; the future resolves to True if its response was applied."""
        if not self._can_fetch():
            return None
        seq, args = self._begin()
        return executor.submit(self._run, seq, args)

    # Internals

    def _on_change(self) -> None:
        if self._auto_fetch:
            self.refresh()

    def _begin(self) -> tuple[int, tuple]:
        with self._lock:
            self._issued_seq += 1
            seq = self._issued_seq
            self._state = ListViewState(
                status=ViewStatus.LOADING,
                data=self._state.data,
                pagination=self._state.pagination,
                error=None,
            )
            return seq, (self.filters, self._pagination, self._sort)

    def _run(self, seq: int, args: tuple) -> bool:
        try:
            response = self._loader(*args)
        except Exception as exc:
            message = str(exc) or self._error_message
            logger.warning("List fetch %d failed: %s", seq, message)
            return self._complete(seq, error=message)
        return self._complete(seq, response=response)

    def _complete(
        self,
        seq: int,
        response: Optional[PaginatedResponse] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Apply a finished request if it is still the latest one issued."""
        with self._lock:
            if seq != self._issued_seq:
                logger.debug("Discarding stale response %d (latest %d)", seq, self._issued_seq)
                return False
            if error is not None:
                self._state = ListViewState(
                    status=ViewStatus.ERROR,
                    data=self._state.data,
                    pagination=self._state.pagination,
                    error=error,
                )
            else:
                self._state = ListViewState(
                    status=ViewStatus.SUCCESS,
                    data=list(response.data),
                    pagination=response.pagination,
                    error=None,
                )
            return True


def pickup_requests_view(
    store: StoreClient,
    base_filters: PickupRequestFilters | None = None,
    **options: Any,
) -> ListView[PickupRequestFilters]:
    return ListView(
        lambda f, p, s: get_pickup_requests(store, f, p, s),
        base_filters or PickupRequestFilters(),
        error_message="Failed to fetch pickup requests",
        **options,
    )


def payments_view(
    store: StoreClient,
    base_filters: PaymentFilters | None = None,
    **options: Any,
) -> ListView[PaymentFilters]:
    return ListView(
        lambda f, p, s: get_payments(store, f, p, s),
        base_filters or PaymentFilters(),
        error_message="Failed to fetch payments",
        **options,
    )


def complaints_view(
    store: StoreClient,
    base_filters: ComplaintFilters | None = None,
    **options: Any,
) -> ListView[ComplaintFilters]:
    return ListView(
        lambda f, p, s: get_complaints(store, f, p, s),
        base_filters or ComplaintFilters(),
        error_message="Failed to fetch complaints",
        **options,
    )


def users_view(
    store: StoreClient,
    base_filters: UserFilters | None = None,
    **options: Any,
) -> ListView[UserFilters]:
    return ListView(
        lambda f, p, s: get_users(store, f, p, s),
        base_filters or UserFilters(),
        error_message="Failed to fetch users",
        **options,
    )


def customer_details_view(
    store: StoreClient,
    collector_id: str,
    base_filters: UserFilters | None = None,
    **options: Any,
) -> ListView[UserFilters]:
    """Customer list for one collector; nothing is fetched while ``collector_id`` is empty."""
    options.setdefault("sort", SortOptions(field="name", direction="asc"))
    return ListView(
        lambda f, p, s: get_customer_details(store, collector_id, f, p, s),
        base_filters or UserFilters(),
        error_message="Failed to fetch customer details",
        can_fetch=lambda: bool(collector_id),
        **options,
    )


class SearchView:
    """Cross-entity search box state; errors clear the results."""

    def __init__(self, store: StoreClient):
        self._store = store
        self.results = GlobalSearchResults()
        self.loading = False
        self.error: Optional[str] = None

    def search(
        self,
        search_term: str,
        user_id: Optional[str] = None,
        data_types: Sequence[str] = ("pickups", "payments", "complaints"),
        limit: int = 10,
    ) -> GlobalSearchResults:
        if not search_term or not search_term.strip():
            self.results = GlobalSearchResults()
            return self.results

        self.loading = True
        self.error = None
        try:
            self.results = global_search(self._store, search_term, user_id, data_types, limit)
        except Exception as exc:
            logger.warning("Search failed: %s", exc)
            self.error = str(exc) or "Search failed"
            self.results = GlobalSearchResults()
        finally:
            self.loading = False
        return self.results

    def clear_results(self) -> None:
        self.results = GlobalSearchResults()
        self.error = None
