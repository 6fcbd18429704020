"""Tests for list view state, paging resets and stale-response fencing."""

import threading
from concurrent.futures import ThreadPoolExecutor

from wastetrack.errors import QueryError
from wastetrack.retrieval.contracts import PaginatedResponse, PickupRequestFilters, calculate_pagination
from wastetrack.views import list_view
from wastetrack.views.list_view import (
    ListView,
    SearchView,
    ViewStatus,
    customer_details_view,
    pickup_requests_view,
)


class RecordingLoader:
    def __init__(self, total=40):
        self.calls = []
        self.total = total
        self.fail_with = None

    def __call__(self, filters, pagination, sort):
        self.calls.append((filters, pagination, sort))
        if self.fail_with is not None:
            raise self.fail_with
        return PaginatedResponse(
            data=[f"page-{pagination.page}"],
            pagination=calculate_pagination(pagination.page, pagination.limit, self.total),
        )


def test_initial_fetch_and_success_state():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters())
    assert len(loader.calls) == 1
    assert view.state.status == ViewStatus.SUCCESS
    assert view.data == ["page-1"]
    assert view.state.pagination.total == 40


def test_auto_fetch_disabled_stays_idle():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters(), auto_fetch=False)
    assert loader.calls == []
    assert view.state.status == ViewStatus.IDLE
    view.refresh()
    assert view.state.status == ViewStatus.SUCCESS


def test_change_sort_and_limit_reset_page():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters())
    view.go_to_page(3)
    assert view.current_page == 3

    view.change_sort("scheduled_date", "asc")
    assert view.current_page == 1
    assert view.current_sort.field == "scheduled_date"

    view.go_to_page(2)
    view.change_limit(50)
    assert view.current_page == 1
    assert view.current_limit == 50
    assert loader.calls[-1][1].limit == 50


def test_go_to_same_page_does_not_refetch():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters())
    view.go_to_page(1)
    assert len(loader.calls) == 1


def test_filters_layer_over_base_filters():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters(user_id="user-1"))
    view.set_filters(status=["scheduled"])
    filters = loader.calls[-1][0]
    assert filters.user_id == "user-1"
    assert filters.status == ["scheduled"]

    view.set_base_filters(PickupRequestFilters(user_id="user-2"))
    filters = loader.calls[-1][0]
    assert filters.user_id == "user-2"
    assert filters.status == ["scheduled"]

    view.set_filters(status=None)
    assert loader.calls[-1][0].status is None


def test_error_keeps_stale_data():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters())
    loader.fail_with = QueryError("Failed to fetch pickup requests: boom")

    view.go_to_page(2)

    assert view.state.status == ViewStatus.ERROR
    assert view.error == "Failed to fetch pickup requests: boom"
    assert view.data == ["page-1"]
    assert view.state.pagination.page == 1


def test_success_after_error_clears_message():
    loader = RecordingLoader()
    view = ListView(loader, PickupRequestFilters())
    loader.fail_with = QueryError("down")
    view.refresh()
    loader.fail_with = None
    view.refresh()
    assert view.state.status == ViewStatus.SUCCESS
    assert view.error is None


def test_out_of_order_response_is_discarded():
    release = threading.Event()

    def loader(filters, pagination, sort):
        if pagination.page == 1:
            release.wait(timeout=5)
        return PaginatedResponse(
            data=[f"page-{pagination.page}"],
            pagination=calculate_pagination(pagination.page, pagination.limit, 40),
        )

    view = ListView(loader, PickupRequestFilters(), auto_fetch=False)
    with ThreadPoolExecutor(max_workers=2) as executor:
        slow = view.refresh_async(executor)
        view.go_to_page(2)
        fast = view.refresh_async(executor)

        assert fast.result(timeout=5) is True
        release.set()
        assert slow.result(timeout=5) is False

    assert view.data == ["page-2"]
    assert view.state.pagination.page == 2
    assert view.latest_request == 2


def test_pickup_requests_view_reads_store(store, make_user, make_pickup):
    user = make_user()
    make_pickup(user["id"], status="scheduled")
    make_pickup(user["id"], status="requested")

    view = pickup_requests_view(store, PickupRequestFilters(status=["scheduled"]))

    assert view.state.status == ViewStatus.SUCCESS
    assert [p.status for p in view.data] == ["scheduled"]


def test_customer_details_view_waits_for_collector(store):
    view = customer_details_view(store, "")
    assert view.state.status == ViewStatus.IDLE
    assert view.refresh() is False


def test_search_view_blank_and_error(store, monkeypatch):
    view = SearchView(store)
    assert view.search("   ").pickups == []

    def broken(*args, **kwargs):
        raise QueryError("Failed to fetch payments: offline")

    monkeypatch.setattr(list_view, "global_search", broken)
    results = view.search("PAY-")
    assert view.error == "Failed to fetch payments: offline"
    assert results.payments == []
    assert view.loading is False

    view.clear_results()
    assert view.error is None
