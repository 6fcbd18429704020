"""Tests for record services and the audit entries they write."""

from datetime import date, timedelta

import pytest

from wastetrack.database.store_client import StoreError
from wastetrack.domain.models import (
    BroadcastNotificationInput,
    CreateComplaintInput,
    CreatePaymentInput,
    CreatePickupRequestInput,
    CreateSubscriptionInput,
    CreateUserInput,
    LocationInput,
    SendNotificationInput,
    SubscriptionPricingInput,
    UpdateComplaintInput,
    UpdatePaymentInput,
    UpdatePickupStatusInput,
)
from wastetrack.errors import AccessDeniedError, InvalidTransitionError, NotFoundError, ServiceError
from wastetrack.retrieval.contracts import AuditLogFilters
from wastetrack.retrieval.translator import get_audit_logs
from wastetrack.services import (
    admin_service,
    audit_service,
    complaint_service,
    notification_service,
    payment_service,
    pickup_service,
    subscription_service,
    user_service,
)
from wastetrack.utils.time import storage_cutoff


def _actions(store, entity_id):
    page = get_audit_logs(store, AuditLogFilters(entity_id=entity_id))
    return sorted(entry.action for entry in page.data)


NEW_HOME = LocationInput(area="Surulere", street="Adeniran Ogunsanya", house_number="4B")


# Users


def test_create_user_and_duplicate_email(store):
    data = CreateUserInput(
        email="ada@example.com",
        phone="08031234567",
        name="Ada Obi",
        role="resident",
        location=LocationInput(area="Yaba", street="Herbert Macaulay Way", house_number="12"),
    )
    user = user_service.create_user(store, data)
    assert user.location.area == "Yaba"
    assert _actions(store, user.id) == ["user_created"]

    with pytest.raises(ServiceError, match="email already registered"):
        user_service.create_user(store, data)


def test_invalid_phone_rejected():
    with pytest.raises(ValueError):
        CreateUserInput(
            phone="12345",
            name="Ada Obi",
            role="resident",
            location=LocationInput(area="Yaba", street="X", house_number="1"),
        )


def test_location_change_only_moves_future_pending_pickups(store, make_user, make_pickup):
    user = make_user()
    past = make_pickup(user["id"], scheduled_date=(date.today() - timedelta(days=2)).isoformat())
    done = make_pickup(user["id"], status="picked_up")
    pending = make_pickup(user["id"], status="scheduled")

    updated = user_service.update_user_location(store, user["id"], NEW_HOME)

    assert updated.location.area == "Surulere"
    areas = {
        row["id"]: row["area"]
        for row in store.table("pickup_requests").select("id", "area").execute().data
    }
    assert areas[pending["id"]] == "Surulere"
    assert areas[past["id"]] == "Yaba"
    assert areas[done["id"]] == "Yaba"


def test_update_location_unknown_user(store):
    with pytest.raises(NotFoundError):
        user_service.update_user_location(store, "missing", NEW_HOME)


def test_set_user_active(store, make_user):
    user = make_user()
    suspended = user_service.set_user_active(store, user["id"], False, actor_id="admin-1")
    assert suspended.is_active is False
    assert _actions(store, user["id"]) == ["user_suspended"]


# Pickups


def test_create_pickup_snapshots_profile_location(store, make_user):
    user = make_user(area="Ikeja", street="Allen Avenue", house_number="7")
    pickup = pickup_service.create_pickup_request(
        store,
        CreatePickupRequestInput(
            user_id=user["id"],
            scheduled_date=date.today() + timedelta(days=2),
            location=NEW_HOME,
        ),
    )
    assert pickup.status == "requested"
    assert pickup.location.area == "Ikeja"
    assert _actions(store, pickup.id) == ["pickup_created"]


def test_create_pickup_falls_back_to_input_location(store, make_user):
    user = make_user(area=None, street=None, house_number=None)
    pickup = pickup_service.create_pickup_request(
        store,
        CreatePickupRequestInput(
            user_id=user["id"],
            scheduled_date=date.today() + timedelta(days=2),
            location=NEW_HOME,
        ),
    )
    assert pickup.location.area == "Surulere"


def test_create_pickup_without_any_location_fails(store, make_user):
    user = make_user(area=None, street=None, house_number=None)
    with pytest.raises(ServiceError, match="no location"):
        pickup_service.create_pickup_request(
            store,
            CreatePickupRequestInput(user_id=user["id"], scheduled_date=date.today() + timedelta(days=2)),
        )


def test_pickup_date_must_be_in_future():
    with pytest.raises(ValueError):
        CreatePickupRequestInput(user_id="u", scheduled_date=date.today())


def test_status_update_stamps_completion_and_collector(store, make_user, make_pickup):
    user = make_user()
    pickup = make_pickup(user["id"])

    updated = pickup_service.update_pickup_status(
        store, pickup["id"], UpdatePickupStatusInput(status="picked_up", collector_id="collector-9")
    )

    assert updated.status == "picked_up"
    assert updated.collector_id == "collector-9"
    assert updated.completed_at is not None
    assert _actions(store, pickup["id"]) == ["pickup_completed"]


def test_status_update_unknown_pickup(store):
    with pytest.raises(NotFoundError):
        pickup_service.update_pickup_status(store, "nope", UpdatePickupStatusInput(status="missed"))


def test_next_pickup_and_collector_schedule(store, make_user, make_pickup):
    user = make_user()
    later = (date.today() + timedelta(days=5)).isoformat()
    sooner = (date.today() + timedelta(days=1)).isoformat()
    make_pickup(user["id"], scheduled_date=later, collector_id="c1")
    first = make_pickup(user["id"], scheduled_date=sooner, collector_id="c1", street="B Street")
    make_pickup(user["id"], scheduled_date=sooner, collector_id="c1", street="A Street")

    assert pickup_service.get_next_pickup(store, user["id"]).scheduled_date.isoformat() == sooner

    schedule = pickup_service.get_collector_pickups_for_date(store, "c1", date.today() + timedelta(days=1))
    assert [p.location.street for p in schedule] == ["A Street", "B Street"]
    assert first["id"] in {p.id for p in schedule}


def test_collector_stats(store, make_user, make_pickup):
    user = make_user()
    make_pickup(user["id"], collector_id="c1", status="picked_up")
    make_pickup(user["id"], collector_id="c1", status="picked_up")
    make_pickup(user["id"], collector_id="c1", status="missed")
    make_pickup(user["id"], collector_id="c1", status="scheduled")
    make_pickup(user["id"], collector_id="c1", status="picked_up", created_at=storage_cutoff(days=60))

    stats = pickup_service.get_collector_stats(store, "c1", days=30)

    assert stats.total == 4
    assert stats.picked_up == 2
    assert stats.missed == 1
    assert stats.pending == 1
    assert stats.completion_rate == 50.0


# Payments


def test_update_and_delete_payment(store):
    payment = payment_service.create_payment(
        store, CreatePaymentInput(user_id="u1", amount=100, payment_method="cash", status="pending")
    )
    updated = payment_service.update_payment(store, payment.id, UpdatePaymentInput(status="completed"))
    assert updated.status == "completed"
    assert updated.reference == payment.reference

    payment_service.delete_payment(store, payment.id, actor_id="admin-1")
    assert payment_service.get_payment(store, payment.id) is None
    assert _actions(store, payment.id) == ["payment_completed", "payment_created", "payment_deleted"]


def test_delete_unknown_payment(store):
    with pytest.raises(NotFoundError):
        payment_service.delete_payment(store, "missing")


def test_payments_by_user(store, make_payment):
    make_payment("u1")
    make_payment("u1")
    make_payment("u2")
    assert len(payment_service.get_payments_by_user(store, "u1")) == 2


# Complaints


def test_complaint_lifecycle_is_forward_only(store, make_user, make_pickup):
    user = make_user()
    pickup = make_pickup(user["id"])
    complaint = complaint_service.create_complaint(
        store,
        CreateComplaintInput(user_id=user["id"], pickup_id=pickup["id"], description="Truck skipped our street"),
    )
    assert complaint.status == "open"

    in_progress = complaint_service.update_complaint(store, complaint.id, UpdateComplaintInput(status="in_progress"))
    assert in_progress.resolved_at is None

    resolved = complaint_service.update_complaint(
        store, complaint.id, UpdateComplaintInput(status="resolved", admin_notes="Rescheduled")
    )
    assert resolved.resolved_at is not None
    assert resolved.admin_notes == "Rescheduled"

    with pytest.raises(InvalidTransitionError):
        complaint_service.update_complaint(store, complaint.id, UpdateComplaintInput(status="open"))

    assert [c.id for c in complaint_service.get_complaints_by_pickup(store, pickup["id"])] == [complaint.id]
    assert _actions(store, complaint.id) == ["complaint_created", "complaint_resolved", "complaint_updated"]


def test_complaint_description_length():
    with pytest.raises(ValueError):
        CreateComplaintInput(user_id="u", pickup_id="p", description="too short")


# Subscriptions


def test_subscription_create_and_cancel(store, make_user):
    user = make_user()
    data = CreateSubscriptionInput(
        user_id=user["id"],
        plan_type="weekly",
        pricing=SubscriptionPricingInput(amount=3000, currency="NGN", billing_cycle="monthly"),
    )
    subscription = subscription_service.create_subscription(store, data)
    assert subscription_service.get_active_subscription(store, user["id"]).id == subscription.id

    with pytest.raises(ServiceError, match="already has an active plan"):
        subscription_service.create_subscription(store, data)

    cancelled = subscription_service.change_subscription_status(store, subscription.id, "cancelled")
    assert cancelled.end_date == date.today()
    assert subscription_service.get_active_subscription(store, user["id"]) is None


def test_resuming_plan_cannot_create_second_active_plan(store, make_user):
    user = make_user()
    pricing = SubscriptionPricingInput(amount=3000, currency="NGN", billing_cycle="monthly")
    first = subscription_service.create_subscription(
        store, CreateSubscriptionInput(user_id=user["id"], plan_type="weekly", pricing=pricing)
    )
    subscription_service.change_subscription_status(store, first.id, "paused")
    second = subscription_service.create_subscription(
        store, CreateSubscriptionInput(user_id=user["id"], plan_type="bi-weekly", pricing=pricing)
    )

    with pytest.raises(ServiceError, match="already has an active plan"):
        subscription_service.change_subscription_status(store, first.id, "active")

    active = store.table("subscriptions").eq("user_id", user["id"]).eq("status", "active").execute().data
    assert [row["id"] for row in active] == [second.id]

    subscription_service.change_subscription_status(store, second.id, "cancelled")
    resumed = subscription_service.change_subscription_status(store, first.id, "active")
    assert resumed.status == "active"
    assert subscription_service.get_active_subscription(store, user["id"]).id == first.id


def test_resuming_unknown_subscription(store):
    with pytest.raises(NotFoundError):
        subscription_service.change_subscription_status(store, "missing", "active")


# Notifications


def test_notifications_ownership_and_counts(store):
    note = notification_service.send_notification(
        store,
        SendNotificationInput(user_id="u1", type="payment_received", title="Paid", message="Thanks"),
    )
    notification_service.send_notification(
        store,
        SendNotificationInput(user_id="u1", type="pickup_status_change", title="Done", message="Collected"),
    )
    assert notification_service.get_unread_count(store, "u1") == 2

    with pytest.raises(AccessDeniedError):
        notification_service.mark_notification_read(store, note.id, "u2")

    read = notification_service.mark_notification_read(store, note.id, "u1")
    assert read.read is True
    assert len(notification_service.get_user_notifications(store, "u1", unread_only=True)) == 1

    assert notification_service.mark_all_read(store, "u1") == 1
    assert notification_service.get_unread_count(store, "u1") == 0


def test_mark_read_unknown_notification(store):
    with pytest.raises(NotFoundError):
        notification_service.mark_notification_read(store, "missing", "u1")


def test_system_broadcast_has_no_user(store):
    broadcast = notification_service.broadcast_system_notification(
        store, BroadcastNotificationInput(title="Holiday", message="No pickups on Monday")
    )
    assert broadcast.audience.value == "system"
    assert broadcast.user_id is None

    assert [n.id for n in notification_service.get_system_notifications(store, hours=1)] == [broadcast.id]
    assert notification_service.get_user_notifications(store, "system") == []
    with pytest.raises(AccessDeniedError):
        notification_service.mark_notification_read(store, broadcast.id, "u1")


def test_cleanup_old_notifications(store):
    store.table("notifications").insert([
        {
            "id": "old", "audience": "user", "user_id": "u1", "type": "system_alert", "title": "t",
            "message": "m", "data_json": None, "read": False, "created_at": storage_cutoff(days=45),
        },
        {
            "id": "new", "audience": "user", "user_id": "u1", "type": "system_alert", "title": "t",
            "message": "m", "data_json": None, "read": False, "created_at": storage_cutoff(days=1),
        },
    ])
    assert notification_service.cleanup_old_notifications(store, days_old=30) == 1
    assert [n.id for n in notification_service.get_user_notifications(store, "u1")] == ["new"]


# Audit


def test_log_event_never_raises(store, monkeypatch):
    assert audit_service.log_event(store, {"user_id": "u1", "action": "not_an_action", "entity_type": "user"}) is None

    def broken_table(name):
        raise StoreError("database is locked")

    monkeypatch.setattr(store, "table", broken_table)
    assert audit_service.log_event(store, {"user_id": "u1", "action": "logout", "entity_type": "user"}) is None


def test_audit_queries_and_purge(store):
    audit_service.log_user_event(store, "admin-1", "user_updated", "u9", new_data={"name": "x"})
    audit_service.log_pickup_event(store, "admin-1", "pickup_updated", "p9")
    store.table("audit_logs").insert({
        "id": "ancient", "user_id": "admin-1", "action": "logout", "entity_type": "user",
        "entity_id": None, "old_data_json": None, "new_data_json": None, "ip_address": None,
        "user_agent": None, "metadata_json": None, "timestamp": storage_cutoff(days=400),
    })

    assert len(audit_service.get_user_audit_logs(store, "admin-1")) == 3
    history = audit_service.get_entity_audit_logs(store, "user", "u9")
    assert [e.new_data for e in history.data] == [{"name": "x"}]

    assert audit_service.purge_audit_logs(store, older_than_days=365) == 1
    assert len(audit_service.get_user_audit_logs(store, "admin-1")) == 2


# Admin


def test_admin_metrics(store, make_user, make_pickup, make_payment, make_complaint):
    resident = make_user(role="resident", area="Yaba")
    make_user(role="collector", is_active=False)
    done = make_pickup(resident["id"], status="picked_up", area="Yaba")
    make_pickup(resident["id"], status="missed", area="Ikeja")
    make_payment(resident["id"], amount=1000.5)
    make_payment(resident["id"], amount=999.0, status="failed")
    make_complaint(resident["id"], done["id"])

    metrics = admin_service.get_metrics(store)
    assert metrics.users_by_role == {"resident": 1, "collector": 1}
    assert metrics.active_users == 1
    assert metrics.pickups_by_status == {"picked_up": 1, "missed": 1}
    assert metrics.open_complaints == 1
    assert metrics.completed_revenue == 1000.5

    report = admin_service.get_area_metrics(store)
    assert [a.area for a in report.areas] == ["Ikeja", "Yaba"]
    yaba = report.areas[1]
    assert yaba.completion_rate == 100.0
    assert yaba.open_complaints == 1
