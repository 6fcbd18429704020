"""Resident subscriptions (one active plan per user)."""

from datetime import date
from typing import Optional

from wastetrack.database.store_client import StoreClient, StoreError
from wastetrack.domain.models import CreateSubscriptionInput, Subscription, SubscriptionStatus
from wastetrack.errors import NotFoundError, QueryError, ServiceError
from wastetrack.retrieval.mappers import row_to_subscription
from wastetrack.utils.id_generator import new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_now

from .audit_service import log_event
from .base import store_write

logger = get_logger(__name__)

STATUS_AUDIT_ACTIONS = {"cancelled": "subscription_cancelled"}


def get_active_subscription(store: StoreClient, user_id: str) -> Optional[Subscription]:
    try:
        row = (
            store.table("subscriptions")
            .eq("user_id", user_id)
            .eq("status", "active")
            .order("created_at", ascending=False)
            .first()
        )
    except StoreError as exc:
        raise QueryError(f"Failed to fetch subscription: {exc.message}") from exc
    return row_to_subscription(row) if row else None


def create_subscription(store: StoreClient, data: CreateSubscriptionInput) -> Subscription:
    """
    Start a plan for a resident.

    Raises:
        ServiceError: If the user already has an active subscription
    """
    if get_active_subscription(store, data.user_id) is not None:
        raise ServiceError(f"Failed to create subscription: user {data.user_id} already has an active plan")

    now = storage_now()
    row = {
        "id": new_record_id(),
        "user_id": data.user_id,
        "plan_type": data.plan_type,
        "status": "active",
        "amount": data.pricing.amount,
        "currency": data.pricing.currency,
        "billing_cycle": data.pricing.billing_cycle,
        "start_date": data.start_date.isoformat(),
        "end_date": None,
        "created_at": now,
        "updated_at": now,
    }
    with store_write("create subscription"):
        stored = store.table("subscriptions").insert(row)
    subscription = row_to_subscription(stored[0])
    log_event(store, {
        "user_id": data.user_id,
        "action": "subscription_created",
        "entity_type": "subscription",
        "entity_id": subscription.id,
        "new_data": {"plan_type": data.plan_type, "amount": data.pricing.amount},
    })
    return subscription


def change_subscription_status(
    store: StoreClient,
    subscription_id: str,
    status: SubscriptionStatus,
    actor_id: Optional[str] = None,
) -> Subscription:
    """
    Pause, resume or cancel a subscription; cancelling sets ``end_date`` to today.

    Raises:
        NotFoundError: If the subscription does not exist
        ServiceError: If resuming would give the user a second active plan
    """
    if status == "active":
        try:
            row = store.table("subscriptions").eq("id", subscription_id).first()
        except StoreError as exc:
            raise QueryError(f"Failed to fetch subscription: {exc.message}") from exc
        if row is None:
            raise NotFoundError(f"Subscription not found: {subscription_id}")
        current = get_active_subscription(store, row["user_id"])
        if current is not None and current.id != subscription_id:
            raise ServiceError(
                f"Failed to update subscription: user {row['user_id']} already has an active plan"
            )

    values = {"status": status, "updated_at": storage_now()}
    if status == "cancelled":
        values["end_date"] = date.today().isoformat()
    with store_write("update subscription"):
        rows = store.table("subscriptions").eq("id", subscription_id).update(values)
    if not rows:
        raise NotFoundError(f"Subscription not found: {subscription_id}")
    subscription = row_to_subscription(rows[0])
    log_event(store, {
        "user_id": actor_id or subscription.user_id,
        "action": STATUS_AUDIT_ACTIONS.get(status, "subscription_updated"),
        "entity_type": "subscription",
        "entity_id": subscription_id,
        "new_data": {"status": status},
    })
    return subscription
