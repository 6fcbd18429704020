"""User profiles: creation, lookup, location changes and activation."""

from typing import Optional

from wastetrack.database.store_client import UNIQUE_VIOLATION, StoreClient, StoreError
from wastetrack.domain.models import CreateUserInput, LocationInput, User
from wastetrack.errors import NotFoundError, QueryError, ServiceError
from wastetrack.retrieval.mappers import format_coordinates, row_to_user
from wastetrack.utils.id_generator import new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_now

from .audit_service import log_user_event
from .base import store_write
from .pickup_service import update_location_for_future_pickups

logger = get_logger(__name__)


def create_user(store: StoreClient, data: CreateUserInput, actor_id: Optional[str] = None) -> User:
    """
    Create a user profile.

    Raises:
        ServiceError: If the email is already taken or the write fails
    """
    now = storage_now()
    row = {
        "id": new_record_id(),
        "email": data.email,
        "phone": data.phone,
        "name": data.name,
        "role": data.role,
        "area": data.location.area,
        "street": data.location.street,
        "house_number": data.location.house_number,
        "coordinates": format_coordinates(data.location.coordinates),
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    try:
        stored = store.table("users").insert(row)
    except StoreError as exc:
        if exc.code == UNIQUE_VIOLATION:
            raise ServiceError(f"Failed to create user: email already registered ({data.email})") from exc
        logger.error("Failed to create user: %s", exc.message)
        raise ServiceError(f"Failed to create user: {exc.message}") from exc

    user = row_to_user(stored[0])
    log_user_event(store, actor_id or user.id, "user_created", user.id, new_data={"role": user.role})
    return user


def get_user(store: StoreClient, user_id: str) -> Optional[User]:
    try:
        row = store.table("users").eq("id", user_id).first()
    except StoreError as exc:
        raise QueryError(f"Failed to fetch user: {exc.message}") from exc
    return row_to_user(row) if row else None


def update_user_location(
    store: StoreClient,
    user_id: str,
    location: LocationInput,
    actor_id: Optional[str] = None,
) -> User:
    """
    Move a user's address and carry it onto their upcoming pickups.

    Only future pickups that are still requested or scheduled take the new
    address; past and finished pickups keep the location they were made for.

    Raises:
        NotFoundError: If the user does not exist
        ServiceError: If the profile update fails
    """
    existing = get_user(store, user_id)
    if existing is None:
        raise NotFoundError(f"User not found: {user_id}")

    values = {
        "area": location.area,
        "street": location.street,
        "house_number": location.house_number,
        "coordinates": format_coordinates(location.coordinates),
        "updated_at": storage_now(),
    }
    with store_write("update user location"):
        rows = store.table("users").eq("id", user_id).update(values)

    moved = update_location_for_future_pickups(store, user_id, location)
    log_user_event(
        store,
        actor_id or user_id,
        "user_updated",
        user_id,
        old_data=existing.location.model_dump(),
        new_data=location.model_dump(),
        metadata={"pickups_updated": moved},
    )
    return row_to_user(rows[0])


def set_user_active(store: StoreClient, user_id: str, active: bool, actor_id: Optional[str] = None) -> User:
    """Activate or suspend a user."""
    with store_write("update user status"):
        rows = store.table("users").eq("id", user_id).update({"is_active": active, "updated_at": storage_now()})
    if not rows:
        raise NotFoundError(f"User not found: {user_id}")
    log_user_event(
        store,
        actor_id or user_id,
        "user_activated" if active else "user_suspended",
        user_id,
        new_data={"is_active": active},
    )
    return row_to_user(rows[0])
