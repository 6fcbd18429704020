"""Payment records.

The payments table exists in two schema generations that differ only in the
name of the reference column (``payment_reference`` now, ``reference``
before). Writes try the current name first and fall back to the older one.
"""

from typing import Any, Dict, List, Optional

from wastetrack.database.store_client import UNIQUE_VIOLATION, ColumnNotFoundError, StoreClient, StoreError
from wastetrack.domain.models import CreatePaymentInput, Payment, UpdatePaymentInput
from wastetrack.errors import NotFoundError, QueryError, ServiceError
from wastetrack.retrieval.contracts import PaginationOptions, PaymentFilters, SortOptions
from wastetrack.retrieval.mappers import payment_reference_columns, row_to_payment
from wastetrack.retrieval.translator import get_payments
from wastetrack.utils.id_generator import new_payment_reference, new_record_id
from wastetrack.utils.logging import get_logger
from wastetrack.utils.time import storage_now

from .audit_service import log_payment_event
from .base import dump_json, store_write

logger = get_logger(__name__)

DEFAULT_CURRENCY = "NGN"


def _write_with_reference(
    operation: str,
    write,
    values: Dict[str, Any],
    reference: Optional[str],
) -> List[Dict[str, Any]]:
    """
    Run ``write(values)`` with the reference stored under whichever column the live table has.

    Raises:
        ServiceError: If every reference column is rejected or the write fails
    """
    if reference is None:
        with store_write(operation):
            return write(values)

    columns = payment_reference_columns()
    first_error: Optional[StoreError] = None
    for attempt, column in enumerate(columns):
        try:
            return write({**values, column: reference})
        except ColumnNotFoundError as exc:
            first_error = first_error or exc
            if exc.column == column and attempt + 1 < len(columns):
                logger.warning("payments.%s not found; retrying with %s", column, columns[attempt + 1])
                continue
            if exc.column not in columns:
                first_error = exc
            break
        except StoreError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise ServiceError(f"Failed to {operation}: duplicate payment reference {reference}") from exc
            logger.error("Failed to %s: %s (code=%s)", operation, exc.message, exc.code)
            raise ServiceError(f"Failed to {operation}: {exc.message}") from exc

    logger.error("Failed to %s: %s", operation, first_error.message)
    raise ServiceError(f"Failed to {operation}: {first_error.message}") from first_error


def get_payment(store: StoreClient, payment_id: str) -> Optional[Payment]:
    try:
        row = store.table("payments").eq("id", payment_id).first()
    except StoreError as exc:
        raise QueryError(f"Failed to fetch payment: {exc.message}") from exc
    return row_to_payment(row) if row else None


def create_payment(
    store: StoreClient,
    data: CreatePaymentInput,
    actor_id: Optional[str] = None,
    default_currency: str = DEFAULT_CURRENCY,
) -> Payment:
    """
    Record a payment.

    Args:
        store: Store client
        data: Validated payment input; a reference is generated when absent
        actor_id: Who recorded it (defaults to the paying user)
        default_currency: Currency used when the input has none

    Returns:
        The stored Payment

    Raises:
        ServiceError: If the reference is a duplicate or the write fails
    """
    now = storage_now()
    reference = data.reference or new_payment_reference()
    values = {
        "id": new_record_id(),
        "user_id": data.user_id,
        "amount": data.amount,
        "currency": data.currency or default_currency,
        "payment_method": data.payment_method,
        "status": data.status,
        "metadata_json": dump_json(data.metadata),
        "created_at": now,
        "updated_at": now,
    }
    table = store.table("payments")
    rows = _write_with_reference("create payment", table.insert, values, reference)

    payment = row_to_payment(rows[0])
    log_payment_event(
        store,
        actor_id or data.user_id,
        "payment_created",
        payment.id,
        new_data={"amount": payment.amount, "currency": payment.currency, "reference": payment.reference},
    )
    return payment


def update_payment(
    store: StoreClient,
    payment_id: str,
    data: UpdatePaymentInput,
    actor_id: Optional[str] = None,
) -> Payment:
    """
    Apply the fields set on ``data`` to a payment.

    Raises:
        NotFoundError: If the payment does not exist
    """
    existing = get_payment(store, payment_id)
    if existing is None:
        raise NotFoundError(f"Payment not found: {payment_id}")

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    reference = changes.pop("reference", None)
    values: Dict[str, Any] = {"updated_at": storage_now()}
    for key in ("amount", "currency", "payment_method", "status"):
        if key in changes:
            values[key] = changes[key]
    if "metadata" in changes:
        values["metadata_json"] = dump_json(changes["metadata"])

    def _update(row_values):
        return store.table("payments").eq("id", payment_id).update(row_values)

    rows = _write_with_reference("update payment", _update, values, reference)
    updated = row_to_payment(rows[0])

    action = "payment_updated"
    if changes.get("status") == "completed" and existing.status != "completed":
        action = "payment_completed"
    log_payment_event(
        store,
        actor_id or existing.user_id,
        action,
        payment_id,
        old_data=existing.model_dump(mode="json", include=set(changes) | {"status"}),
        new_data=updated.model_dump(mode="json", include=set(changes) | {"status"}),
    )
    return updated


def delete_payment(store: StoreClient, payment_id: str, actor_id: Optional[str] = None) -> None:
    existing = get_payment(store, payment_id)
    if existing is None:
        raise NotFoundError(f"Payment not found: {payment_id}")
    with store_write("delete payment"):
        store.table("payments").eq("id", payment_id).delete()
    log_payment_event(
        store,
        actor_id or existing.user_id,
        "payment_deleted",
        payment_id,
        old_data=existing.model_dump(mode="json"),
    )


def get_payments_by_user(store: StoreClient, user_id: str, limit: int = 50) -> List[Payment]:
    """Most recent payments for one user."""
    page = get_payments(store, PaymentFilters(user_id=user_id), PaginationOptions(limit=limit))
    return page.data


def search_payments(store: StoreClient, term: str, user_id: Optional[str] = None, limit: int = 20) -> List[Payment]:
    """Payments whose reference contains ``term`` (case-insensitive)."""
    page = get_payments(
        store,
        PaymentFilters(search_term=term, user_id=user_id),
        PaginationOptions(limit=limit),
        SortOptions(field="created_at", direction="desc"),
    )
    return page.data
