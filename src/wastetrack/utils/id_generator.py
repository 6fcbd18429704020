import uuid
from datetime import UTC, datetime


def new_record_id() -> str:
    return str(uuid.uuid4())


def new_payment_reference() -> str:
    return f"PAY-{datetime.now(UTC).strftime('%Y%m%d')}-{uuid.uuid4().hex[:8].upper()}"
