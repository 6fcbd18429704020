"""Shared plumbing for record services."""

import json
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from wastetrack.database.store_client import StoreError
from wastetrack.errors import ServiceError
from wastetrack.utils.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def store_write(operation: str) -> Generator[None, None, None]:
    """Re-raise store failures inside the block as ServiceError("Failed to <operation>: ...")."""
    try:
        yield
    except StoreError as exc:
        logger.error("Failed to %s: %s (code=%s)", operation, exc.message, exc.code)
        raise ServiceError(f"Failed to {operation}: {exc.message}") from exc


def dump_json(value: Optional[Dict[str, Any]]) -> Optional[str]:
    """Serialize an optional dict column (sorted keys, ISO dates via str)."""
    if value is None:
        return None
    return json.dumps(value, sort_keys=True, default=str)
