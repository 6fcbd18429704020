from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .schema import create_all
from .store_client import StoreClient


def get_engine(sqlite_path: str, create_tables: bool = True) -> Engine:
    engine_url = f"sqlite:///{sqlite_path}"
    # Fan-out reads run on worker threads, each taking its own pooled connection
    engine = create_engine(engine_url, future=True, connect_args={"check_same_thread": False})
    if create_tables:
        create_all(engine_url)
    return engine


def get_store(sqlite_path: str, create_tables: bool = True) -> StoreClient:
    """Get a StoreClient (caller must dispose it)."""
    return StoreClient(get_engine(sqlite_path, create_tables=create_tables))


@contextmanager
def store_context(sqlite_path: str, create_tables: bool = True) -> Generator[StoreClient, None, None]:
    """
    Context manager for a StoreClient.

    Each query runs in its own connection/transaction, so there is nothing to
    commit here; the context only guarantees the engine's pool is released.

    Usage:
        with store_context(sqlite_path) as store:
            get_payments(store, PaymentFilters(user_id=uid))
    """
    store = get_store(sqlite_path, create_tables=create_tables)
    try:
        yield store
    finally:
        store.dispose()
