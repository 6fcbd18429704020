"""Exceptions raised above the store layer.

Store-level failures are ``wastetrack.database.store_client.StoreError``;
these wrap them with the operation that failed.
"""


class QueryError(RuntimeError):
    """A read against the store failed. Message names the entity query."""


class ServiceError(RuntimeError):
    """A create/update/delete against the store failed."""


class NotFoundError(LookupError):
    pass


class InvalidTransitionError(ValueError):
    pass


class AccessDeniedError(PermissionError):
    pass
