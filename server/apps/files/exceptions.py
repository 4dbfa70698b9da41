"""Exceptions for files app.

Payload problems are reported with Django's own
``django.core.exceptions.ValidationError``.
"""


class StorageError(Exception):
    """Raised when a storage backend cannot write or delete an object."""

    def __init__(self, backend: str, name: str, action: str) -> None:
        """Initialize StorageError.

        Args:
            backend: Alias of the storage backend.
            name: Object name inside the backend.
            action: What was attempted ('write', 'delete', ...).
        """
        self.backend = backend
        self.name = name
        self.action = action
        super().__init__(
            f'Storage {action} failed for {name!r} on backend {backend!r}',
        )


class ExtractionError(Exception):
    """Raised when image header or metadata segment parsing fails.

    Never leaves the ingestion pipeline: callers log it and carry on
    without the affected metadata.
    """


class StreamAbortedError(Exception):
    """Raised to a side reader when the primary reader stopped early."""


class NotFoundError(Exception):
    """Raised when a record does not exist."""

    def __init__(self, collection: str, pk: object) -> None:
        """Initialize NotFoundError.

        Args:
            collection: Collection label (e.g. 'files.File').
            pk: Primary key that was looked up.
        """
        self.collection = collection
        self.pk = pk
        super().__init__(f'{collection} record not found: {pk}')
