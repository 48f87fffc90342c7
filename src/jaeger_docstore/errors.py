"""Exceptions raised by the span store."""


class StoreError(Exception):
    """Base class for all span store errors."""


class InputError(StoreError):
    """The caller supplied query parameters that cannot be executed."""


class NotFound(StoreError):
    """A single trace lookup matched no rows."""


class UpstreamError(StoreError):
    """The document store failed a query, insert or provisioning call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MappingError(StoreError):
    """A stored row could not be decoded into a span."""
