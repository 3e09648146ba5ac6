"""Exceptions raised by the store and the calculation manager."""

from __future__ import annotations


class LaskuriError(Exception):
    """Base class for all pricing backend errors."""


class StorageError(LaskuriError):
    """A document store operation failed.

    The message names the failing operation and the underlying cause, e.g.
    ``Failed to load customers: Expecting value: line 1 column 1``.
    """

    def __init__(self, operation: str, cause: BaseException | str):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}: {cause}")


class NotFoundError(LaskuriError):
    """An update targeted an id that is not in the collection."""

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} with ID {item_id} not found")
