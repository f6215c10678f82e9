from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    invalid_query = "InvalidQuery"
    store_unavailable = "StoreUnavailable"
    internal_store_error = "InternalStoreError"
    cancelled = "Cancelled"


class SearchError(Exception):
    """Base error for the search layer; carries the outcome kind it maps to."""

    kind: ErrorKind = ErrorKind.internal_store_error

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class InvalidQueryError(SearchError):
    kind = ErrorKind.invalid_query


class StoreUnavailableError(SearchError):
    """Connectivity, auth or server-side failure talking to the vector store."""

    kind = ErrorKind.store_unavailable


class InternalStoreError(SearchError):
    """The store answered, but with a shape we cannot parse."""

    kind = ErrorKind.internal_store_error
