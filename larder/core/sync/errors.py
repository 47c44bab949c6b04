"""Fetch error classification.

Maps the exceptions raised by remote sources and local stores onto
FetchErrorType so callers can react to a failure category without knowing
which adapter produced it.
"""

import sqlite3

from larder.domain.entities import FetchErrorType
from larder.domain.exceptions import RemoteError, StoreError


def classify_fetch_error(exception: BaseException) -> FetchErrorType:
    """Classify an exception into a FetchErrorType.

    A RemoteError carrying an explicit error_type (set by the adapter that
    raised it) is trusted as-is. Otherwise the chained cause decides the
    category, so an adapter's original exception is what gets classified.

    Args:
        exception: The exception to classify.

    Returns:
        FetchErrorType indicating the category of error.
    """
    # Store failures first: a StoreError is always a store problem
    if isinstance(exception, (StoreError, sqlite3.Error)):
        return FetchErrorType.STORE_ERROR

    if isinstance(exception, RemoteError):
        if exception.error_type is not None:
            return exception.error_type
        cause = exception.__cause__
        if cause is None:
            return FetchErrorType.UNKNOWN
        return classify_fetch_error(cause)

    # ConnectionError and TimeoutError are OSErrors
    if isinstance(exception, OSError):
        return FetchErrorType.NETWORK_ERROR

    # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
    if isinstance(exception, ValueError):
        return FetchErrorType.DECODE_ERROR

    return FetchErrorType.UNKNOWN
