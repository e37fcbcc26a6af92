"""
Request-correlated logging for the promotions platform.

- RequestIDFilter: stamps every record with the current request ID
- set_request_id / get_request_id / clear_request_id: thread-local request context

Usage (settings.LOGGING):
    "filters": {"request_id": {"()": "apps.common.logging.RequestIDFilter"}}
"""

from __future__ import annotations

import logging
import threading
from typing import Any

# Thread-local storage for request context
_request_context = threading.local()


def set_request_id(request_id: str) -> None:
    """Set the current request ID in thread-local storage."""
    _request_context.request_id = request_id


def get_request_id() -> str | None:
    """Get the current request ID from thread-local storage."""
    return getattr(_request_context, "request_id", None)


def clear_request_id() -> None:
    """Clear the request ID from thread-local storage."""
    _request_context.request_id = None
    _request_context.user_id = None


def set_request_context(**kwargs: Any) -> None:
    """Attach extra context (user_id, ...) to the current request."""
    for key, value in kwargs.items():
        setattr(_request_context, key, value)


class RequestIDFilter(logging.Filter):
    """
    Add request ID and user context to log records.

    Records created outside a request get "-" so format strings
    referencing %(request_id)s never fail.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = getattr(_request_context, "request_id", None) or "-"
        if not hasattr(record, "user_id"):
            record.user_id = getattr(_request_context, "user_id", None)
        return True
