"""
Correlation ID tracking.

Every request, and every Celery task run, gets a correlation ID so that
session validation, audit lines and fired alerts for the same call can
be tied together in the logs.
"""

import uuid
import threading
from typing import Optional

from django.utils.deprecation import MiddlewareMixin


_correlation_context = threading.local()


class CorrelationIDMiddleware(MiddlewareMixin):
    """
    Reads X-Correlation-ID (or X-Request-ID) from the request, or
    generates one, and echoes it back on the response.
    """

    CORRELATION_ID_HEADER = 'X-Correlation-ID'
    REQUEST_ID_HEADER = 'X-Request-ID'

    def process_request(self, request):
        correlation_id = (
            request.headers.get(self.CORRELATION_ID_HEADER) or
            request.headers.get(self.REQUEST_ID_HEADER) or
            generate_correlation_id()
        )
        request.correlation_id = correlation_id
        set_correlation_id(correlation_id)

    def process_response(self, request, response):
        correlation_id = getattr(request, 'correlation_id', None)
        if correlation_id:
            response[self.CORRELATION_ID_HEADER] = correlation_id
        clear_correlation_id()
        return response


def get_correlation_id() -> Optional[str]:
    return getattr(_correlation_context, 'correlation_id', None)


def set_correlation_id(correlation_id: str) -> None:
    _correlation_context.correlation_id = correlation_id


def clear_correlation_id() -> None:
    if hasattr(_correlation_context, 'correlation_id'):
        delattr(_correlation_context, 'correlation_id')


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


class CorrelationIDFilter:
    """Logging filter that stamps the current correlation ID on each record."""

    def filter(self, record):
        record.correlation_id = get_correlation_id() or 'no-correlation-id'
        return True


class CorrelationContext:
    """
    Context manager for setting a correlation ID outside a request.

    Usage:
        with CorrelationContext() as correlation_id:
            cleanup_expired_sessions()
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self.previous_id = None

    def __enter__(self):
        self.previous_id = get_correlation_id()
        set_correlation_id(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.previous_id:
            set_correlation_id(self.previous_id)
        else:
            clear_correlation_id()
        return False
