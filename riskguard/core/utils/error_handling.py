"""
Error handling middleware.

Turns RiskGuardError exceptions that escape a view into consistent JSON
error responses. Stack traces, and the details of server side failures,
are logged and never returned to clients.
"""

import logging

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework import status

from ..exceptions import (
    RiskGuardError,
    ConfigurationError,
    TransientError,
    ValidationError,
    SecurityViolation,
    AuditTrailImmutableError,
)
from .correlation import get_correlation_id
from .geolocation import get_client_ip


logger = logging.getLogger(__name__)


class ErrorHandlingMiddleware(MiddlewareMixin):
    """
    Maps RiskGuardError subclasses to HTTP status codes.

    Other exceptions are left to Django's default handling.
    """

    STATUS_CODES = (
        (ValidationError, status.HTTP_400_BAD_REQUEST),
        (SecurityViolation, status.HTTP_403_FORBIDDEN),
        (AuditTrailImmutableError, status.HTTP_409_CONFLICT),
        (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
        (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    )

    def process_exception(self, request, exception):
        if not isinstance(exception, RiskGuardError):
            return None

        if not exception.correlation_id:
            exception.correlation_id = get_correlation_id()

        status_code = self._get_status_code_for_exception(exception)
        log_level = logging.ERROR if status_code >= 500 else logging.WARNING

        logger.log(
            log_level,
            f"RiskGuard error: {exception.error_code} - {exception.message}",
            exc_info=status_code >= 500,
            extra={
                'error_code': exception.error_code,
                'details': exception.details,
                'ip_address': get_client_ip(request),
                'path': request.path,
                'method': request.method,
            }
        )

        # Server side failure details stay in the log
        return JsonResponse(exception.to_dict(include_details=status_code < 500), status=status_code)

    def _get_status_code_for_exception(self, exception: RiskGuardError) -> int:
        for exception_class, status_code in self.STATUS_CODES:
            if isinstance(exception, exception_class):
                return status_code
        return status.HTTP_500_INTERNAL_SERVER_ERROR
