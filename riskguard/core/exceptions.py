"""
Custom exception classes for the session security engine.

Errors are grouped by how callers are expected to react: configuration
problems stop the process at startup, transient errors may be retried,
validation errors are the caller's fault, and security violations are
policy outcomes that get recorded in the audit trail.
"""

from typing import Any, Dict, Optional

from django.core.exceptions import ImproperlyConfigured


class RiskGuardError(Exception):
    """
    Base exception for all riskguard errors.

    All custom exceptions in the system should inherit from this class
    to provide consistent error handling and logging.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
            correlation_id: Request correlation ID for tracking
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}
        self.correlation_id = correlation_id

    def to_dict(self, include_details: bool = True) -> Dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Args:
            include_details: Whether details go into the response; server
                side failures keep them in the logs only

        Returns:
            Dictionary representation of the exception
        """
        result = {
            'error': {
                'code': self.error_code,
                'message': self.message,
            }
        }

        if include_details and self.details:
            result['error']['details'] = self.details

        if self.correlation_id:
            result['error']['correlation_id'] = self.correlation_id

        return result


# Configuration Exceptions
class ConfigurationError(RiskGuardError, ImproperlyConfigured):
    """Exception raised when required configuration is missing or invalid."""

    def __init__(self, setting_name: str, reason: str = "missing", **kwargs):
        details = kwargs.pop('details', {})
        details['setting'] = setting_name
        details['reason'] = reason
        super().__init__(
            f"Configuration error for {setting_name}: {reason}",
            error_code="CONFIGURATION_ERROR",
            details=details,
            **kwargs
        )


# Transient Exceptions
class TransientError(RiskGuardError):
    """Base exception for failures that may succeed on retry."""
    pass


class StoreUnavailableError(TransientError):
    """Exception raised when the session store cannot be reached."""

    def __init__(self, operation: str, reason: str = "", **kwargs):
        details = kwargs.pop('details', {})
        details['operation'] = operation
        if reason:
            details['reason'] = reason
        super().__init__(
            "Session store is temporarily unavailable",
            error_code="STORE_UNAVAILABLE",
            details=details,
            **kwargs
        )


class GeoLookupTimeoutError(TransientError):
    """Exception raised when the geolocation provider does not answer in time."""

    def __init__(self, ip_address: str, timeout_seconds: float, **kwargs):
        super().__init__(
            f"Geolocation lookup timed out after {timeout_seconds}s",
            error_code="GEO_LOOKUP_TIMEOUT",
            details={'ip_address': ip_address, 'timeout_seconds': timeout_seconds},
            **kwargs
        )


# Validation Exceptions
class ValidationError(RiskGuardError):
    """Base exception for invalid caller input."""
    pass


class InvalidSessionIdError(ValidationError):
    """Exception raised when a session id is not a well-formed identifier."""

    def __init__(self, session_id: Any, **kwargs):
        super().__init__(
            "Malformed session identifier",
            error_code="INVALID_SESSION_ID",
            details={'session_id': str(session_id)[:64]},
            **kwargs
        )


class MissingContextError(ValidationError):
    """Exception raised when a request carries no usable device context."""

    def __init__(self, missing: str, **kwargs):
        super().__init__(
            f"Missing request context: {missing}",
            error_code="MISSING_CONTEXT",
            details={'missing': missing},
            **kwargs
        )


# Security Exceptions
class SecurityViolation(RiskGuardError):
    """Base exception for policy outcomes recorded in the audit trail."""
    pass


class SessionRiskViolation(SecurityViolation):
    """Exception describing a session blocked because of its risk score."""

    def __init__(self, session_id: str, risk_score: int, reasons=None, **kwargs):
        super().__init__(
            "Session blocked due to suspicious activity",
            error_code="SESSION_RISK_VIOLATION",
            details={
                'session_id': session_id,
                'risk_score': risk_score,
                'reasons': list(reasons or []),
            },
            **kwargs
        )


class ConcurrentSessionLimitReached(SecurityViolation):
    """Exception describing sessions evicted by the concurrency cap."""

    def __init__(self, user_id: Any, limit: int, evicted: int = 0, **kwargs):
        super().__init__(
            f"Session limit exceeded: maximum {limit} concurrent sessions allowed",
            error_code="SESSION_LIMIT_EXCEEDED",
            details={'user_id': str(user_id), 'limit': limit, 'evicted': evicted},
            **kwargs
        )


# Audit Exceptions
class AuditTrailImmutableError(RiskGuardError):
    """Exception raised on any attempt to modify or delete an audit event."""

    def __init__(self, event_id: Any = None, **kwargs):
        super().__init__(
            "Audit events are append-only",
            error_code="AUDIT_TRAIL_IMMUTABLE",
            details={'event_id': str(event_id)} if event_id else {},
            **kwargs
        )
