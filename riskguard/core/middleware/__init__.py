"""
Middleware package for the session security engine.
"""

from .session_security_middleware import (
    AccessDecision,
    SessionSecurityMiddleware,
    evaluate_request,
    require_secure_session,
)

__all__ = [
    'AccessDecision',
    'SessionSecurityMiddleware',
    'evaluate_request',
    'require_secure_session',
]
