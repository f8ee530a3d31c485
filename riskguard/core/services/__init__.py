"""
Services package for the session security engine.
"""

from .session_store import SessionStore, session_store
from .risk_scoring import RiskPolicy, RiskAssessment, RiskScorer
from .timeout_policy import TimeoutPolicy
from .device_context import DeviceContext, DeviceContextResolver
from .audit_service import AuditEventData, AuditService, audit_service
from .alert_service import AlertDispatcher, ThresholdProvider, get_alert_dispatcher
from .session_service import SessionService, ValidationResult, parse_session_id

__all__ = [
    'SessionStore',
    'session_store',
    'RiskPolicy',
    'RiskAssessment',
    'RiskScorer',
    'TimeoutPolicy',
    'DeviceContext',
    'DeviceContextResolver',
    'AuditEventData',
    'AuditService',
    'audit_service',
    'AlertDispatcher',
    'ThresholdProvider',
    'get_alert_dispatcher',
    'SessionService',
    'ValidationResult',
    'parse_session_id',
]
