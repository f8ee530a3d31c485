"""
Core models package for the session security engine.
"""

from .base import BaseModel
from .session import UserSession, InvalidationReason, DeviceTrust
from .audit import AuditEvent, AuditEventType, RiskLevel
from .alerting import AlertThreshold, AlertRecord, AlertLevel, Metric, ThresholdDirection

__all__ = [
    'BaseModel',
    'UserSession',
    'InvalidationReason',
    'DeviceTrust',
    'AuditEvent',
    'AuditEventType',
    'RiskLevel',
    'AlertThreshold',
    'AlertRecord',
    'AlertLevel',
    'Metric',
    'ThresholdDirection',
]
