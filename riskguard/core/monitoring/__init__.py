"""
Structured logging and alert notification delivery.
"""

from .logging_config import (
    configure_structured_logging,
    get_structured_logger,
    security_logger,
)
from .alerting import (
    EmailNotificationChannel,
    NotificationChannel,
    NotificationSink,
    WebhookNotificationChannel,
    build_notification_sink,
)

__all__ = [
    'configure_structured_logging',
    'get_structured_logger',
    'security_logger',
    'EmailNotificationChannel',
    'NotificationChannel',
    'NotificationSink',
    'WebhookNotificationChannel',
    'build_notification_sink',
]
