"""
Notification delivery for security alerts.

The NotificationSink fans an alert out to every configured channel.
Delivery is best effort: a failing channel is logged and reported as
False, it never raises into the code that fired the alert.
"""

import json
from typing import Any, Dict, List, Optional

import requests
from django.conf import settings
from django.core.mail import get_connection, send_mail

from .logging_config import get_structured_logger

logger = get_structured_logger(__name__)


class NotificationChannel:
    """Base class for notification channels."""

    def __init__(self, name: str, config: Dict[str, Any]):
        self.name = name
        self.config = config
        self.enabled = config.get('enabled', True)

    def send_notification(self, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        """Send a notification; returns False instead of raising on failure."""
        if not self.enabled:
            return False

        try:
            return self._send_notification(subject, body, metadata)
        except Exception as e:
            logger.error(f"Failed to send notification via {self.name}", error=str(e))
            return False

    def _send_notification(self, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        """Override this method to implement notification sending."""
        raise NotImplementedError


class EmailNotificationChannel(NotificationChannel):
    """Email notification channel using Django's mail backend with a connection timeout."""

    def _send_notification(self, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        recipients = self.config.get('recipients', [])
        if not recipients:
            logger.warning("No email recipients configured")
            return False

        message = f"{body}\n\nDetails:\n{json.dumps(metadata, indent=2, default=str)}\n"

        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=recipients,
            fail_silently=False,
            connection=get_connection(timeout=self.config.get('timeout', 5)),
        )
        logger.info("Email notification sent", subject=subject, recipients=len(recipients))
        return True


class WebhookNotificationChannel(NotificationChannel):
    """Generic JSON webhook notification channel."""

    def _send_notification(self, subject: str, body: str, metadata: Dict[str, Any]) -> bool:
        webhook_url = self.config.get('url')
        if not webhook_url:
            logger.warning("Webhook URL not configured")
            return False

        payload = {
            'subject': subject,
            'message': body,
            'metadata': metadata,
        }

        response = requests.post(
            webhook_url,
            data=json.dumps(payload, default=str),
            headers={'Content-Type': 'application/json'},
            timeout=self.config.get('timeout', 5),
        )
        response.raise_for_status()

        logger.info("Webhook notification sent", subject=subject, status_code=response.status_code)
        return True


class NotificationSink:
    """
    Best-effort delivery of alert notifications to all channels.
    """

    def __init__(self, channels: Optional[List[NotificationChannel]] = None):
        self.channels = list(channels or [])

    def add_channel(self, channel: NotificationChannel):
        self.channels.append(channel)

    def send(self, subject: str, body: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Deliver a notification through every enabled channel.

        Returns:
            True if at least one channel accepted the notification
        """
        metadata = metadata or {}
        delivered = False
        for channel in self.channels:
            if channel.send_notification(subject, body, metadata):
                delivered = True

        if not delivered:
            logger.warning("Notification was not delivered by any channel", subject=subject)
        return delivered


def build_notification_sink() -> NotificationSink:
    """Create the sink from ALERT_EMAIL_RECIPIENTS and ALERT_WEBHOOK_URL."""
    sink = NotificationSink()

    recipients = getattr(settings, 'ALERT_EMAIL_RECIPIENTS', [])
    if recipients:
        sink.add_channel(EmailNotificationChannel('email', {
            'recipients': recipients,
            'timeout': getattr(settings, 'ALERT_NOTIFICATION_TIMEOUT_SECONDS', 5),
        }))

    webhook_url = getattr(settings, 'ALERT_WEBHOOK_URL', '')
    if webhook_url:
        sink.add_channel(WebhookNotificationChannel('webhook', {
            'url': webhook_url,
            'timeout': getattr(settings, 'ALERT_NOTIFICATION_TIMEOUT_SECONDS', 5),
        }))

    return sink
