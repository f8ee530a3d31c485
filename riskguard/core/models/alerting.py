"""
Alert threshold configuration and fired-alert history.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone

from .base import BaseModel


class Metric(models.TextChoices):
    SESSION_RISK = 'session_risk', 'Session risk score'
    ADMIN_SECURITY = 'admin_security', 'Critical security events'
    ANALYSES_SUCCESS_RATE = 'analyses.success_rate', 'Analysis success rate'
    ANALYSES_ERRORS_LAST_HOUR = 'analyses.errors_last_hour', 'Analysis errors in the last hour'
    ANALYSES_AVG_PROCESSING_TIME = 'analyses.avg_processing_time', 'Average analysis processing time (ms)'
    DB_RESPONSE_TIME = 'api_health.db_response_time', 'Database response time (ms)'
    OPENAI_STATUS = 'api_health.openai_status', 'OpenAI API status'
    STRIPE_STATUS = 'api_health.stripe_status', 'Stripe API status'


class AlertLevel(models.TextChoices):
    WARNING = 'warning', 'Warning'
    CRITICAL = 'critical', 'Critical'


class ThresholdDirection(models.TextChoices):
    HIGHER_IS_WORSE = 'higher_is_worse', 'Higher is worse'
    LOWER_IS_WORSE = 'lower_is_worse', 'Lower is worse'


# Status metrics are reported as strings and compared as numbers
SERVICE_STATUS_VALUES = {
    'healthy': 1.0,
    'degraded': 0.5,
    'down': 0.0,
}


class AlertThresholdManager(models.Manager):

    def seed_defaults(self):
        """Create a row for every metric that has no configured threshold yet."""
        defaults = getattr(settings, 'ALERT_DEFAULT_THRESHOLDS', {})
        created = 0
        for metric, values in defaults.items():
            if metric not in Metric.values:
                continue
            _, was_created = self.get_or_create(
                metric=metric,
                defaults={
                    'critical': values['critical'],
                    'warning': values['warning'],
                    'direction': values.get('direction', ThresholdDirection.HIGHER_IS_WORSE),
                },
            )
            created += int(was_created)
        return created


class AlertThreshold(BaseModel):
    """
    Admin-configurable warning and critical thresholds for one metric.
    """

    metric = models.CharField(
        max_length=50,
        choices=Metric.choices,
        unique=True,
    )
    critical = models.FloatField(help_text="Value at which a critical alert fires")
    warning = models.FloatField(help_text="Value at which a warning alert fires")
    direction = models.CharField(
        max_length=20,
        choices=ThresholdDirection.choices,
        default=ThresholdDirection.HIGHER_IS_WORSE,
    )
    enabled = models.BooleanField(default=True)
    message_template = models.CharField(
        max_length=255,
        blank=True,
        help_text="Optional message, formatted with {metric}, {value}, {threshold} and {level}"
    )
    updated_at = models.DateTimeField(auto_now=True)

    objects = AlertThresholdManager()

    class Meta:
        db_table = 'core_alert_threshold'
        verbose_name = 'Alert Threshold'
        verbose_name_plural = 'Alert Thresholds'
        ordering = ['metric']

    def __str__(self):
        return f"{self.metric}: warning={self.warning} critical={self.critical}"

    def breaches(self, value: float, limit: float) -> bool:
        if self.direction == ThresholdDirection.LOWER_IS_WORSE:
            return value < limit
        return value > limit


class AlertRecord(BaseModel):
    """
    Alert that passed the cooldown check and was fired.
    """

    metric = models.CharField(max_length=50, choices=Metric.choices, db_index=True)
    level = models.CharField(max_length=10, choices=AlertLevel.choices)
    value = models.FloatField(null=True, blank=True)
    threshold = models.FloatField(null=True, blank=True)
    message = models.TextField()
    context = models.JSONField(default=dict, blank=True)
    notified = models.BooleanField(
        default=False,
        help_text="Whether the notification sink accepted the alert"
    )
    fired_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'core_alert_record'
        verbose_name = 'Alert Record'
        verbose_name_plural = 'Alert Records'
        ordering = ['-fired_at']
        indexes = [
            models.Index(fields=['metric', 'level', 'fired_at']),
        ]

    def __str__(self):
        return f"[{self.level.upper()}] {self.metric} at {self.fired_at.isoformat()}"
