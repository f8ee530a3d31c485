"""
Session tracking models.

A UserSession row is the durable record of one authenticated device
session: where it came from, how risky it currently looks and, once it
is no longer usable, why it was invalidated.
"""

from datetime import timedelta

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from .base import BaseModel


class InvalidationReason(models.TextChoices):
    USER_REQUESTED = 'user_requested', 'User requested'
    USER_REQUESTED_ALL = 'user_requested_all', 'User requested (all devices)'
    EXPIRED = 'expired', 'Expired'
    SUSPICIOUS_ACTIVITY = 'suspicious_activity', 'Suspicious activity'
    ADMIN_ACTION = 'admin_action', 'Admin action'
    ADMIN_BULK_INVALIDATION = 'admin_bulk_invalidation', 'Admin bulk invalidation'
    CONCURRENT_SESSION_LIMIT = 'concurrent_session_limit', 'Concurrent session limit'


class DeviceTrust(models.TextChoices):
    NEW = 'new', 'New device'
    TRUSTED = 'trusted', 'Trusted device'
    SUSPICIOUS = 'suspicious', 'Suspicious device'


class UserSessionQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def expired(self, now=None):
        return self.filter(is_active=True, expires_at__lt=now or timezone.now())

    def for_user(self, user):
        return self.filter(user=user)


class UserSession(BaseModel):
    """
    Authenticated session bound to a user and a device fingerprint.

    Rows are only changed through the session service. Once is_active
    is False the row is terminal: every update statement that touches
    session state is filtered on is_active=True.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='security_sessions',
        help_text="User associated with this session"
    )

    # Device information
    device_fingerprint = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Hash of browser, operating system, device and IP"
    )
    device_name = models.CharField(max_length=100, blank=True)
    browser = models.CharField(max_length=100, blank=True)
    os = models.CharField(max_length=100, blank=True)
    is_mobile = models.BooleanField(default=False)
    user_agent = models.TextField(blank=True)
    device_trust = models.CharField(
        max_length=20,
        choices=DeviceTrust.choices,
        default=DeviceTrust.NEW,
        help_text="Trust classification of the device at login"
    )

    # Network and location information
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True,
        help_text="IP address of the session"
    )
    location = models.CharField(
        max_length=255,
        blank=True,
        help_text="Human readable location, e.g. 'Paris, France'"
    )
    country = models.CharField(max_length=100, blank=True)
    region = models.CharField(max_length=100, blank=True)
    city = models.CharField(max_length=100, blank=True)
    latitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-90), MaxValueValidator(90)],
    )
    longitude = models.FloatField(
        null=True,
        blank=True,
        validators=[MinValueValidator(-180), MaxValueValidator(180)],
    )

    # Lifecycle
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    last_activity = models.DateTimeField(
        default=timezone.now,
        help_text="Last validated request"
    )
    expires_at = models.DateTimeField(
        help_text="Session expiration timestamp"
    )
    is_active = models.BooleanField(default=True, db_index=True)
    invalidated_at = models.DateTimeField(null=True, blank=True)
    invalidation_reason = models.CharField(
        max_length=40,
        choices=InvalidationReason.choices,
        null=True,
        blank=True,
    )

    # Risk
    is_suspicious = models.BooleanField(default=False)
    risk_score = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Risk score from the last validation (0-100)"
    )
    risk_reasons = models.JSONField(
        default=list,
        blank=True,
        help_text="Reasons contributing to the last risk score"
    )

    objects = UserSessionQuerySet.as_manager()

    class Meta:
        db_table = 'core_user_session'
        verbose_name = 'User Session'
        verbose_name_plural = 'User Sessions'
        ordering = ['-last_activity']
        indexes = [
            models.Index(fields=['user', 'is_active']),
            models.Index(fields=['user', 'created_at']),
            models.Index(fields=['is_active', 'expires_at']),
            models.Index(fields=['last_activity']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(risk_score__gte=0) & Q(risk_score__lte=100),
                name='user_session_risk_score_range',
            ),
            models.CheckConstraint(
                condition=(
                    Q(invalidated_at__isnull=True, invalidation_reason__isnull=True) |
                    Q(invalidated_at__isnull=False, invalidation_reason__isnull=False)
                ),
                name='user_session_invalidation_pair',
            ),
        ]

    def __str__(self):
        return f"Session {str(self.id)[:8]}... for user {self.user_id}"

    def is_expired(self, now=None) -> bool:
        return (now or timezone.now()) > self.expires_at

    @property
    def location_string(self) -> str:
        if self.location:
            return self.location
        parts = [part for part in [self.city, self.region, self.country] if part]
        return ', '.join(parts) if parts else 'Unknown Location'

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def remaining_lifetime(self) -> timedelta:
        return max(self.expires_at - timezone.now(), timedelta(0))
