"""
Audit trail models.

AuditEvent rows are append-only. The model refuses updates and deletes
so that every security-relevant transition stays reconstructable.
"""

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from ..exceptions import AuditTrailImmutableError


class RiskLevel(models.TextChoices):
    LOW = 'low', 'Low'
    MEDIUM = 'medium', 'Medium'
    HIGH = 'high', 'High'
    CRITICAL = 'critical', 'Critical'


class AuditEventType(models.TextChoices):
    # Authentication
    LOGIN_SUCCESS = 'login_success', 'Login success'
    LOGIN_FAILED = 'login_failed', 'Login failed'
    LOGOUT = 'logout', 'Logout'
    ACCOUNT_LOCKED = 'account_locked', 'Account locked'
    PASSWORD_CHANGED = 'password_changed', 'Password changed'
    PASSWORD_CHANGE_FAILED = 'password_change_failed', 'Password change failed'
    EMAIL_VERIFIED = 'email_verified', 'Email verified'
    REGISTRATION = 'registration', 'Registration'
    TWO_FACTOR_SETUP_INITIATED = '2fa_setup_initiated', '2FA setup initiated'
    TWO_FACTOR_ENABLED = '2fa_enabled', '2FA enabled'
    TWO_FACTOR_ENABLE_FAILED = '2fa_enable_failed', '2FA enable failed'
    TWO_FACTOR_DISABLED = '2fa_disabled', '2FA disabled'
    TWO_FACTOR_BACKUP_CODES_REGENERATED = '2fa_backup_codes_regenerated', '2FA backup codes regenerated'
    TWO_FACTOR_LOGIN_SUCCESS = '2fa_login_success', '2FA login success'
    TWO_FACTOR_LOGIN_FAILED = '2fa_login_failed', '2FA login failed'

    # Account
    PROFILE_UPDATE = 'profile_update', 'Profile update'
    EMAIL_CHANGE = 'email_change', 'Email change'

    # Security
    SUSPICIOUS_LOGIN = 'suspicious_login', 'Suspicious login'
    MULTIPLE_FAILED_LOGINS = 'multiple_failed_logins', 'Multiple failed logins'
    RATE_LIMIT_EXCEEDED = 'rate_limit_exceeded', 'Rate limit exceeded'
    SESSION_CREATED = 'session_created', 'Session created'
    SESSION_INVALIDATED = 'session_invalidated', 'Session invalidated'
    SESSIONS_BULK_INVALIDATED = 'sessions_bulk_invalidated', 'Sessions bulk invalidated'
    SUSPICIOUS_SESSION_BLOCKED = 'suspicious_session_blocked', 'Suspicious session blocked'

    # Administration
    ADMIN_LOGIN_SUCCESS = 'admin_login_success', 'Admin login success'
    ADMIN_LOGIN_FAILED = 'admin_login_failed', 'Admin login failed'
    ADMIN_LOGIN_BLOCKED = 'admin_login_blocked', 'Admin login blocked'
    ADMIN_CONFIG_ERROR = 'admin_config_error', 'Admin config error'
    ADMIN_SESSIONS_VIEWED = 'admin_sessions_viewed', 'Admin sessions viewed'
    ADMIN_SESSION_INVALIDATED = 'admin_session_invalidated', 'Admin session invalidated'
    ADMIN_BULK_SESSION_INVALIDATION = 'admin_bulk_session_invalidation', 'Admin bulk session invalidation'
    ADMIN_BULK_SESSION_SUSPICIOUS = 'admin_bulk_session_suspicious', 'Admin bulk session suspicious'
    ADMIN_BULK_SESSION_CLEAR_SUSPICIOUS = 'admin_bulk_session_clear_suspicious', 'Admin bulk session clear suspicious'
    ADMIN_ALERT_THRESHOLD_UPDATED = 'admin_alert_threshold_updated', 'Admin alert threshold updated'
    ADMIN_ACTION = 'admin_action', 'Admin action'


class AuditEvent(models.Model):
    """
    Immutable record of a security-relevant event.

    Created through AuditService.log(); never updated or deleted.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_events',
        help_text="User the event refers to, if any"
    )
    email = models.EmailField(blank=True)
    ip_address = models.CharField(
        max_length=45,
        default='unknown',
        help_text="Client IP address or 'unknown'"
    )
    user_agent = models.TextField(blank=True)
    event_type = models.CharField(
        max_length=50,
        choices=AuditEventType.choices,
        db_index=True,
    )
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    risk_level = models.CharField(
        max_length=10,
        choices=RiskLevel.choices,
        default=RiskLevel.LOW,
        db_index=True,
    )
    success = models.BooleanField(default=True)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'core_audit_event'
        verbose_name = 'Audit Event'
        verbose_name_plural = 'Audit Events'
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['user', 'timestamp']),
            models.Index(fields=['event_type', 'timestamp']),
            models.Index(fields=['risk_level', 'timestamp']),
        ]

    def __str__(self):
        return f"{self.event_type} ({self.risk_level}) at {self.timestamp.isoformat()}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AuditTrailImmutableError(self.pk)
        kwargs['force_insert'] = True
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AuditTrailImmutableError(self.pk)
