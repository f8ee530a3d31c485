"""
Audit service for the session security engine.

Every session state transition and every independent security-relevant
action is appended to the audit trail here. The durable write is the
contract; escalation of critical events to the alert dispatcher happens
after the surrounding transaction commits and is best effort.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from ..models import AuditEvent, AuditEventType, RiskLevel
from ..monitoring.logging_config import security_logger
from ..utils.geolocation import get_client_ip
from .session_store import SessionStore, session_store


logger = logging.getLogger(__name__)


@dataclass
class AuditEventData:
    """Input for AuditService.log(). risk_level is always chosen by the caller."""
    event_type: str
    description: str
    risk_level: str = RiskLevel.LOW
    success: bool = True
    user: Any = None
    email: str = ''
    ip_address: str = 'unknown'
    user_agent: str = ''
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return str(self.user.pk) if self.user is not None else None


class AuditService:
    """
    Service for appending to and querying the audit trail.
    """

    def __init__(self, store: SessionStore = None):
        self.store = store or session_store
        self.max_query_limit = getattr(settings, 'AUDIT_QUERY_MAX_LIMIT', 500)
        self.failed_login_high_risk_attempts = getattr(settings, 'FAILED_LOGIN_HIGH_RISK_ATTEMPTS', 3)

    def log(self, event: AuditEventData) -> AuditEvent:
        """
        Append an event to the audit trail and emit a structured log line.

        Args:
            event: Event to record

        Returns:
            The stored AuditEvent

        Raises:
            StoreUnavailableError: if the event could not be stored
        """
        audit_event = self.store.append_audit_event(
            user=event.user,
            email=event.email or '',
            ip_address=event.ip_address or 'unknown',
            user_agent=event.user_agent or '',
            event_type=event.event_type,
            description=event.description,
            metadata=event.metadata or {},
            risk_level=event.risk_level,
            success=event.success,
        )

        security_logger.log_audit_event(
            event_type=str(event.event_type),
            risk_level=str(event.risk_level),
            description=event.description,
            user_id=event.user_id,
            ip_address=event.ip_address,
            success=event.success,
            metadata=event.metadata,
        )

        if event.risk_level == RiskLevel.CRITICAL:
            transaction.on_commit(lambda: self._escalate(audit_event))

        return audit_event

    def _escalate(self, audit_event: AuditEvent) -> None:
        """Hand a critical event to the alert dispatcher through Celery."""
        from ..tasks.alert_tasks import dispatch_security_alert_task

        try:
            dispatch_security_alert_task.delay(
                metric='admin_security',
                message=f"Critical security event: {audit_event.event_type}",
                value=1,
                context={
                    'audit_event_id': str(audit_event.id),
                    'event_type': audit_event.event_type,
                    'description': audit_event.description,
                    'user_id': str(audit_event.user_id) if audit_event.user_id else None,
                    'email': audit_event.email,
                    'ip_address': audit_event.ip_address,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to escalate critical audit event {audit_event.id}: {e}",
                extra={'audit_event_id': str(audit_event.id), 'error': str(e)}
            )

    # Helpers for common events

    def event_from_request(self, request=None, **fields) -> AuditEventData:
        """Build event data, filling IP address and user agent from the request."""
        if request is not None:
            fields.setdefault('ip_address', get_client_ip(request))
            fields.setdefault('user_agent', request.headers.get('User-Agent', ''))
            user = getattr(request, 'user', None)
            if 'user' not in fields and user is not None and user.is_authenticated:
                fields['user'] = user
        return AuditEventData(**fields)

    def login_success(self, email: str, request=None, user=None,
                      metadata: Optional[Dict[str, Any]] = None) -> AuditEvent:
        return self.log(self.event_from_request(
            request,
            user=user,
            email=email,
            event_type=AuditEventType.LOGIN_SUCCESS,
            description=f"Successful login for {email}",
            metadata=metadata or {},
            risk_level=RiskLevel.LOW,
            success=True,
        ))

    def login_failed(self, email: str, reason: str, attempt_count: Optional[int] = None,
                     request=None) -> AuditEvent:
        """Failed login; high risk once attempt_count reaches the configured limit."""
        high_risk = attempt_count is not None and attempt_count >= self.failed_login_high_risk_attempts
        return self.log(self.event_from_request(
            request,
            email=email,
            event_type=AuditEventType.LOGIN_FAILED,
            description=f"Failed login attempt for {email}: {reason}",
            metadata={'reason': reason, 'attempt_count': attempt_count},
            risk_level=RiskLevel.HIGH if high_risk else RiskLevel.MEDIUM,
            success=False,
        ))

    def suspicious_login(self, email: str, reason: str, request=None,
                         metadata: Optional[Dict[str, Any]] = None) -> AuditEvent:
        return self.log(self.event_from_request(
            request,
            email=email,
            event_type=AuditEventType.SUSPICIOUS_LOGIN,
            description=f"Suspicious login detected for {email}: {reason}",
            metadata=metadata or {},
            risk_level=RiskLevel.HIGH,
            success=False,
        ))

    def password_changed(self, user, request=None) -> AuditEvent:
        return self.log(self.event_from_request(
            request,
            user=user,
            email=getattr(user, 'email', ''),
            event_type=AuditEventType.PASSWORD_CHANGED,
            description="User changed password",
            risk_level=RiskLevel.MEDIUM,
        ))

    def two_factor_toggled(self, user, enabled: bool, request=None) -> AuditEvent:
        return self.log(self.event_from_request(
            request,
            user=user,
            email=getattr(user, 'email', ''),
            event_type=AuditEventType.TWO_FACTOR_ENABLED if enabled else AuditEventType.TWO_FACTOR_DISABLED,
            description=f"Two-factor authentication {'enabled' if enabled else 'disabled'}",
            risk_level=RiskLevel.MEDIUM if enabled else RiskLevel.HIGH,
        ))

    def rate_limit_exceeded(self, endpoint: str, limit: int, request=None) -> AuditEvent:
        return self.log(self.event_from_request(
            request,
            event_type=AuditEventType.RATE_LIMIT_EXCEEDED,
            description=f"Rate limit exceeded for {endpoint}",
            metadata={'endpoint': endpoint, 'limit': limit},
            risk_level=RiskLevel.MEDIUM,
            success=False,
        ))

    def admin_action(self, admin_user, action: str, target_user_id: Optional[str] = None,
                     event_type: str = AuditEventType.ADMIN_ACTION, request=None,
                     metadata: Optional[Dict[str, Any]] = None) -> AuditEvent:
        return self.log(self.event_from_request(
            request,
            user=admin_user,
            email=getattr(admin_user, 'email', ''),
            event_type=event_type,
            description=f"Admin action: {action}",
            metadata={'action': action, 'target_user_id': target_user_id, **(metadata or {})},
            risk_level=RiskLevel.HIGH,
        ))

    def log_security(self, event_type: str, request=None, **fields) -> AuditEvent:
        """Generic security event, medium risk unless the caller says otherwise."""
        fields.setdefault('risk_level', RiskLevel.MEDIUM)
        fields.setdefault('description', f"Security event: {event_type}")
        return self.log(self.event_from_request(request, event_type=event_type, **fields))

    # Queries

    def query_events(self, user=None, event_types: Optional[Iterable[str]] = None,
                     risk_levels: Optional[Iterable[str]] = None, since=None, until=None,
                     limit: int = 100) -> List[AuditEvent]:
        limit = max(1, min(int(limit), self.max_query_limit))
        return self.store.query_audit_events(
            user=user,
            event_types=event_types,
            risk_levels=risk_levels,
            since=since,
            until=until,
            limit=limit,
        )

    def get_security_summary(self, days: int = 7) -> Dict[str, Any]:
        """
        Counts of notable events over the trailing period.

        Returns:
            Dictionary with totals, per-risk-level counts and the 20 most recent events
        """
        start_date = timezone.now() - timedelta(days=days)
        events = AuditEvent.objects.filter(timestamp__gte=start_date)

        by_risk_level = {
            row['risk_level']: row['count']
            for row in events.values('risk_level').annotate(count=Count('id')).order_by()
        }

        recent_events = [
            {
                'event_type': event.event_type,
                'description': event.description,
                'risk_level': event.risk_level,
                'timestamp': event.timestamp.isoformat(),
                'ip_address': event.ip_address,
                'email': event.email,
            }
            for event in events.order_by('-timestamp')[:20]
        ]

        return {
            'total_events': events.count(),
            'critical_events': by_risk_level.get(RiskLevel.CRITICAL.value, 0),
            'high_risk_events': by_risk_level.get(RiskLevel.HIGH.value, 0),
            'failed_logins': events.filter(event_type=AuditEventType.LOGIN_FAILED).count(),
            'suspicious_activity': events.filter(event_type__in=[
                AuditEventType.SUSPICIOUS_LOGIN,
                AuditEventType.MULTIPLE_FAILED_LOGINS,
                AuditEventType.SUSPICIOUS_SESSION_BLOCKED,
            ]).count(),
            'blocked_sessions': events.filter(event_type=AuditEventType.SUSPICIOUS_SESSION_BLOCKED).count(),
            'recent_events': recent_events,
            'period': f"{days} days",
        }


audit_service = AuditService()
