"""
Session lifecycle management service.

Creates sessions at login, validates and re-scores them on every
request, and invalidates them on logout, expiry, critical risk, admin
action or concurrency eviction. Every state transition is written to
the audit trail.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Avg, Count, F, Q, Value
from django.db.models.functions import Greatest, Least
from django.utils import timezone

from ..exceptions import (
    ConcurrentSessionLimitReached,
    InvalidSessionIdError,
    SessionRiskViolation,
    ValidationError,
)
from ..models import AuditEventType, DeviceTrust, InvalidationReason, RiskLevel, UserSession
from ..monitoring.logging_config import security_logger
from .audit_service import AuditEventData, AuditService
from .device_context import DeviceContext
from .risk_scoring import RiskScorer
from .session_store import SessionStore, session_store
from .timeout_policy import TimeoutPolicy


logger = logging.getLogger(__name__)

MAX_BULK_SESSIONS = 100
SUSPICIOUS_RISK_ADJUSTMENT = 25


@dataclass
class ValidationResult:
    valid: bool
    risk: str
    reasons: List[str] = field(default_factory=list)
    session_id: Optional[str] = None
    risk_score: Optional[int] = None
    user_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.valid,
            'risk': str(self.risk),
            'reasons': list(self.reasons),
        }


class UserLockRegistry:
    """
    Process-local striped locks keyed by user.

    Row locks from select_for_update() are no-ops on SQLite, so session
    creation for one user is also serialized inside the process. A user
    always maps to the same stripe; unrelated users may share one, which
    only costs some extra waiting. The number of locks never grows.
    """

    def __init__(self, stripes: int = 64):
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def lock_for(self, user_id) -> threading.Lock:
        return self._locks[hash(str(user_id)) % len(self._locks)]

    @contextmanager
    def hold(self, user_id):
        with self.lock_for(user_id):
            yield


user_locks = UserLockRegistry()


class SessionService:
    """
    Session lifecycle service.

    Handles session creation with the concurrency cap, per-request
    validation with risk scoring, and every kind of invalidation.
    """

    def __init__(self, store: SessionStore = None, audit_service: AuditService = None,
                 risk_scorer: RiskScorer = None, timeout_policy: TimeoutPolicy = None,
                 clock: Callable[[], datetime] = timezone.now):
        self.store = store or session_store
        self.audit_service = audit_service or AuditService(store=self.store)
        self.risk_scorer = risk_scorer or RiskScorer()
        self.timeout_policy = timeout_policy or TimeoutPolicy()
        self.clock = clock
        self.max_concurrent_sessions = getattr(settings, 'MAX_CONCURRENT_SESSIONS', 5)
        self.activity_window = timedelta(hours=getattr(settings, 'SESSION_ACTIVITY_WINDOW_HOURS', 24))

    def create_session(self, user, device_context: DeviceContext,
                       device_trust: str = DeviceTrust.NEW) -> UserSession:
        """
        Create a new session, evicting the least recently used ones over the cap.

        Args:
            user: Authenticated user
            device_context: Context of the login request
            device_trust: Trust classification of the login device

        Returns:
            Created UserSession; its id is the session identifier
        """
        with user_locks.hold(user.pk):
            with transaction.atomic():
                # Serializes concurrent logins for the same user on PostgreSQL
                list(get_user_model().objects.select_for_update().filter(pk=user.pk).values_list('pk'))

                now = self.clock()
                active_sessions = self.store.list_active_sessions(user, order_by='last_activity')
                if len(active_sessions) >= self.max_concurrent_sessions:
                    overflow = len(active_sessions) - self.max_concurrent_sessions + 1
                    self._evict_sessions(user, active_sessions[:overflow], device_context, now)

                session = self.store.create_session(
                    user=user,
                    device_trust=device_trust,
                    created_at=now,
                    last_activity=now,
                    expires_at=self.timeout_policy.compute_expiry(now, 0, device_trust),
                    risk_score=0,
                    **device_context.session_fields()
                )

                self.audit_service.log(AuditEventData(
                    user=user,
                    email=getattr(user, 'email', ''),
                    ip_address=device_context.location.ip,
                    user_agent=device_context.user_agent,
                    event_type=AuditEventType.SESSION_CREATED,
                    description=f"Session created on {session.device_name or 'unknown device'}",
                    metadata={
                        'session_id': str(session.id),
                        'location': session.location,
                        'device_trust': str(device_trust),
                        'expires_at': session.expires_at.isoformat(),
                    },
                    risk_level=RiskLevel.LOW,
                ))

        logger.info(f"Created session {session.id} for user {user.pk}")
        return session

    def _evict_sessions(self, user, sessions: List[UserSession], device_context: DeviceContext,
                        now: datetime) -> int:
        session_ids = [session.id for session in sessions]
        evicted = self.store.invalidate(session_ids, InvalidationReason.CONCURRENT_SESSION_LIMIT, now)

        violation = ConcurrentSessionLimitReached(user.pk, self.max_concurrent_sessions, evicted)
        self.audit_service.log(AuditEventData(
            user=user,
            email=getattr(user, 'email', ''),
            ip_address=device_context.location.ip,
            user_agent=device_context.user_agent,
            event_type=AuditEventType.SESSIONS_BULK_INVALIDATED,
            description=violation.message,
            metadata={
                **violation.details,
                'reason': InvalidationReason.CONCURRENT_SESSION_LIMIT.value,
                'session_ids': [str(session_id) for session_id in session_ids],
            },
            risk_level=RiskLevel.MEDIUM,
        ))

        logger.info(f"Evicted {evicted} sessions for user {user.pk} (limit {self.max_concurrent_sessions})")
        return evicted

    def validate_session(self, session_id, device_context: DeviceContext, user=None) -> ValidationResult:
        """
        Validate a session against the context of the current request.

        Expired sessions and sessions scoring critical are invalidated
        within this call. Other sessions have their activity time, risk
        score and suspicious flag refreshed. When the authenticated user
        is given, a session owned by someone else is refused before
        anything about it changes.

        Raises:
            InvalidSessionIdError: if session_id is not a UUID
            StoreUnavailableError: if the store cannot be reached
        """
        session_uuid = parse_session_id(session_id)
        now = self.clock()

        session = self.store.get_session(session_uuid)
        if session is None:
            return ValidationResult(False, RiskLevel.HIGH, ['session_not_found'], str(session_uuid))
        if user is not None and session.user_id != user.pk:
            logger.warning(f"User {user.pk} presented session {session.id} owned by user {session.user_id}")
            return ValidationResult(False, RiskLevel.HIGH, ['session_user_mismatch'], str(session.id))
        if not session.is_active:
            return ValidationResult(False, RiskLevel.HIGH, ['session_inactive'], str(session_uuid))

        if session.is_expired(now):
            self.invalidate_session(session.id, InvalidationReason.EXPIRED)
            return ValidationResult(False, RiskLevel.MEDIUM, ['session_expired'], str(session.id))

        recent_session_count = self.store.count_sessions_since(session.user, now - self.activity_window)
        assessment = self.risk_scorer.score(session, device_context, recent_session_count, now)

        if assessment.is_critical:
            self._block_session(session, assessment, device_context, now)
            return ValidationResult(
                False, RiskLevel.CRITICAL, assessment.reasons, str(session.id), assessment.score
            )

        updated = self.store.update_session(
            session.id,
            last_activity=now,
            risk_score=assessment.score,
            is_suspicious=assessment.is_high,
            risk_reasons=assessment.reasons,
        )
        if not updated:
            # Invalidated by a concurrent request after we loaded it
            return ValidationResult(False, RiskLevel.HIGH, ['session_inactive'], str(session.id))

        return ValidationResult(
            True, assessment.level, assessment.reasons, str(session.id), assessment.score, str(session.user_id)
        )

    def _block_session(self, session: UserSession, assessment, device_context: DeviceContext,
                       now: datetime) -> None:
        with transaction.atomic():
            blocked = self.store.invalidate([session.id], InvalidationReason.SUSPICIOUS_ACTIVITY, now)
            if not blocked:
                return

            violation = SessionRiskViolation(str(session.id), assessment.score, assessment.reasons)
            self.audit_service.log(AuditEventData(
                user=session.user,
                email=getattr(session.user, 'email', ''),
                ip_address=device_context.location.ip,
                user_agent=device_context.user_agent,
                event_type=AuditEventType.SUSPICIOUS_SESSION_BLOCKED,
                description=violation.message,
                metadata={
                    **violation.details,
                    'stored_location': session.location_string,
                    'current_location': device_context.location.display,
                },
                risk_level=RiskLevel.HIGH,
                success=False,
            ))
            security_logger.log_session_blocked(
                str(session.id), str(session.user_id), assessment.score, assessment.reasons
            )

            transaction.on_commit(
                lambda: self._dispatch_risk_alert(session, assessment.score, assessment.reasons)
            )

    def _dispatch_risk_alert(self, session: UserSession, risk_score: int, reasons: List[str]) -> None:
        from ..tasks.alert_tasks import dispatch_security_alert_task

        try:
            dispatch_security_alert_task.delay(
                metric='session_risk',
                message=f"Session {session.id} blocked with risk score {risk_score}",
                value=risk_score,
                context={
                    'session_id': str(session.id),
                    'user_id': str(session.user_id),
                    'reasons': list(reasons),
                },
            )
        except Exception as e:
            logger.error(f"Failed to dispatch risk alert for session {session.id}: {e}")

    def invalidate_session(self, session_id, reason: str = InvalidationReason.USER_REQUESTED,
                           actor=None) -> bool:
        """
        Invalidate one session. Calling it again for the same session is a no-op.

        Args:
            session_id: Session to invalidate
            reason: InvalidationReason value
            actor: Admin user performing the invalidation, if any

        Returns:
            True if the session changed state
        """
        session_uuid = parse_session_id(session_id)
        now = self.clock()
        changed = self.store.invalidate([session_uuid], reason, now) == 1
        if not changed:
            return False

        session = self.store.get_session(session_uuid)
        self.audit_service.log(AuditEventData(
            user=actor or session.user,
            email=getattr(actor or session.user, 'email', ''),
            event_type=(
                AuditEventType.ADMIN_SESSION_INVALIDATED if actor is not None
                else AuditEventType.SESSION_INVALIDATED
            ),
            description=f"Session invalidated: {reason}",
            metadata={
                'session_id': str(session_uuid),
                'session_user_id': str(session.user_id),
                'reason': str(reason),
            },
            risk_level=RiskLevel.MEDIUM if actor is not None else RiskLevel.LOW,
        ))
        return True

    def invalidate_other_sessions(self, user, keep_session_id=None,
                                  reason: str = InvalidationReason.USER_REQUESTED_ALL,
                                  actor=None) -> int:
        """
        Invalidate every active session of a user except keep_session_id.

        Returns:
            Number of sessions invalidated
        """
        keep_uuid = parse_session_id(keep_session_id) if keep_session_id else None
        session_ids = [
            session.id for session in self.store.list_active_sessions(user)
            if session.id != keep_uuid
        ]
        if not session_ids:
            return 0

        count = self.store.invalidate(session_ids, reason, self.clock())
        if count:
            self.audit_service.log(AuditEventData(
                user=actor or user,
                email=getattr(actor or user, 'email', ''),
                event_type=AuditEventType.SESSIONS_BULK_INVALIDATED,
                description=f"Invalidated {count} other sessions",
                metadata={
                    'count': count,
                    'kept_session_id': str(keep_uuid) if keep_uuid else None,
                    'target_user_id': str(user.pk),
                    'reason': str(reason),
                },
                risk_level=RiskLevel.MEDIUM,
            ))
        return count

    def cleanup_expired_sessions(self, user=None) -> int:
        """
        Invalidate every active session that has passed its expiry.

        Safe to run concurrently with validation: the invalidation is a
        single conditional update, so a session is only counted once.

        Returns:
            Number of sessions invalidated
        """
        now = self.clock()
        count = self.store.invalidate_expired(now, user=user)

        if count > 0:
            self.audit_service.log(AuditEventData(
                user=user,
                email=getattr(user, 'email', '') if user is not None else '',
                event_type=AuditEventType.SESSIONS_BULK_INVALIDATED,
                description=f"Cleaned up {count} expired sessions",
                metadata={'count': count, 'reason': InvalidationReason.EXPIRED.value},
                risk_level=RiskLevel.LOW,
            ))
            logger.info(f"Cleaned up {count} expired sessions")

        return count

    def get_active_sessions(self, user) -> List[UserSession]:
        return self.store.list_active_sessions(user)

    def get_recent_sessions(self, user, hours: int = 24) -> List[UserSession]:
        since = self.clock() - timedelta(hours=hours)
        return list(UserSession.objects.for_user(user).filter(created_at__gte=since).order_by('-created_at'))

    def mark_sessions_suspicious(self, session_ids: Iterable, actor=None) -> int:
        """Flag active sessions as suspicious and raise their risk score by 25 (max 100)."""
        ids = self._bulk_ids(session_ids)
        count = UserSession.objects.filter(pk__in=ids, is_active=True).update(
            is_suspicious=True,
            risk_score=Least(F('risk_score') + SUSPICIOUS_RISK_ADJUSTMENT, Value(100)),
        )
        self._audit_bulk_action(actor, AuditEventType.ADMIN_BULK_SESSION_SUSPICIOUS,
                                'mark_suspicious', ids, count)
        return count

    def clear_suspicious_flag(self, session_ids: Iterable, actor=None) -> int:
        """Clear the suspicious flag and lower the risk score by 25 (min 0)."""
        ids = self._bulk_ids(session_ids)
        count = UserSession.objects.filter(pk__in=ids, is_active=True).update(
            is_suspicious=False,
            risk_score=Greatest(F('risk_score') - SUSPICIOUS_RISK_ADJUSTMENT, Value(0)),
        )
        self._audit_bulk_action(actor, AuditEventType.ADMIN_BULK_SESSION_CLEAR_SUSPICIOUS,
                                'clear_suspicious', ids, count)
        return count

    def invalidate_sessions(self, session_ids: Iterable,
                            reason: str = InvalidationReason.ADMIN_BULK_INVALIDATION,
                            actor=None) -> int:
        ids = self._bulk_ids(session_ids)
        count = self.store.invalidate(ids, reason, self.clock())
        self._audit_bulk_action(actor, AuditEventType.ADMIN_BULK_SESSION_INVALIDATION,
                                'invalidate', ids, count)
        return count

    def _bulk_ids(self, session_ids: Iterable) -> List[uuid.UUID]:
        ids = [parse_session_id(session_id) for session_id in session_ids]
        if len(ids) > MAX_BULK_SESSIONS:
            raise ValidationError(
                f"At most {MAX_BULK_SESSIONS} sessions can be processed at once",
                error_code="TOO_MANY_SESSIONS",
                details={'count': len(ids), 'limit': MAX_BULK_SESSIONS},
            )
        return ids

    def _audit_bulk_action(self, actor, event_type: str, action: str, ids: List[uuid.UUID], count: int):
        self.audit_service.log(AuditEventData(
            user=actor,
            email=getattr(actor, 'email', '') if actor is not None else '',
            event_type=event_type,
            description=f"Admin bulk action {action} on {count} sessions",
            metadata={
                'action': action,
                'requested': len(ids),
                'affected': count,
                'session_ids': [str(session_id) for session_id in ids],
            },
            risk_level=RiskLevel.HIGH,
        ))

    def get_session_statistics(self, user=None) -> Dict[str, Any]:
        """
        Get session statistics.

        Args:
            user: Optional user to get statistics for (if None, get global stats)
        """
        sessions_query = UserSession.objects.all()
        if user is not None:
            sessions_query = sessions_query.filter(user=user)

        stats = sessions_query.aggregate(
            total_sessions=Count('id'),
            active_sessions=Count('id', filter=Q(is_active=True)),
            suspicious_sessions=Count('id', filter=Q(is_active=True, is_suspicious=True)),
            avg_risk_score=Avg('risk_score', filter=Q(is_active=True)),
            high_risk_sessions=Count('id', filter=Q(is_active=True, risk_score__gte=50)),
            medium_risk_sessions=Count('id', filter=Q(is_active=True, risk_score__gte=25, risk_score__lt=50)),
            low_risk_sessions=Count('id', filter=Q(is_active=True, risk_score__lt=25)),
        )
        stats['avg_risk_score'] = round(stats['avg_risk_score'] or 0.0, 2)

        stats['invalidation_reasons'] = {
            row['invalidation_reason']: row['count']
            for row in sessions_query.filter(is_active=False)
            .values('invalidation_reason').annotate(count=Count('id')).order_by()
        }

        stats['top_countries'] = list(
            sessions_query.filter(is_active=True).exclude(country='')
            .values('country').annotate(count=Count('id')).order_by('-count')[:10]
        )

        stats['sessions_last_24h'] = sessions_query.filter(
            created_at__gte=self.clock() - timedelta(hours=24)
        ).count()

        return stats


def parse_session_id(session_id) -> uuid.UUID:
    """
    Parse a session identifier.

    Raises:
        InvalidSessionIdError: if the value is not a UUID
    """
    if isinstance(session_id, uuid.UUID):
        return session_id
    try:
        return uuid.UUID(str(session_id))
    except (TypeError, ValueError, AttributeError):
        raise InvalidSessionIdError(session_id)


# Convenience functions for common operations

def create_user_session(user, device_context: DeviceContext,
                        device_trust: str = DeviceTrust.NEW) -> UserSession:
    return SessionService().create_session(user, device_context, device_trust)


def validate_user_session(session_id, device_context: DeviceContext) -> ValidationResult:
    return SessionService().validate_session(session_id, device_context)


def invalidate_user_session(session_id, reason: str = InvalidationReason.USER_REQUESTED) -> bool:
    return SessionService().invalidate_session(session_id, reason)


def cleanup_expired_sessions(user=None) -> int:
    """
    Convenience function to cleanup expired sessions.

    Returns:
        Number of sessions cleaned up
    """
    return SessionService().cleanup_expired_sessions(user=user)
