"""
Durable storage for sessions and audit events.

All session mutations are conditional UPDATE statements filtered on
is_active=True, so an invalidated session can never be revived by a
request that raced with its invalidation. Database failures surface as
StoreUnavailableError.
"""

import functools
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from django.db import DatabaseError
from django.utils import timezone

from ..exceptions import StoreUnavailableError
from ..models import AuditEvent, UserSession


logger = logging.getLogger(__name__)


def _wrap_database_errors(method):
    """Translate DatabaseError from the ORM into StoreUnavailableError."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except DatabaseError as e:
            logger.error(f"Session store operation {method.__name__} failed: {e}")
            raise StoreUnavailableError(method.__name__, str(e)) from e
    return wrapper


class SessionStore:
    """
    ORM-backed store for UserSession and AuditEvent rows.
    """

    @_wrap_database_errors
    def create_session(self, **fields) -> UserSession:
        return UserSession.objects.create(**fields)

    @_wrap_database_errors
    def get_session(self, session_id) -> Optional[UserSession]:
        return UserSession.objects.filter(pk=session_id).first()

    @_wrap_database_errors
    def update_session(self, session_id, **fields) -> bool:
        """
        Update an active session.

        Returns:
            False if the session was not active (no row changed)
        """
        updated = UserSession.objects.filter(pk=session_id, is_active=True).update(**fields)
        return updated == 1

    @_wrap_database_errors
    def invalidate(self, session_ids: Iterable, reason: str, now: Optional[datetime] = None) -> int:
        """
        Invalidate the given sessions if they are still active.

        Returns:
            Number of sessions that changed state
        """
        return UserSession.objects.filter(pk__in=list(session_ids), is_active=True).update(
            is_active=False,
            invalidated_at=now or timezone.now(),
            invalidation_reason=reason,
        )

    @_wrap_database_errors
    def invalidate_expired(self, now: datetime, user=None) -> int:
        """
        Invalidate every active session whose expires_at is in the past.

        Returns:
            Number of sessions that changed state
        """
        queryset = UserSession.objects.expired(now)
        if user is not None:
            queryset = queryset.filter(user=user)
        return queryset.update(
            is_active=False,
            invalidated_at=now,
            invalidation_reason='expired',
        )

    @_wrap_database_errors
    def list_active_sessions(self, user, order_by: str = '-last_activity') -> List[UserSession]:
        return list(UserSession.objects.active().for_user(user).order_by(order_by))

    @_wrap_database_errors
    def count_sessions_since(self, user, since: datetime) -> int:
        return UserSession.objects.for_user(user).filter(created_at__gte=since).count()

    @_wrap_database_errors
    def append_audit_event(self, **fields) -> AuditEvent:
        return AuditEvent.objects.create(**fields)

    @_wrap_database_errors
    def query_audit_events(self, user=None, event_types: Optional[Iterable[str]] = None,
                           risk_levels: Optional[Iterable[str]] = None,
                           since: Optional[datetime] = None, until: Optional[datetime] = None,
                           limit: int = 100) -> List[AuditEvent]:
        queryset = AuditEvent.objects.all()
        if user is not None:
            queryset = queryset.filter(user=user)
        if event_types:
            queryset = queryset.filter(event_type__in=list(event_types))
        if risk_levels:
            queryset = queryset.filter(risk_level__in=list(risk_levels))
        if since is not None:
            queryset = queryset.filter(timestamp__gte=since)
        if until is not None:
            queryset = queryset.filter(timestamp__lte=until)
        return list(queryset.order_by('-timestamp')[:limit])


session_store = SessionStore()
