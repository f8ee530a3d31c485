"""
Celery tasks for session maintenance.

Expired-session cleanup runs on the beat schedule instead of on the
request path, so its cadence does not depend on traffic.
"""

import logging

from celery import shared_task
from django.utils import timezone

from ..exceptions import TransientError
from ..services.session_service import SessionService
from ..utils.correlation import CorrelationContext


logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def cleanup_expired_sessions_task(self):
    """
    Invalidate every active session whose expiry has passed.

    Scheduled every SESSION_CLEANUP_INTERVAL seconds.
    """
    with CorrelationContext():
        try:
            cleaned_count = SessionService().cleanup_expired_sessions()
        except TransientError as exc:
            logger.error(f"Session cleanup task failed: {exc}")
            # Retry with exponential backoff
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        logger.info(f"Session cleanup task completed: {cleaned_count} expired sessions invalidated")

        return {
            'status': 'success',
            'expired_sessions_invalidated': cleaned_count,
            'timestamp': timezone.now().isoformat(),
        }


@shared_task
def generate_session_statistics_task():
    """Log a snapshot of global session statistics."""
    with CorrelationContext():
        stats = SessionService().get_session_statistics()
        logger.info(
            "Session statistics generated",
            extra={
                'active_sessions': stats['active_sessions'],
                'suspicious_sessions': stats['suspicious_sessions'],
                'sessions_last_24h': stats['sessions_last_24h'],
            }
        )
        return stats
