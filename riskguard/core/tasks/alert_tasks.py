"""
Celery tasks for alert dispatch and periodic risk checks.
"""

import logging

from celery import shared_task
from django.db.models import Max
from django.utils import timezone

from ..models import AlertLevel, Metric, UserSession
from ..services.alert_service import get_alert_dispatcher
from ..utils.correlation import CorrelationContext


logger = logging.getLogger(__name__)


@shared_task
def dispatch_security_alert_task(metric, message, value=None, context=None, level=AlertLevel.CRITICAL):
    """
    Fire a security alert through the process alert dispatcher.

    Enqueued after commit by session validation (session_risk) and by
    the audit service for critical events (admin_security).
    """
    with CorrelationContext():
        record = get_alert_dispatcher().raise_alert(
            metric=Metric(metric),
            level=AlertLevel(level),
            message=message,
            value=value,
            context=context or {},
        )
        if record is None:
            return {'status': 'suppressed', 'metric': metric, 'level': str(level)}

        return {
            'status': 'fired',
            'alert_id': str(record.id),
            'metric': metric,
            'level': str(level),
            'notified': record.notified,
        }


@shared_task
def check_session_risk_metrics_task():
    """
    Check the highest risk score among active sessions against the session_risk thresholds.
    """
    with CorrelationContext():
        highest = UserSession.objects.active().aggregate(highest=Max('risk_score'))['highest'] or 0
        record = get_alert_dispatcher().check(
            Metric.SESSION_RISK,
            highest,
            context={'source': 'periodic_check', 'checked_at': timezone.now().isoformat()},
        )

        logger.info(f"Session risk check completed: highest active risk score {highest}")
        return {
            'status': 'alert_fired' if record is not None else 'ok',
            'highest_risk_score': highest,
            'level': record.level if record is not None else None,
        }


@shared_task
def check_business_metrics_task(metrics):
    """Evaluate a business/health metrics payload against all configured thresholds."""
    with CorrelationContext():
        records = get_alert_dispatcher().check_metrics(metrics)
        return {
            'status': 'success',
            'alerts': [{'metric': record.metric, 'level': record.level} for record in records],
        }
