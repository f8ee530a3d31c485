"""
Alert dispatching with threshold evaluation and cooldown deduplication.

The same dispatcher handles session risk escalation, critical audit
events and the periodic business/health metric checks. Thresholds come
from the AlertThreshold table, cooldowns from the injected
CooldownStore, and critical alerts are delivered through the
NotificationSink.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from django.apps import apps
from django.conf import settings
from django.utils import timezone

from ..cache.cooldown_store import CooldownStore
from ..models import AlertLevel, AlertRecord, AlertThreshold, Metric, ThresholdDirection
from ..models.alerting import SERVICE_STATUS_VALUES
from ..monitoring.alerting import NotificationSink
from ..monitoring.logging_config import security_logger


logger = logging.getLogger(__name__)


class ThresholdProvider:
    """
    Reads alert thresholds from the database.

    Metrics without a row get one seeded from ALERT_DEFAULT_THRESHOLDS
    on first access.
    """

    def get(self, metric: str) -> Optional[AlertThreshold]:
        threshold = AlertThreshold.objects.filter(metric=metric).first()
        if threshold is None:
            AlertThreshold.objects.seed_defaults()
            threshold = AlertThreshold.objects.filter(metric=metric).first()
        return threshold

    def all(self) -> List[AlertThreshold]:
        AlertThreshold.objects.seed_defaults()
        return list(AlertThreshold.objects.all())


class AlertDispatcher:
    """
    Evaluates metric values and fires deduplicated alerts.

    An alert for (metric, level) fires at most once per cooldown window.
    Every fired alert is stored as an AlertRecord; only critical alerts
    are sent to the notification sink.
    """

    def __init__(self, cooldown_store: CooldownStore, notification_sink: NotificationSink,
                 threshold_provider: ThresholdProvider = None,
                 cooldown_window: Optional[timedelta] = None,
                 clock: Callable[[], datetime] = timezone.now):
        self.cooldown_store = cooldown_store
        self.notification_sink = notification_sink
        self.threshold_provider = threshold_provider or ThresholdProvider()
        self.cooldown_window = cooldown_window or timedelta(
            minutes=getattr(settings, 'ALERT_COOLDOWN_MINUTES', 30)
        )
        self.clock = clock

    def evaluate(self, metric: str, value: float) -> Optional[str]:
        """
        Classify a metric value against its thresholds.

        Returns:
            'critical', 'warning' or None
        """
        threshold = self.threshold_provider.get(metric)
        if threshold is None or not threshold.enabled:
            return None
        level, _ = self._classify(threshold, value)
        return level

    def _classify(self, threshold: AlertThreshold, value: float) -> Tuple[Optional[str], Optional[float]]:
        if threshold.breaches(value, threshold.critical):
            return AlertLevel.CRITICAL, threshold.critical
        if threshold.breaches(value, threshold.warning):
            return AlertLevel.WARNING, threshold.warning
        return None, None

    def check(self, metric: str, value: float,
              context: Optional[Dict[str, Any]] = None) -> Optional[AlertRecord]:
        """
        Evaluate a value and fire an alert if it breaches a threshold.

        Returns:
            The fired AlertRecord, or None when nothing breached or the
            alert was suppressed by the cooldown
        """
        threshold = self.threshold_provider.get(metric)
        if threshold is None or not threshold.enabled:
            return None

        level, limit = self._classify(threshold, value)
        if level is None:
            return None

        message = self._format_message(threshold, level, value, limit)
        return self.raise_alert(metric, level, message, value=value, threshold=limit, context=context)

    def check_metrics(self, metrics: Mapping[str, Any]) -> List[AlertRecord]:
        """
        Check every configured metric found in a nested metrics mapping.

        Metric names are dotted paths, e.g. 'analyses.success_rate'.
        Service status strings ('healthy', 'degraded', 'down') are
        compared through SERVICE_STATUS_VALUES.
        """
        fired = []
        for threshold in self.threshold_provider.all():
            value = get_metric_value(metrics, threshold.metric)
            if value is None:
                continue
            record = self.check(threshold.metric, value, context={'source': 'metrics_check'})
            if record is not None:
                fired.append(record)
        return fired

    def raise_alert(self, metric: str, level: str, message: str, value: Optional[float] = None,
                    threshold: Optional[float] = None,
                    context: Optional[Dict[str, Any]] = None) -> Optional[AlertRecord]:
        """
        Fire an alert unless one with the same (metric, level) fired within the cooldown.
        """
        now = self.clock()
        if not self.cooldown_store.try_acquire((str(metric), str(level)), now, self.cooldown_window):
            security_logger.log_alert_suppressed(str(metric), str(level))
            return None

        record = AlertRecord.objects.create(
            metric=metric,
            level=level,
            value=value,
            threshold=threshold,
            message=message,
            context=context or {},
            fired_at=now,
        )

        if level == AlertLevel.CRITICAL:
            record.notified = self.notification_sink.send(
                subject=f"[RiskGuard] Critical alert: {metric}",
                body=message,
                metadata={
                    'metric': str(metric),
                    'level': str(level),
                    'value': value,
                    'threshold': threshold,
                    'fired_at': now.isoformat(),
                    'context': context or {},
                },
            )
            if record.notified:
                AlertRecord.objects.filter(pk=record.pk).update(notified=True)

        security_logger.log_alert_fired(str(metric), str(level), value, threshold, record.notified)
        return record

    def get_status(self) -> Dict[str, Any]:
        cooldowns = []
        for metric in Metric.values:
            for level in AlertLevel.values:
                last_fired = self.cooldown_store.last_fired((metric, level))
                if last_fired is not None:
                    cooldowns.append({'key': f"{metric}:{level}", 'last_alert': last_fired.isoformat()})

        return {
            'thresholds': [
                {
                    'metric': threshold.metric,
                    'critical': threshold.critical,
                    'warning': threshold.warning,
                    'direction': threshold.direction,
                    'enabled': threshold.enabled,
                }
                for threshold in self.threshold_provider.all()
            ],
            'cooldowns': cooldowns,
            'cooldown_minutes': int(self.cooldown_window.total_seconds() // 60),
        }

    def update_threshold(self, metric: str, critical: float, warning: float,
                         direction: Optional[str] = None) -> Optional[AlertThreshold]:
        """
        Persist new threshold values for a metric.

        Returns:
            The updated AlertThreshold, or None for an unknown metric
        """
        if metric not in Metric.values:
            return None

        threshold = self.threshold_provider.get(metric)
        if threshold is None:
            threshold = AlertThreshold(metric=metric)
        threshold.critical = critical
        threshold.warning = warning
        if direction in ThresholdDirection.values:
            threshold.direction = direction
        threshold.save()

        logger.info(
            "Alert threshold updated",
            extra={'metric': metric, 'critical': critical, 'warning': warning}
        )
        return threshold

    def _format_message(self, threshold: AlertThreshold, level: str, value: float, limit: float) -> str:
        if threshold.message_template:
            return threshold.message_template.format(
                metric=threshold.metric, value=value, threshold=limit, level=level
            )
        comparison = 'below' if threshold.direction == ThresholdDirection.LOWER_IS_WORSE else 'above'
        return f"{Metric(threshold.metric).label} is {comparison} the {level} threshold: {value} (threshold: {limit})"


def get_metric_value(metrics: Mapping[str, Any], path: str) -> Optional[float]:
    """
    Resolve a dotted path in a nested mapping to a number.

    Returns:
        The numeric value, or None if the path is missing or not numeric
    """
    value: Any = metrics
    for part in path.split('.'):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]

    if isinstance(value, str):
        return SERVICE_STATUS_VALUES.get(value.lower())
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def get_alert_dispatcher() -> AlertDispatcher:
    """The dispatcher built for this process in CoreConfig.ready()."""
    return apps.get_app_config('core').alert_dispatcher
