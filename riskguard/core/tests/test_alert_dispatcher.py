"""
Tests for threshold evaluation, cooldown deduplication and notification.
"""

import threading
from datetime import timedelta
from unittest.mock import Mock, patch

from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings

from ..cache.cooldown_store import (
    CacheCooldownStore,
    InMemoryCooldownStore,
    build_cooldown_store,
)
from ..exceptions import ConfigurationError
from ..models import AlertLevel, AlertRecord, AlertThreshold, ThresholdDirection
from ..monitoring.alerting import (
    EmailNotificationChannel,
    NotificationChannel,
    NotificationSink,
    build_notification_sink,
)
from ..services.alert_service import AlertDispatcher, get_metric_value
from .helpers import FIXED_NOW, FakeClock


class AlertDispatcherTestCase(TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.cooldown_store = InMemoryCooldownStore()
        self.sink = build_notification_sink()
        self.dispatcher = AlertDispatcher(
            cooldown_store=self.cooldown_store,
            notification_sink=self.sink,
            cooldown_window=timedelta(minutes=30),
            clock=self.clock,
        )


class AlertDispatcherTest(AlertDispatcherTestCase):
    """Test alert evaluation and firing."""

    def test_cooldown_suppresses_repeat_alerts(self):
        """A slow database alerts once per cooldown window."""
        first = self.dispatcher.check('api_health.db_response_time', 6000)
        self.clock.advance(timedelta(minutes=10))
        second = self.dispatcher.check('api_health.db_response_time', 6000)

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(AlertRecord.objects.count(), 1)

        self.clock.advance(timedelta(minutes=21))
        third = self.dispatcher.check('api_health.db_response_time', 6000)

        self.assertIsNotNone(third)
        self.assertEqual(AlertRecord.objects.count(), 2)

    def test_cooldown_is_per_level(self):
        self.dispatcher.check('api_health.db_response_time', 3000)
        self.dispatcher.check('api_health.db_response_time', 6000)

        levels = sorted(AlertRecord.objects.values_list('level', flat=True))
        self.assertEqual(levels, ['critical', 'warning'])

    def test_critical_alert_is_notified(self):
        record = self.dispatcher.check('api_health.db_response_time', 6000, context={'host': 'db-1'})

        self.assertEqual(record.level, AlertLevel.CRITICAL)
        self.assertEqual(record.threshold, 5000)
        self.assertTrue(record.notified)
        self.assertTrue(AlertRecord.objects.get(pk=record.pk).notified)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('api_health.db_response_time', mail.outbox[0].subject)
        self.assertEqual(mail.outbox[0].to, ['security@example.com'])

    def test_warning_alert_is_recorded_but_not_notified(self):
        record = self.dispatcher.check('analyses.success_rate', 0.9)

        self.assertEqual(record.level, AlertLevel.WARNING)
        self.assertFalse(record.notified)
        self.assertEqual(len(mail.outbox), 0)

    def test_lower_is_worse_direction(self):
        self.assertEqual(self.dispatcher.evaluate('analyses.success_rate', 0.8), AlertLevel.CRITICAL)
        self.assertEqual(self.dispatcher.evaluate('analyses.success_rate', 0.9), AlertLevel.WARNING)
        self.assertIsNone(self.dispatcher.evaluate('analyses.success_rate', 0.99))

    def test_threshold_values_themselves_do_not_breach(self):
        self.assertIsNone(self.dispatcher.evaluate('api_health.db_response_time', 2000))
        self.assertEqual(self.dispatcher.evaluate('api_health.db_response_time', 5000), AlertLevel.WARNING)
        self.assertEqual(self.dispatcher.evaluate('analyses.success_rate', 0.85), AlertLevel.WARNING)

    def test_session_risk_thresholds_match_risk_levels(self):
        self.assertEqual(self.dispatcher.evaluate('session_risk', 80), AlertLevel.CRITICAL)
        self.assertEqual(self.dispatcher.evaluate('session_risk', 79), AlertLevel.WARNING)
        self.assertEqual(self.dispatcher.evaluate('session_risk', 50), AlertLevel.WARNING)
        self.assertIsNone(self.dispatcher.evaluate('session_risk', 49))

    def test_disabled_threshold_never_fires(self):
        AlertThreshold.objects.seed_defaults()
        AlertThreshold.objects.filter(metric='api_health.db_response_time').update(enabled=False)

        self.assertIsNone(self.dispatcher.check('api_health.db_response_time', 9000))
        self.assertEqual(AlertRecord.objects.count(), 0)

    def test_message_template(self):
        AlertThreshold.objects.seed_defaults()
        AlertThreshold.objects.filter(metric='analyses.errors_last_hour').update(
            message_template='{metric} hit {value} ({level})'
        )

        record = self.dispatcher.check('analyses.errors_last_hour', 25)

        self.assertEqual(record.message, 'analyses.errors_last_hour hit 25 (critical)')

    def test_check_metrics_walks_nested_values(self):
        metrics = {
            'analyses': {'success_rate': 0.99, 'errors_last_hour': 12, 'avg_processing_time': 1000},
            'api_health': {'db_response_time': 120, 'openai_status': 'down', 'stripe_status': 'healthy'},
        }

        fired = self.dispatcher.check_metrics(metrics)

        self.assertEqual(
            sorted((record.metric, record.level) for record in fired),
            [('analyses.errors_last_hour', 'warning'), ('api_health.openai_status', 'critical')],
        )

    def test_degraded_status_is_a_warning(self):
        fired = self.dispatcher.check_metrics({'api_health': {'stripe_status': 'degraded'}})

        self.assertEqual(len(fired), 1)
        self.assertEqual(fired[0].level, AlertLevel.WARNING)

    def test_sink_failure_is_not_propagated(self):
        channel = EmailNotificationChannel('email', {'recipients': ['security@example.com']})
        channel._send_notification = Mock(side_effect=ConnectionError('smtp down'))
        self.dispatcher.notification_sink = NotificationSink([channel])

        record = self.dispatcher.check('api_health.db_response_time', 6000)

        self.assertIsNotNone(record)
        self.assertFalse(record.notified)
        self.assertFalse(AlertRecord.objects.get(pk=record.pk).notified)

    def test_raise_alert_directly(self):
        record = self.dispatcher.raise_alert(
            'admin_security', AlertLevel.CRITICAL, 'Critical security event', value=1
        )

        self.assertEqual(record.fired_at, FIXED_NOW)
        self.assertEqual(self.cooldown_store.last_fired(('admin_security', 'critical')), FIXED_NOW)
        self.assertIsNone(
            self.dispatcher.raise_alert('admin_security', AlertLevel.CRITICAL, 'again', value=1)
        )

    def test_get_status(self):
        self.dispatcher.check('api_health.db_response_time', 6000)

        status = self.dispatcher.get_status()

        self.assertEqual(status['cooldown_minutes'], 30)
        self.assertEqual(len(status['thresholds']), 8)
        self.assertEqual(status['cooldowns'], [
            {'key': 'api_health.db_response_time:critical', 'last_alert': FIXED_NOW.isoformat()}
        ])

    def test_update_threshold(self):
        threshold = self.dispatcher.update_threshold('session_risk', 90, 60)

        self.assertEqual(threshold.critical, 90)
        self.assertEqual(AlertThreshold.objects.get(metric='session_risk').warning, 60)
        self.assertEqual(self.dispatcher.evaluate('session_risk', 85), AlertLevel.WARNING)

    def test_update_threshold_direction(self):
        threshold = self.dispatcher.update_threshold(
            'analyses.errors_last_hour', 1, 5, direction=ThresholdDirection.LOWER_IS_WORSE
        )

        self.assertEqual(threshold.direction, ThresholdDirection.LOWER_IS_WORSE)
        self.assertEqual(self.dispatcher.evaluate('analyses.errors_last_hour', 0), AlertLevel.CRITICAL)

    def test_update_unknown_threshold(self):
        self.assertIsNone(self.dispatcher.update_threshold('cpu_usage', 90, 60))


class MetricValueTest(SimpleTestCase):

    def test_get_metric_value(self):
        metrics = {'a': {'b': 3, 'flag': True, 'status': 'Degraded', 'text': 'n/a'}}

        self.assertEqual(get_metric_value(metrics, 'a.b'), 3.0)
        self.assertEqual(get_metric_value(metrics, 'a.status'), 0.5)
        self.assertIsNone(get_metric_value(metrics, 'a.flag'))
        self.assertIsNone(get_metric_value(metrics, 'a.text'))
        self.assertIsNone(get_metric_value(metrics, 'a.missing'))
        self.assertIsNone(get_metric_value(metrics, 'a.b.c'))


class InMemoryCooldownStoreTest(SimpleTestCase):

    def setUp(self):
        self.store = InMemoryCooldownStore()
        self.key = ('session_risk', 'critical')
        self.window = timedelta(minutes=30)

    def test_try_acquire(self):
        self.assertTrue(self.store.try_acquire(self.key, FIXED_NOW, self.window))
        self.assertFalse(self.store.try_acquire(self.key, FIXED_NOW + timedelta(minutes=29), self.window))
        self.assertTrue(self.store.try_acquire(self.key, FIXED_NOW + timedelta(minutes=30), self.window))

    def test_keys_are_independent(self):
        self.assertTrue(self.store.try_acquire(self.key, FIXED_NOW, self.window))
        self.assertTrue(self.store.try_acquire(('session_risk', 'warning'), FIXED_NOW, self.window))

    def test_reset(self):
        self.store.try_acquire(self.key, FIXED_NOW, self.window)
        self.store.reset(self.key)

        self.assertIsNone(self.store.last_fired(self.key))
        self.assertTrue(self.store.try_acquire(self.key, FIXED_NOW, self.window))

    def test_racing_checks_acquire_once(self):
        """Of many checks racing on one key, exactly one may fire."""
        workers = 16
        barrier = threading.Barrier(workers)
        results = []
        results_lock = threading.Lock()

        def acquire(offset):
            barrier.wait()
            acquired = self.store.try_acquire(self.key, FIXED_NOW + timedelta(seconds=offset), self.window)
            with results_lock:
                results.append(acquired)

        threads = [threading.Thread(target=acquire, args=(i,)) for i in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        self.assertEqual(len(results), workers)
        self.assertEqual(results.count(True), 1)


@override_settings(CACHES={'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache'}})
class CacheCooldownStoreTest(SimpleTestCase):

    def setUp(self):
        self.store = CacheCooldownStore()
        self.key = ('analyses.success_rate', 'warning')
        self.store.reset(self.key)

    def test_try_acquire_and_last_fired(self):
        window = timedelta(minutes=30)

        self.assertTrue(self.store.try_acquire(self.key, FIXED_NOW, window))
        self.assertFalse(self.store.try_acquire(self.key, FIXED_NOW + timedelta(minutes=5), window))
        self.assertEqual(self.store.last_fired(self.key), FIXED_NOW)

    def test_build_cooldown_store(self):
        self.assertIsInstance(build_cooldown_store('cache'), CacheCooldownStore)
        self.assertIsInstance(build_cooldown_store('memory'), InMemoryCooldownStore)
        with self.assertRaises(ConfigurationError):
            build_cooldown_store('redis-cluster')


class NotificationSinkTest(SimpleTestCase):

    def test_disabled_channel_is_skipped(self):
        channel = NotificationChannel('noop', {'enabled': False})

        self.assertFalse(NotificationSink([channel]).send('subject', 'body'))

    def test_any_successful_channel_counts_as_delivered(self):
        failing = NotificationChannel('failing', {})
        working = NotificationChannel('working', {})
        working._send_notification = Mock(return_value=True)

        self.assertTrue(NotificationSink([failing, working]).send('subject', 'body', {'a': 1}))
        working._send_notification.assert_called_once_with('subject', 'body', {'a': 1})

    @override_settings(
        EMAIL_BACKEND='django.core.mail.backends.smtp.EmailBackend',
        ALERT_EMAIL_RECIPIENTS=['security@example.com'],
        ALERT_NOTIFICATION_TIMEOUT_SECONDS=3,
    )
    def test_email_is_sent_with_connection_timeout(self):
        channel = build_notification_sink().channels[0]
        self.assertIsInstance(channel, EmailNotificationChannel)

        with patch('riskguard.core.monitoring.alerting.send_mail') as send:
            self.assertTrue(channel.send_notification('subject', 'body', {}))

        self.assertEqual(send.call_args.kwargs['connection'].timeout, 3)

    @override_settings(EMAIL_BACKEND='django.core.mail.backends.smtp.EmailBackend')
    def test_unreachable_mail_server_is_not_delivered(self):
        channel = EmailNotificationChannel('email', {'recipients': ['security@example.com'], 'timeout': 1})

        with patch('riskguard.core.monitoring.alerting.send_mail', side_effect=TimeoutError('timed out')):
            self.assertFalse(NotificationSink([channel]).send('subject', 'body'))
