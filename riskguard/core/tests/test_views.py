"""
Tests for the session, alerting and audit API endpoints.
"""

import uuid

from django.apps import apps
from django.core import mail
from django.test import RequestFactory, TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from ..models import (
    AlertRecord,
    AlertThreshold,
    AuditEvent,
    AuditEventType,
    InvalidationReason,
    UserSession,
)
from ..services.audit_service import AuditService
from ..services.device_context import DeviceContextResolver
from ..services.session_service import SessionService
from .helpers import create_user


class APITestCase(TestCase):
    """Sessions are created with the same device context the test client presents."""

    def setUp(self):
        self.client = APIClient()
        self.user = create_user()
        self.other_user = create_user('bob')
        self.service = SessionService()
        self.client_context = DeviceContextResolver().resolve(RequestFactory().get('/'))
        apps.get_app_config('core').alert_dispatcher.cooldown_store.reset()

    def create_session(self, user=None):
        return self.service.create_session(user or self.user, self.client_context)


class UserSessionViewsTest(APITestCase):
    """Test the endpoints for a user's own sessions."""

    def setUp(self):
        super().setUp()
        self.current = self.create_session()
        self.other = self.create_session()
        self.foreign = self.create_session(self.other_user)
        self.client.force_authenticate(user=self.user)

    def test_list_sessions(self):
        response = self.client.get(reverse('core:list_sessions'), HTTP_X_SESSION_ID=str(self.current.id))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        sessions = {item['id']: item for item in response.data['sessions']}
        self.assertEqual(set(sessions), {str(self.current.id), str(self.other.id)})
        self.assertTrue(sessions[str(self.current.id)]['is_current'])
        self.assertFalse(sessions[str(self.other.id)]['is_current'])
        self.assertEqual(sessions[str(self.current.id)]['device_fingerprint'], f"{self.current.device_fingerprint[:8]}...")

    def test_list_sessions_requires_authentication(self):
        self.client.force_authenticate(user=None)

        response = self.client.get(reverse('core:list_sessions'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_invalid_session_header_is_rejected_by_middleware(self):
        response = self.client.get(reverse('core:list_sessions'), HTTP_X_SESSION_ID=str(uuid.uuid4()))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.json()['reasons'], ['session_not_found'])

    def test_invalidate_own_session(self):
        url = reverse('core:invalidate_session', args=[self.other.id])

        response = self.client.delete(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['invalidated'])
        self.other.refresh_from_db()
        self.assertFalse(self.other.is_active)
        self.assertEqual(self.other.invalidation_reason, InvalidationReason.USER_REQUESTED)

        response = self.client.delete(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['invalidated'])

    def test_cannot_invalidate_another_users_session(self):
        response = self.client.delete(reverse('core:invalidate_session', args=[self.foreign.id]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(UserSession.objects.get(pk=self.foreign.pk).is_active)

    def test_invalidate_other_sessions_keeps_current(self):
        response = self.client.post(
            reverse('core:invalidate_other_sessions'),
            HTTP_X_SESSION_ID=str(self.current.id),
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invalidated_count'], 1)
        self.assertTrue(UserSession.objects.get(pk=self.current.pk).is_active)
        self.assertFalse(UserSession.objects.get(pk=self.other.pk).is_active)
        self.assertTrue(UserSession.objects.get(pk=self.foreign.pk).is_active)

    def test_invalidate_other_sessions_requires_session_header(self):
        response = self.client.post(reverse('core:invalidate_other_sessions'))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.json()['reasons'], ['session_required'])

    def test_invalidate_other_sessions_with_foreign_session(self):
        response = self.client.post(
            reverse('core:invalidate_other_sessions'),
            HTTP_X_SESSION_ID=str(self.foreign.id),
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.json()['reasons'], ['session_user_mismatch'])
        self.assertTrue(UserSession.objects.get(pk=self.other.pk).is_active)
        self.assertTrue(UserSession.objects.get(pk=self.foreign.pk).is_active)


class AdminSessionViewsTest(APITestCase):
    """Test the administrative session endpoints."""

    def setUp(self):
        super().setUp()
        self.admin = create_user('root', is_staff=True)
        self.first = self.create_session()
        self.second = self.create_session()
        self.client.force_authenticate(user=self.admin)

    def test_non_staff_is_forbidden(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get(reverse('core:admin_user_sessions', args=[self.user.pk]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_user_sessions_is_audited(self):
        response = self.client.get(reverse('core:admin_user_sessions', args=[self.user.pk]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 2)
        event = AuditEvent.objects.get(event_type=AuditEventType.ADMIN_SESSIONS_VIEWED)
        self.assertEqual(event.user, self.admin)
        self.assertEqual(event.metadata['target_user_id'], str(self.user.pk))

    def test_list_suspicious_sessions(self):
        UserSession.objects.filter(pk=self.second.pk).update(is_suspicious=True)

        response = self.client.get(
            reverse('core:admin_user_sessions', args=[self.user.pk]), {'suspicious': 'true'}
        )

        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['sessions'][0]['id'], str(self.second.id))

    def test_unknown_user(self):
        response = self.client.get(reverse('core:admin_user_sessions', args=[999999]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalidate_session(self):
        response = self.client.post(reverse('core:admin_invalidate_session', args=[self.first.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.first.refresh_from_db()
        self.assertEqual(self.first.invalidation_reason, InvalidationReason.ADMIN_ACTION)
        self.assertTrue(
            AuditEvent.objects.filter(event_type=AuditEventType.ADMIN_SESSION_INVALIDATED, user=self.admin).exists()
        )

    def test_invalidate_missing_session(self):
        response = self.client.post(reverse('core:admin_invalidate_session', args=[uuid.uuid4()]))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_invalidate_user_sessions_keeping_one(self):
        response = self.client.post(
            reverse('core:admin_invalidate_user_sessions', args=[self.user.pk]),
            {'keep_session_id': str(self.second.id)},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['invalidated_count'], 1)
        self.assertTrue(UserSession.objects.get(pk=self.second.pk).is_active)

    def test_bulk_mark_suspicious(self):
        response = self.client.post(
            reverse('core:admin_bulk_session_action'),
            {'action': 'mark_suspicious', 'session_ids': [str(self.first.id), str(uuid.uuid4())]},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['requested'], 2)
        self.assertEqual(response.data['affected'], 1)
        self.first.refresh_from_db()
        self.assertTrue(self.first.is_suspicious)
        self.assertEqual(self.first.risk_score, 25)

    def test_bulk_invalidate(self):
        response = self.client.post(
            reverse('core:admin_bulk_session_action'),
            {'action': 'invalidate', 'session_ids': [str(self.first.id), str(self.second.id)]},
            format='json',
        )

        self.assertEqual(response.data['affected'], 2)
        self.assertEqual(UserSession.objects.active().count(), 0)

    def test_bulk_action_validation(self):
        url = reverse('core:admin_bulk_session_action')

        unknown_action = self.client.post(
            url, {'action': 'delete', 'session_ids': [str(self.first.id)]}, format='json'
        )
        too_many = self.client.post(
            url, {'action': 'invalidate', 'session_ids': [str(uuid.uuid4()) for _ in range(101)]}, format='json'
        )
        empty = self.client.post(url, {'action': 'invalidate', 'session_ids': []}, format='json')

        self.assertEqual(unknown_action.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(too_many.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(empty.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(UserSession.objects.active().count(), 2)

    def test_session_statistics(self):
        response = self.client.get(reverse('core:admin_session_statistics'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['statistics']['active_sessions'], 2)


class AdminAlertViewsTest(APITestCase):
    """Test the alert threshold and alert history endpoints."""

    def setUp(self):
        super().setUp()
        self.admin = create_user('root', is_staff=True)
        self.client.force_authenticate(user=self.admin)

    def test_list_thresholds(self):
        response = self.client.get(reverse('core:admin_alert_thresholds'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        metrics = [threshold['metric'] for threshold in response.data['thresholds']]
        self.assertIn('session_risk', metrics)
        self.assertIn('api_health.db_response_time', metrics)

    def test_get_threshold(self):
        response = self.client.get(reverse('core:admin_alert_threshold_detail', args=['session_risk']))

        self.assertEqual(response.data['threshold']['critical'], 79)
        self.assertEqual(response.data['threshold']['warning'], 49)

    def test_update_threshold(self):
        response = self.client.put(
            reverse('core:admin_alert_threshold_detail', args=['api_health.db_response_time']),
            {'critical': 8000, 'warning': 4000, 'enabled': False},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        threshold = AlertThreshold.objects.get(metric='api_health.db_response_time')
        self.assertEqual(threshold.critical, 8000)
        self.assertEqual(threshold.warning, 4000)
        self.assertFalse(threshold.enabled)
        self.assertTrue(
            AuditEvent.objects.filter(event_type=AuditEventType.ADMIN_ALERT_THRESHOLD_UPDATED).exists()
        )

    def test_update_threshold_rejects_inverted_values(self):
        response = self.client.put(
            reverse('core:admin_alert_threshold_detail', args=['api_health.db_response_time']),
            {'critical': 1000, 'warning': 4000},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_metric(self):
        response = self.client.get(reverse('core:admin_alert_threshold_detail', args=['cpu_usage']))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_check_alerts(self):
        response = self.client.post(
            reverse('core:admin_check_alerts'),
            {'metrics': {'api_health': {'db_response_time': 6000, 'stripe_status': 'healthy'}}},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['alerts']), 1)
        self.assertEqual(response.data['alerts'][0]['level'], 'critical')
        self.assertEqual(len(mail.outbox), 1)

        # Repeated check inside the cooldown window
        response = self.client.post(
            reverse('core:admin_check_alerts'),
            {'metrics': {'api_health': {'db_response_time': 6000}}},
            format='json',
        )
        self.assertEqual(len(response.data['alerts']), 0)
        self.assertEqual(AlertRecord.objects.count(), 1)

    def test_alert_overview(self):
        self.client.post(
            reverse('core:admin_check_alerts'),
            {'metrics': {'analyses': {'success_rate': 0.9}}},
            format='json',
        )

        response = self.client.get(reverse('core:admin_alerts'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['alerts']), 1)
        self.assertEqual(response.data['status']['cooldown_minutes'], 30)
        self.assertEqual(
            response.data['status']['cooldowns'][0]['key'], 'analyses.success_rate:warning'
        )


class AdminAuditViewsTest(APITestCase):
    """Test the audit trail endpoints."""

    def setUp(self):
        super().setUp()
        self.admin = create_user('root', is_staff=True)
        audit_service = AuditService()
        audit_service.login_failed('alice@example.com', 'invalid_password', attempt_count=1)
        audit_service.login_failed('alice@example.com', 'invalid_password', attempt_count=5)
        audit_service.login_success('alice@example.com', user=self.user)
        self.client.force_authenticate(user=self.admin)

    def test_list_events(self):
        response = self.client.get(reverse('core:admin_audit_events'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 3)

    def test_filter_events(self):
        response = self.client.get(
            reverse('core:admin_audit_events') + '?risk_level=high&risk_level=critical&event_type=login_failed'
        )

        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['events'][0]['metadata']['attempt_count'], 5)

    def test_filter_by_user(self):
        response = self.client.get(reverse('core:admin_audit_events'), {'user_id': self.user.pk})

        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['events'][0]['user_id'], str(self.user.pk))

    def test_invalid_query(self):
        url = reverse('core:admin_audit_events')

        self.assertEqual(self.client.get(url, {'limit': 1000}).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.get(url, {'risk_level': 'severe'}).status_code, status.HTTP_400_BAD_REQUEST)

    def test_summary(self):
        response = self.client.get(reverse('core:admin_audit_summary'), {'days': 30})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['failed_logins'], 2)
        self.assertEqual(response.data['summary']['period'], '30 days')

    def test_summary_rejects_non_integer_days(self):
        response = self.client.get(reverse('core:admin_audit_summary'), {'days': 'week'})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_audit_endpoints_require_staff(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get(reverse('core:admin_audit_events'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class HealthCheckViewTest(TestCase):

    def test_health_check(self):
        response = self.client.get('/health/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['components']['database']['status'], 'healthy')
