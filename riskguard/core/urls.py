"""
URL patterns for session management, alerting and audit endpoints.
"""

from django.urls import path

from .views import admin_views, session_views


app_name = 'core'

urlpatterns = [
    # Own sessions
    path('sessions/', session_views.list_user_sessions, name='list_sessions'),
    path('sessions/invalidate-others/', session_views.invalidate_other_sessions, name='invalidate_other_sessions'),
    path('sessions/<uuid:session_id>/', session_views.invalidate_session, name='invalidate_session'),

    # Admin: sessions
    path('admin/users/<str:user_id>/sessions/', admin_views.list_user_sessions, name='admin_user_sessions'),
    path(
        'admin/users/<str:user_id>/sessions/invalidate-others/',
        admin_views.invalidate_user_sessions,
        name='admin_invalidate_user_sessions',
    ),
    path('admin/sessions/bulk/', admin_views.bulk_session_action, name='admin_bulk_session_action'),
    path('admin/sessions/statistics/', admin_views.session_statistics, name='admin_session_statistics'),
    path(
        'admin/sessions/<uuid:session_id>/invalidate/',
        admin_views.invalidate_session,
        name='admin_invalidate_session',
    ),

    # Admin: alerts
    path('admin/alerts/', admin_views.alert_overview, name='admin_alerts'),
    path('admin/alerts/check/', admin_views.check_alerts, name='admin_check_alerts'),
    path('admin/alerts/thresholds/', admin_views.list_alert_thresholds, name='admin_alert_thresholds'),
    path(
        'admin/alerts/thresholds/<str:metric>/',
        admin_views.alert_threshold_detail,
        name='admin_alert_threshold_detail',
    ),

    # Admin: audit trail
    path('admin/audit-events/', admin_views.list_audit_events, name='admin_audit_events'),
    path('admin/audit-events/summary/', admin_views.audit_summary, name='admin_audit_summary'),
]
