"""
Administrative API views for sessions, alert thresholds and the audit trail.

All endpoints require a staff user. Every state-changing admin action
is recorded in the audit trail by the services it calls.
"""

import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response

from ..models import AlertRecord, AuditEventType, InvalidationReason, Metric, UserSession
from ..serializers import (
    AlertRecordSerializer,
    AlertThresholdSerializer,
    AuditEventQuerySerializer,
    AuditEventSerializer,
    BulkSessionActionSerializer,
    MetricsCheckSerializer,
    UserSessionSerializer,
)
from ..services.alert_service import get_alert_dispatcher
from ..services.audit_service import AuditService
from ..services.session_service import SessionService


logger = logging.getLogger(__name__)

RECENT_ALERTS_LIMIT = 50


def _get_user_or_404(user_id):
    try:
        return get_user_model().objects.get(pk=user_id)
    except (get_user_model().DoesNotExist, ValueError, DjangoValidationError):
        raise Http404('User not found')


@api_view(['GET'])
@permission_classes([IsAdminUser])
def list_user_sessions(request: Request, user_id) -> Response:
    """
    List a user's active sessions.

    Query Parameters:
    - suspicious: 'true' to only return sessions flagged as suspicious
    """
    user = _get_user_or_404(user_id)
    sessions = SessionService().get_active_sessions(user)
    if request.query_params.get('suspicious', '').lower() == 'true':
        sessions = [session for session in sessions if session.is_suspicious]

    AuditService().admin_action(
        request.user,
        f"viewed sessions of user {user.pk}",
        target_user_id=str(user.pk),
        event_type=AuditEventType.ADMIN_SESSIONS_VIEWED,
        request=request,
    )

    return Response({
        'success': True,
        'user_id': str(user.pk),
        'sessions': UserSessionSerializer(sessions, many=True).data,
        'count': len(sessions),
    })


@api_view(['POST'])
@permission_classes([IsAdminUser])
def invalidate_session(request: Request, session_id) -> Response:
    if not UserSession.objects.filter(pk=session_id).exists():
        return Response(
            {'success': False, 'message': 'Session not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    changed = SessionService().invalidate_session(
        session_id, InvalidationReason.ADMIN_ACTION, actor=request.user
    )
    return Response({
        'success': True,
        'message': 'Session invalidated' if changed else 'Session was already inactive',
        'session_id': str(session_id),
        'invalidated': changed,
    })


@api_view(['POST'])
@permission_classes([IsAdminUser])
def invalidate_user_sessions(request: Request, user_id) -> Response:
    """
    Invalidate all active sessions of a user, optionally keeping one.

    Request Body:
    - keep_session_id: optional session to leave active
    """
    user = _get_user_or_404(user_id)
    count = SessionService().invalidate_other_sessions(
        user,
        keep_session_id=request.data.get('keep_session_id'),
        reason=InvalidationReason.ADMIN_ACTION,
        actor=request.user,
    )
    return Response({
        'success': True,
        'message': f'Invalidated {count} sessions',
        'invalidated_count': count,
    })


@api_view(['POST'])
@permission_classes([IsAdminUser])
def bulk_session_action(request: Request) -> Response:
    """
    Apply an action to up to 100 sessions.

    Request Body:
    - action: invalidate | mark_suspicious | clear_suspicious
    - session_ids: list of session ids
    """
    serializer = BulkSessionActionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {'success': False, 'message': 'Invalid bulk action', 'errors': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    action = serializer.validated_data['action']
    session_ids = serializer.validated_data['session_ids']
    service = SessionService()

    if action == 'invalidate':
        affected = service.invalidate_sessions(session_ids, actor=request.user)
    elif action == 'mark_suspicious':
        affected = service.mark_sessions_suspicious(session_ids, actor=request.user)
    else:
        affected = service.clear_suspicious_flag(session_ids, actor=request.user)

    return Response({
        'success': True,
        'message': f'{action} applied to {affected} sessions',
        'action': action,
        'requested': len(session_ids),
        'affected': affected,
    })


@api_view(['GET'])
@permission_classes([IsAdminUser])
def session_statistics(request: Request) -> Response:
    return Response({
        'success': True,
        'statistics': SessionService().get_session_statistics(),
    })


@api_view(['GET'])
@permission_classes([IsAdminUser])
def list_alert_thresholds(request: Request) -> Response:
    thresholds = get_alert_dispatcher().threshold_provider.all()
    return Response({
        'success': True,
        'thresholds': AlertThresholdSerializer(thresholds, many=True).data,
    })


@api_view(['GET', 'PUT'])
@permission_classes([IsAdminUser])
def alert_threshold_detail(request: Request, metric: str) -> Response:
    if metric not in Metric.values:
        return Response(
            {'success': False, 'message': 'Unknown metric'},
            status=status.HTTP_404_NOT_FOUND
        )

    dispatcher = get_alert_dispatcher()
    threshold = dispatcher.threshold_provider.get(metric)

    if request.method == 'GET':
        return Response({'success': True, 'threshold': AlertThresholdSerializer(threshold).data})

    serializer = AlertThresholdSerializer(threshold, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(
            {'success': False, 'message': 'Invalid threshold', 'errors': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    data = serializer.validated_data
    threshold = dispatcher.update_threshold(
        metric,
        critical=data.get('critical', threshold.critical),
        warning=data.get('warning', threshold.warning),
        direction=data.get('direction'),
    )
    extra_fields = [name for name in ('enabled', 'message_template') if name in data]
    if extra_fields:
        for name in extra_fields:
            setattr(threshold, name, data[name])
        threshold.save(update_fields=extra_fields + ['updated_at'])

    AuditService().admin_action(
        request.user,
        f"updated alert threshold {metric}",
        event_type=AuditEventType.ADMIN_ALERT_THRESHOLD_UPDATED,
        request=request,
        metadata={'metric': metric, 'critical': threshold.critical, 'warning': threshold.warning},
    )

    return Response({'success': True, 'threshold': AlertThresholdSerializer(threshold).data})


@api_view(['GET'])
@permission_classes([IsAdminUser])
def alert_overview(request: Request) -> Response:
    """Recent fired alerts plus thresholds and active cooldowns."""
    records = AlertRecord.objects.all()[:RECENT_ALERTS_LIMIT]
    return Response({
        'success': True,
        'alerts': AlertRecordSerializer(records, many=True).data,
        'status': get_alert_dispatcher().get_status(),
    })


@api_view(['POST'])
@permission_classes([IsAdminUser])
def check_alerts(request: Request) -> Response:
    """
    Evaluate a business/health metrics payload and fire any alerts.

    Request Body:
    - metrics: nested mapping, e.g. {"api_health": {"db_response_time": 6000}}
    """
    serializer = MetricsCheckSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {'success': False, 'message': 'Invalid metrics payload', 'errors': serializer.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    records = get_alert_dispatcher().check_metrics(serializer.validated_data['metrics'])
    return Response({
        'success': True,
        'alerts': AlertRecordSerializer(records, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAdminUser])
def list_audit_events(request: Request) -> Response:
    """
    Query the audit trail.

    Query Parameters:
    - risk_level, event_type: may be repeated
    - since, until: ISO 8601 timestamps
    - user_id: restrict to one user
    - limit: maximum number of events (max 500)
    """
    query = AuditEventQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(
            {'success': False, 'message': 'Invalid query', 'errors': query.errors},
            status=status.HTTP_400_BAD_REQUEST
        )

    params = query.validated_data
    user = _get_user_or_404(params['user_id']) if params.get('user_id') else None
    events = AuditService().query_events(
        user=user,
        event_types=params.get('event_type'),
        risk_levels=params.get('risk_level'),
        since=params.get('since'),
        until=params.get('until'),
        limit=params['limit'],
    )

    return Response({
        'success': True,
        'events': AuditEventSerializer(events, many=True).data,
        'count': len(events),
    })


@api_view(['GET'])
@permission_classes([IsAdminUser])
def audit_summary(request: Request) -> Response:
    try:
        days = max(1, min(int(request.query_params.get('days', 7)), 365))
    except ValueError:
        return Response(
            {'success': False, 'message': 'days must be an integer'},
            status=status.HTTP_400_BAD_REQUEST
        )

    return Response({
        'success': True,
        'summary': AuditService().get_security_summary(days),
    })
