"""
Session management API views for the authenticated user.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from ..middleware.session_security_middleware import get_session_id_header, require_secure_session
from ..models import InvalidationReason, UserSession
from ..serializers import UserSessionSerializer
from ..services.session_service import SessionService, parse_session_id


logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_user_sessions(request: Request) -> Response:
    """
    List the active sessions of the authenticated user, most recent first.
    """
    sessions = SessionService().get_active_sessions(request.user)
    serializer = UserSessionSerializer(
        sessions,
        many=True,
        context={'current_session_id': get_session_id_header(request)},
    )
    return Response({
        'success': True,
        'sessions': serializer.data,
        'count': len(sessions),
    })


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def invalidate_session(request: Request, session_id) -> Response:
    """
    Log out one of the user's own sessions.

    Invalidating an already invalidated session succeeds without changes.
    """
    session_uuid = parse_session_id(session_id)
    if not UserSession.objects.filter(pk=session_uuid, user=request.user).exists():
        return Response(
            {'success': False, 'message': 'Session not found'},
            status=status.HTTP_404_NOT_FOUND
        )

    changed = SessionService().invalidate_session(session_uuid, InvalidationReason.USER_REQUESTED)
    logger.info(f"User {request.user.pk} invalidated session {session_uuid}")

    return Response({
        'success': True,
        'message': 'Session invalidated' if changed else 'Session was already inactive',
        'session_id': str(session_uuid),
        'invalidated': changed,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
@require_secure_session
def invalidate_other_sessions(request: Request) -> Response:
    """
    Log out every other session of the user, keeping the one making the request.
    """
    current_session_id = get_session_id_header(request)
    session = UserSession.objects.filter(pk=parse_session_id(current_session_id)).first()
    if session is None or session.user_id != request.user.pk:
        return Response(
            {'success': False, 'message': 'Current session does not belong to this user'},
            status=status.HTTP_403_FORBIDDEN
        )

    count = SessionService().invalidate_other_sessions(
        request.user,
        keep_session_id=current_session_id,
        reason=InvalidationReason.USER_REQUESTED_ALL,
    )
    logger.info(f"User {request.user.pk} invalidated {count} other sessions")

    return Response({
        'success': True,
        'message': f'Invalidated {count} sessions',
        'invalidated_count': count,
    })
