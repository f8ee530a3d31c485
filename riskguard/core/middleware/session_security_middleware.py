"""
Session security middleware.

Validates the security session named by the X-Session-ID header on
every request and blocks the request when the session is invalid or
looks compromised. Responses carry only a risk level and
machine-readable reasons.
"""

import functools
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.conf import settings
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework import status

from ..exceptions import InvalidSessionIdError, StoreUnavailableError
from ..models import AuditEventType, RiskLevel
from ..services.audit_service import AuditService
from ..services.device_context import DeviceContextResolver
from ..services.session_service import SessionService


logger = logging.getLogger(__name__)

BLOCKED_RISK_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


@dataclass
class AccessDecision:
    """Outcome of validating the session attached to a request."""
    allowed: bool
    risk: str
    reasons: List[str] = field(default_factory=list)
    status_code: int = status.HTTP_200_OK
    session_id: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def message(self) -> str:
        if self.status_code == status.HTTP_401_UNAUTHORIZED:
            return 'Invalid or expired session'
        if self.status_code == status.HTTP_403_FORBIDDEN:
            return 'Session at risk - access denied'
        return 'Session valid'

    def to_response(self) -> JsonResponse:
        return JsonResponse({
            'success': self.allowed,
            'message': self.message,
            'risk': str(self.risk),
            'reasons': list(self.reasons),
        }, status=self.status_code)


def get_session_id_header(request) -> Optional[str]:
    header = getattr(settings, 'SESSION_ID_HEADER', 'X-Session-ID')
    return request.headers.get(header) or None


def get_authenticated_user(request):
    """The authenticated principal of the request, or None."""
    user = getattr(request, 'user', None)
    if user is not None and user.is_authenticated:
        return user
    return None


def evaluate_request(request, session_service: SessionService = None,
                     resolver: DeviceContextResolver = None, user=None) -> AccessDecision:
    """
    Validate the session named in the request headers.

    The session must belong to the authenticated user when there is one.
    Store failures fail closed with a 401. A valid session scoring high
    is refused with a 403 and recorded in the audit trail; a critical
    session has already been invalidated by the session service.

    Args:
        request: HttpRequest, or a DRF Request wrapping one
        user: Principal the session must belong to; defaults to request.user

    Returns:
        AccessDecision
    """
    if user is None:
        # On a DRF Request this runs the view's authenticators
        user = get_authenticated_user(request)
    request = getattr(request, '_request', request)
    session_id = get_session_id_header(request)
    if not session_id:
        return AccessDecision(False, RiskLevel.HIGH, ['session_required'], status.HTTP_401_UNAUTHORIZED)

    session_service = session_service or SessionService()
    resolver = resolver or DeviceContextResolver()

    try:
        device_context = resolver.resolve(request)
        result = session_service.validate_session(session_id, device_context, user=user)
    except InvalidSessionIdError:
        return AccessDecision(False, RiskLevel.HIGH, ['invalid_session_id'], status.HTTP_401_UNAUTHORIZED)
    except StoreUnavailableError as e:
        logger.error(f"Session validation unavailable, denying request: {e.message}")
        return AccessDecision(False, RiskLevel.HIGH, ['validation_unavailable'], status.HTTP_401_UNAUTHORIZED)

    if not result.valid:
        status_code = (
            status.HTTP_403_FORBIDDEN if result.risk == RiskLevel.CRITICAL
            else status.HTTP_401_UNAUTHORIZED
        )
        return AccessDecision(False, result.risk, result.reasons, status_code, result.session_id)

    if result.risk in BLOCKED_RISK_LEVELS:
        session_service.audit_service.log_security(
            AuditEventType.SUSPICIOUS_SESSION_BLOCKED,
            request=request,
            description='High-risk session blocked from accessing API',
            metadata={'session_id': result.session_id, 'risk': str(result.risk), 'reasons': result.reasons},
            risk_level=result.risk,
            success=False,
        )
        return AccessDecision(False, result.risk, result.reasons, status.HTTP_403_FORBIDDEN, result.session_id)

    return AccessDecision(
        True, result.risk, result.reasons, status.HTTP_200_OK, result.session_id, result.user_id
    )


class SessionSecurityMiddleware(MiddlewareMixin):
    """
    Validates the security session on requests that carry one.

    Requests without the session header pass through; views that need
    a session enforce it with require_secure_session.
    """

    def __init__(self, get_response=None):
        super().__init__(get_response)
        self.exempt_paths = getattr(settings, 'SESSION_SECURITY_EXEMPT_PATHS', ['/health/', '/admin/'])

    def process_request(self, request: HttpRequest) -> Optional[HttpResponse]:
        if any(request.path.startswith(path) for path in self.exempt_paths):
            return None
        if not get_session_id_header(request):
            return None

        decision = evaluate_request(request)
        request.session_security = decision
        if not decision.allowed:
            logger.warning(
                f"Blocked request to {request.path}",
                extra={'status_code': decision.status_code, 'risk': str(decision.risk), 'reasons': decision.reasons}
            )
            return decision.to_response()
        return None


def require_secure_session(view_func):
    """
    View decorator refusing requests without a valid, non-risky session.

    Reuses the decision made by SessionSecurityMiddleware when it ran,
    so a request is only scored once. The middleware may run before the
    view's authentication, so the session owner is checked again here
    against the authenticated user. For class based views wrap it with
    django.utils.decorators.method_decorator.
    """
    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        decision = getattr(request, 'session_security', None)
        if decision is None:
            decision = evaluate_request(request)
            request.session_security = decision
        elif decision.allowed:
            user = get_authenticated_user(request)
            if user is not None and decision.user_id != str(user.pk):
                logger.warning(f"User {user.pk} presented session {decision.session_id} owned by another user")
                decision = AccessDecision(
                    False, RiskLevel.HIGH, ['session_user_mismatch'],
                    status.HTTP_401_UNAUTHORIZED, decision.session_id
                )
                request.session_security = decision
        if not decision.allowed:
            return decision.to_response()
        return view_func(request, *args, **kwargs)
    return wrapper
