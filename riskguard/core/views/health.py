"""
Health check view for load balancers and monitoring.
"""

import logging
import time

from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods


logger = logging.getLogger(__name__)


def _check_database():
    start_time = time.time()
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {'status': 'unhealthy', 'error': type(e).__name__}
    return {'status': 'healthy', 'response_time_ms': round((time.time() - start_time) * 1000, 2)}


def _check_cache():
    try:
        cache.set('health_check', 'ok', 10)
        cache.get('health_check')
    except Exception as e:
        logger.error(f"Cache health check failed: {e}")
        return {'status': 'unhealthy', 'error': type(e).__name__}
    return {'status': 'healthy'}


@require_http_methods(["GET"])
@csrf_exempt
def health_check(request):
    """
    Report database and cache health.

    Returns:
        200 when every component is healthy, 503 otherwise
    """
    start_time = time.time()
    components = {
        'database': _check_database(),
        'cache': _check_cache(),
    }
    overall_healthy = all(component['status'] == 'healthy' for component in components.values())

    return JsonResponse({
        'status': 'healthy' if overall_healthy else 'unhealthy',
        'response_time_ms': round((time.time() - start_time) * 1000, 2),
        'components': components,
        'timestamp': time.time(),
    }, status=200 if overall_healthy else 503)
