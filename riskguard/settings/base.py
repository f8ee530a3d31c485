"""
Base settings for riskguard project.
This file contains settings common to all environments.
"""

from pathlib import Path
from decouple import config

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='django-insecure-change-me-in-production')

DEBUG = config('DEBUG', default=False, cast=bool)

ALLOWED_HOSTS = config(
    'ALLOWED_HOSTS',
    default='localhost,127.0.0.1',
    cast=lambda v: [s.strip() for s in v.split(',') if s.strip()]
)

# Application definition
DJANGO_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

THIRD_PARTY_APPS = [
    'rest_framework',
]

LOCAL_APPS = [
    'riskguard.core.apps.CoreConfig',
]

INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'riskguard.core.utils.correlation.CorrelationIDMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'riskguard.core.middleware.session_security_middleware.SessionSecurityMiddleware',
    'riskguard.core.utils.error_handling.ErrorHandlingMiddleware',
]

ROOT_URLCONF = 'riskguard.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# Database
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': config('DB_NAME', default='riskguard'),
        'USER': config('DB_USER', default='postgres'),
        'PASSWORD': config('DB_PASSWORD', default='postgres'),
        'HOST': config('DB_HOST', default='localhost'),
        'PORT': config('DB_PORT', default='5432'),
        'OPTIONS': {
            'connect_timeout': 10,
            'options': '-c default_transaction_isolation=read_committed',
            'sslmode': config('DB_SSL_MODE', default='prefer'),
            'application_name': 'riskguard',
        },
        'CONN_MAX_AGE': config('DB_CONN_MAX_AGE', default=300, cast=int),  # 5 minutes
        'CONN_HEALTH_CHECKS': True,
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
USE_TZ = True
TIME_ZONE = 'UTC'
LANGUAGE_CODE = 'en-us'
USE_I18N = True

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Redis cache (cooldown store and geolocation lookups)
CACHES = {
    'default': {
        'BACKEND': 'django_redis.cache.RedisCache',
        'LOCATION': config('REDIS_URL', default='redis://localhost:6379/1'),
        'OPTIONS': {
            'CLIENT_CLASS': 'django_redis.client.DefaultClient',
            'SERIALIZER': 'django_redis.serializers.json.JSONSerializer',
            'CONNECTION_POOL_KWARGS': {
                'max_connections': 50,
                'retry_on_timeout': True,
                'health_check_interval': 30,
                'socket_timeout': 5,
                'socket_connect_timeout': 5,
            },
        },
        'KEY_PREFIX': 'riskguard',
        'TIMEOUT': 300,
    },
}

# Django REST Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
}

# Celery configuration
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://localhost:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ROUTES = {
    'riskguard.core.tasks.session_tasks.*': {'queue': 'maintenance'},
    'riskguard.core.tasks.alert_tasks.*': {'queue': 'notifications'},
}
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
CELERY_TASK_ACKS_LATE = True

# Periodic tasks
CELERY_BEAT_SCHEDULE = {
    'cleanup-expired-sessions': {
        'task': 'riskguard.core.tasks.session_tasks.cleanup_expired_sessions_task',
        'schedule': float(config('SESSION_CLEANUP_INTERVAL', default=3600, cast=int)),
        'options': {'queue': 'maintenance'},
    },
    'check-session-risk-metrics': {
        'task': 'riskguard.core.tasks.alert_tasks.check_session_risk_metrics_task',
        'schedule': 300.0,  # Every 5 minutes
        'options': {'queue': 'notifications'},
    },
}

# Email configuration
EMAIL_BACKEND = config('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = config('EMAIL_HOST', default='localhost')
EMAIL_PORT = config('EMAIL_PORT', default=587, cast=int)
EMAIL_USE_TLS = config('EMAIL_USE_TLS', default=True, cast=bool)
EMAIL_HOST_USER = config('EMAIL_HOST_USER', default='')
EMAIL_HOST_PASSWORD = config('EMAIL_HOST_PASSWORD', default='')
DEFAULT_FROM_EMAIL = config('DEFAULT_FROM_EMAIL', default='security@riskguard.local')
EMAIL_TIMEOUT = config('EMAIL_TIMEOUT', default=5, cast=int)  # seconds

# Session security
MAX_CONCURRENT_SESSIONS = config('MAX_CONCURRENT_SESSIONS', default=5, cast=int)
SESSION_BASE_TTL_HOURS = config('SESSION_BASE_TTL_HOURS', default=24, cast=int)
SESSION_MIN_TTL_MINUTES = config('SESSION_MIN_TTL_MINUTES', default=30, cast=int)
SESSION_CLEANUP_INTERVAL = config('SESSION_CLEANUP_INTERVAL', default=3600, cast=int)  # seconds
SESSION_ACTIVITY_WINDOW_HOURS = config('SESSION_ACTIVITY_WINDOW_HOURS', default=24, cast=int)
SESSION_ID_HEADER = 'X-Session-ID'
SESSION_SECURITY_EXEMPT_PATHS = ['/health/', '/admin/', '/static/']

# Risk scoring policy (points and level boundaries)
RISK_POLICY = {
    'fingerprint_mismatch_points': 50,
    'far_distance_km': 1000,
    'far_distance_points': 30,
    'moderate_distance_km': 100,
    'moderate_distance_points': 10,
    'inactivity_minutes': 120,
    'inactivity_points': 10,
    'session_activity_threshold': 10,
    'session_activity_points': 20,
    'medium_threshold': 25,
    'high_threshold': 50,
    'critical_threshold': 80,
}

# Geolocation
GEOLOCATION_TIMEOUT_SECONDS = config('GEOLOCATION_TIMEOUT_SECONDS', default=5, cast=int)
GEOLOCATION_CACHE_TIMEOUT = config('GEOLOCATION_CACHE_TIMEOUT', default=86400, cast=int)  # 24 hours
GEOLOCATION_PROVIDER_URL = config('GEOLOCATION_PROVIDER_URL', default='http://ip-api.com/json/{ip}')

# Alerting
ALERT_COOLDOWN_MINUTES = config('ALERT_COOLDOWN_MINUTES', default=30, cast=int)
ALERT_COOLDOWN_BACKEND = config('ALERT_COOLDOWN_BACKEND', default='memory')  # memory | cache
ALERT_NOTIFICATION_TIMEOUT_SECONDS = config('ALERT_NOTIFICATION_TIMEOUT_SECONDS', default=5, cast=int)
ALERT_EMAIL_RECIPIENTS = config(
    'ALERT_EMAIL_RECIPIENTS',
    default='',
    cast=lambda v: [email.strip() for email in v.split(',') if email.strip()]
)
ALERT_WEBHOOK_URL = config('ALERT_WEBHOOK_URL', default='')
ALERT_DEFAULT_THRESHOLDS = {
    'session_risk': {'critical': 79, 'warning': 49, 'direction': 'higher_is_worse'},
    'admin_security': {'critical': 0, 'warning': 0, 'direction': 'higher_is_worse'},
    'analyses.success_rate': {'critical': 0.85, 'warning': 0.95, 'direction': 'lower_is_worse'},
    'analyses.errors_last_hour': {'critical': 20, 'warning': 10, 'direction': 'higher_is_worse'},
    'analyses.avg_processing_time': {'critical': 30000, 'warning': 20000, 'direction': 'higher_is_worse'},
    'api_health.db_response_time': {'critical': 5000, 'warning': 2000, 'direction': 'higher_is_worse'},
    'api_health.openai_status': {'critical': 0.25, 'warning': 0.75, 'direction': 'lower_is_worse'},
    'api_health.stripe_status': {'critical': 0.25, 'warning': 0.75, 'direction': 'lower_is_worse'},
}

# Audit trail
AUDIT_QUERY_MAX_LIMIT = 500
FAILED_LOGIN_HIGH_RISK_ATTEMPTS = 3

# Logging configuration with correlation ID support
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} [{correlation_id}] {message}',
            'style': '{',
        },
        'json': {
            '()': 'riskguard.core.monitoring.logging_config.CustomJSONFormatter',
        },
    },
    'filters': {
        'correlation_id': {
            '()': 'riskguard.core.utils.correlation.CorrelationIDFilter',
        },
    },
    'handlers': {
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
            'filters': ['correlation_id'],
        },
        'security': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'json',
            'filters': ['correlation_id'],
        },
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'riskguard': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'riskguard.security': {
            'handlers': ['security'],
            'level': 'INFO',
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
}
