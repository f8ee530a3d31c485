"""
Django app configuration for riskguard.core.
"""

import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    """Configuration for the session security core app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'riskguard.core'
    label = 'core'
    verbose_name = 'RiskGuard Session Security'

    alert_dispatcher = None

    def ready(self):
        """
        Validate required settings and build the per-process alerting objects.

        Raises:
            ConfigurationError: if SECRET_KEY or the default database is missing,
                or ALERT_COOLDOWN_BACKEND names an unknown backend
        """
        from .exceptions import ConfigurationError
        from .cache.cooldown_store import build_cooldown_store
        from .monitoring.alerting import build_notification_sink
        from .monitoring.logging_config import configure_structured_logging
        from .services.alert_service import AlertDispatcher

        if not getattr(settings, 'SECRET_KEY', None):
            raise ConfigurationError('SECRET_KEY')
        if 'default' not in getattr(settings, 'DATABASES', {}):
            raise ConfigurationError('DATABASES', "no 'default' database configured")

        configure_structured_logging()

        backend = getattr(settings, 'ALERT_COOLDOWN_BACKEND', 'memory')
        self.alert_dispatcher = AlertDispatcher(
            cooldown_store=build_cooldown_store(backend),
            notification_sink=build_notification_sink(),
        )

        logger.info(f"RiskGuard core app initialized (cooldown backend: {backend})")
