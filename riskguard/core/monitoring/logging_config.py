"""
Structured logging configuration with JSON output and correlation IDs.

Audit lines and alert lines go through structlog so they can be shipped
as JSON; ordinary service logging uses the stdlib logger with the
CustomJSONFormatter configured in settings.
"""

from datetime import datetime, timezone as dt_timezone
from typing import Any, Dict, List, Optional

import structlog
from pythonjsonlogger import jsonlogger

from ..utils.correlation import get_correlation_id


LEVEL_SEVERITY = {
    'debug': 'low',
    'info': 'low',
    'warning': 'medium',
    'error': 'high',
    'critical': 'critical',
}


class CorrelationIdProcessor:
    """Structlog processor to add correlation ID to log entries."""

    def __call__(self, logger, method_name, event_dict):
        event_dict.setdefault('correlation_id', get_correlation_id())
        return event_dict


class SeverityProcessor:
    """Structlog processor to map log levels to a severity label."""

    def __call__(self, logger, method_name, event_dict):
        event_dict.setdefault('severity', LEVEL_SEVERITY.get(method_name, 'medium'))
        return event_dict


def configure_structured_logging():
    """Configure structlog to render JSON through the stdlib logging tree."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt='iso', utc=True),
            CorrelationIdProcessor(),
            SeverityProcessor(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(default=str),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class CustomJSONFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding correlation ID, ISO timestamp and severity."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record['correlation_id'] = getattr(record, 'correlation_id', None) or get_correlation_id()
        log_record['timestamp'] = datetime.fromtimestamp(record.created, tz=dt_timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['severity'] = LEVEL_SEVERITY.get(record.levelname.lower(), 'medium')


def get_structured_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class SecurityLogger:
    """Structured logger for audit events and alert delivery."""

    def __init__(self):
        self.logger = get_structured_logger('riskguard.security')

    def log_audit_event(self, event_type: str, risk_level: str, description: str,
                        user_id: Optional[str] = None, ip_address: Optional[str] = None,
                        success: bool = True, metadata: Optional[Dict[str, Any]] = None):
        context = {
            'event_type': event_type,
            'risk_level': risk_level,
            'user_id': user_id,
            'ip_address': ip_address,
            'success': success,
            'metadata': metadata or {},
        }
        if risk_level in ('high', 'critical'):
            self.logger.error(f"Audit: {description}", **context)
        else:
            self.logger.info(f"Audit: {description}", **context)

    def log_session_blocked(self, session_id: str, user_id: str, risk_score: int,
                            reasons: List[str]):
        self.logger.warning(
            "Session blocked for suspicious activity",
            event_type='session_blocked',
            session_id=session_id,
            user_id=user_id,
            risk_score=risk_score,
            reasons=reasons,
        )

    def log_alert_fired(self, metric: str, level: str, value: Optional[float],
                        threshold: Optional[float], notified: bool):
        method = self.logger.error if level == 'critical' else self.logger.warning
        method(
            f"Alert fired: {metric}",
            event_type='alert_fired',
            metric=metric,
            level=level,
            value=value,
            threshold=threshold,
            notified=notified,
        )

    def log_alert_suppressed(self, metric: str, level: str):
        self.logger.info(
            f"Alert suppressed by cooldown: {metric}",
            event_type='alert_suppressed',
            metric=metric,
            level=level,
        )


security_logger = SecurityLogger()
