# Core tasks package

from .session_tasks import (
    cleanup_expired_sessions_task,
    generate_session_statistics_task,
)

from .alert_tasks import (
    dispatch_security_alert_task,
    check_session_risk_metrics_task,
    check_business_metrics_task,
)
