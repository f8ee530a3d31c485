"""
Risk-adaptive session lifetime.
"""

from datetime import datetime, timedelta

from django.conf import settings

from ..models import DeviceTrust


TRUST_MULTIPLIERS = {
    DeviceTrust.TRUSTED.value: 2.0,
    DeviceTrust.SUSPICIOUS.value: 0.1,
    DeviceTrust.NEW.value: 1.0,
}


class TimeoutPolicy:
    """
    Computes session expiry from risk score and device trust.

    Riskier sessions and less trusted devices get shorter lifetimes, but
    no session ever expires sooner than the minimum TTL.
    """

    def __init__(self, base_ttl: timedelta = None, min_ttl: timedelta = None):
        self.base_ttl = base_ttl or timedelta(hours=getattr(settings, 'SESSION_BASE_TTL_HOURS', 24))
        self.min_ttl = min_ttl or timedelta(minutes=getattr(settings, 'SESSION_MIN_TTL_MINUTES', 30))

    def risk_multiplier(self, risk_score: int) -> float:
        if risk_score > 50:
            return 0.25
        if risk_score > 25:
            return 0.5
        if risk_score < 10:
            return 1.5
        return 1.0

    def trust_multiplier(self, device_trust: str) -> float:
        return TRUST_MULTIPLIERS.get(device_trust, 1.0)

    def compute_ttl(self, risk_score: int, device_trust: str = DeviceTrust.NEW) -> timedelta:
        ttl = self.base_ttl * self.risk_multiplier(risk_score) * self.trust_multiplier(device_trust)
        return max(ttl, self.min_ttl)

    def compute_expiry(self, now: datetime, risk_score: int, device_trust: str = DeviceTrust.NEW) -> datetime:
        return now + self.compute_ttl(risk_score, device_trust)
