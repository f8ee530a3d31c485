"""
Session risk scoring.

The scorer is a pure function of the stored session, the freshly
resolved device context, the user's recent session volume and the
current time. It never touches the database or the clock, so the same
inputs always produce the same assessment.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from typing import List

from django.conf import settings

from ..models import RiskLevel
from ..utils.geolocation import get_distance_between_locations


MAX_RISK_SCORE = 100


@dataclass(frozen=True)
class RiskPolicy:
    """Points awarded per signal and the score boundaries between levels."""
    fingerprint_mismatch_points: int = 50
    far_distance_km: float = 1000
    far_distance_points: int = 30
    moderate_distance_km: float = 100
    moderate_distance_points: int = 10
    inactivity_minutes: int = 120
    inactivity_points: int = 10
    session_activity_threshold: int = 10
    session_activity_points: int = 20
    medium_threshold: int = 25
    high_threshold: int = 50
    critical_threshold: int = 80

    @classmethod
    def from_settings(cls) -> 'RiskPolicy':
        configured = getattr(settings, 'RISK_POLICY', {})
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in configured.items() if key in known})

    def level_for(self, score: int) -> str:
        if score >= self.critical_threshold:
            return RiskLevel.CRITICAL
        if score >= self.high_threshold:
            return RiskLevel.HIGH
        if score >= self.medium_threshold:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


@dataclass
class RiskAssessment:
    score: int
    level: str
    reasons: List[str] = field(default_factory=list)

    @property
    def is_critical(self) -> bool:
        return self.level == RiskLevel.CRITICAL

    @property
    def is_high(self) -> bool:
        return self.level == RiskLevel.HIGH

    def to_dict(self):
        return {'score': self.score, 'level': str(self.level), 'reasons': list(self.reasons)}


class RiskScorer:
    """
    Additive risk scorer for session validation.

    Signals:
        fingerprint_mismatch: stored fingerprint differs from the fresh one
        ip_distance_far / ip_distance_moderate: the client moved further
            than the configured distances since the session was stored
        long_inactivity: no validated request for longer than the
            inactivity window
        unusual_session_activity: the user opened more sessions in the
            trailing window than the activity threshold

    Distance is only scored when both locations have coordinates; an
    unknown location never adds points.
    """

    def __init__(self, policy: RiskPolicy = None):
        self.policy = policy or RiskPolicy.from_settings()

    def score(self, session, fresh_context, recent_session_count: int, now: datetime) -> RiskAssessment:
        """
        Score a stored session against the context of the current request.

        Args:
            session: Stored UserSession
            fresh_context: DeviceContext resolved from the current request
            recent_session_count: Sessions the user created in the trailing window
            now: Evaluation time

        Returns:
            RiskAssessment with a score in [0, 100]
        """
        policy = self.policy
        score = 0
        reasons = []

        if fresh_context.fingerprint != session.device_fingerprint:
            score += policy.fingerprint_mismatch_points
            reasons.append('fingerprint_mismatch')

        if fresh_context.location.ip != session.ip_address:
            distance = get_distance_between_locations(
                session.latitude, session.longitude,
                fresh_context.location.latitude, fresh_context.location.longitude,
            )
            if distance is not None:
                if distance > policy.far_distance_km:
                    score += policy.far_distance_points
                    reasons.append('ip_distance_far')
                elif distance > policy.moderate_distance_km:
                    score += policy.moderate_distance_points
                    reasons.append('ip_distance_moderate')

        if now - session.last_activity > timedelta(minutes=policy.inactivity_minutes):
            score += policy.inactivity_points
            reasons.append('long_inactivity')

        if recent_session_count > policy.session_activity_threshold:
            score += policy.session_activity_points
            reasons.append('unusual_session_activity')

        score = max(0, min(score, MAX_RISK_SCORE))
        return RiskAssessment(score=score, level=policy.level_for(score), reasons=reasons)

    def risk_level(self, score: int) -> str:
        return self.policy.level_for(score)
