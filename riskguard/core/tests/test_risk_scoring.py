"""
Tests for the risk scorer and the session timeout policy.
"""

from datetime import timedelta
from types import SimpleNamespace

from django.test import SimpleTestCase, override_settings

from ..models import DeviceTrust, RiskLevel
from ..services.risk_scoring import RiskPolicy, RiskScorer
from ..services.timeout_policy import TimeoutPolicy
from .helpers import BRUSSELS, FIXED_NOW, LYON, NEW_YORK, PARIS, make_context


def stored_session(context, last_activity=None):
    """Stand-in for a UserSession created from context."""
    return SimpleNamespace(
        device_fingerprint=context.fingerprint,
        ip_address=context.location.ip,
        latitude=context.location.latitude,
        longitude=context.location.longitude,
        last_activity=last_activity or FIXED_NOW - timedelta(minutes=5),
    )


class RiskScorerTest(SimpleTestCase):
    """Test additive risk scoring."""

    def setUp(self):
        self.scorer = RiskScorer(RiskPolicy())
        self.login_context = make_context()

    def test_matching_context_scores_zero(self):
        """Same device, same IP, recently active."""
        assessment = self.scorer.score(stored_session(self.login_context), self.login_context, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 0)
        self.assertEqual(assessment.level, RiskLevel.LOW)
        self.assertEqual(assessment.reasons, [])

    def test_fingerprint_mismatch_only_is_high(self):
        fresh = make_context(browser='Firefox', os='Linux')

        assessment = self.scorer.score(stored_session(self.login_context), fresh, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 50)
        self.assertEqual(assessment.level, RiskLevel.HIGH)
        self.assertEqual(assessment.reasons, ['fingerprint_mismatch'])

    def test_far_ip_change_is_critical(self):
        fresh = make_context(ip='198.51.100.7', coordinates=NEW_YORK)

        assessment = self.scorer.score(stored_session(self.login_context), fresh, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 80)
        self.assertEqual(assessment.level, RiskLevel.CRITICAL)
        self.assertEqual(assessment.reasons, ['fingerprint_mismatch', 'ip_distance_far'])

    def test_moderate_ip_change(self):
        fresh = make_context(ip='198.51.100.7', coordinates=LYON)

        assessment = self.scorer.score(stored_session(self.login_context), fresh, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 60)
        self.assertIn('ip_distance_moderate', assessment.reasons)

    def test_nearby_ip_change_adds_no_distance_points(self):
        fresh = make_context(ip='198.51.100.7', coordinates=(48.80, 2.30))

        assessment = self.scorer.score(stored_session(self.login_context), fresh, 1, FIXED_NOW)

        self.assertEqual(assessment.reasons, ['fingerprint_mismatch'])

    def test_unknown_location_adds_no_distance_points(self):
        fresh = make_context(ip='198.51.100.7', coordinates=None)

        assessment = self.scorer.score(stored_session(self.login_context), fresh, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 50)
        self.assertNotIn('ip_distance_far', assessment.reasons)

    def test_long_inactivity(self):
        session = stored_session(self.login_context, last_activity=FIXED_NOW - timedelta(minutes=121))

        assessment = self.scorer.score(session, self.login_context, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 10)
        self.assertEqual(assessment.reasons, ['long_inactivity'])

    def test_exactly_two_hours_inactivity_is_not_scored(self):
        session = stored_session(self.login_context, last_activity=FIXED_NOW - timedelta(minutes=120))

        assessment = self.scorer.score(session, self.login_context, 1, FIXED_NOW)

        self.assertEqual(assessment.score, 0)

    def test_unusual_session_activity(self):
        assessment = self.scorer.score(stored_session(self.login_context), self.login_context, 11, FIXED_NOW)
        self.assertEqual(assessment.score, 20)
        self.assertEqual(assessment.reasons, ['unusual_session_activity'])

        assessment = self.scorer.score(stored_session(self.login_context), self.login_context, 10, FIXED_NOW)
        self.assertEqual(assessment.score, 0)

    def test_score_is_capped_at_100(self):
        session = stored_session(self.login_context, last_activity=FIXED_NOW - timedelta(hours=5))
        fresh = make_context(ip='198.51.100.7', coordinates=NEW_YORK, browser='Firefox')

        assessment = self.scorer.score(session, fresh, 25, FIXED_NOW)

        self.assertEqual(assessment.score, 100)
        self.assertEqual(len(assessment.reasons), 4)
        self.assertTrue(assessment.is_critical)

    def test_same_inputs_give_same_result(self):
        fresh = make_context(ip='198.51.100.7', coordinates=BRUSSELS)
        session = stored_session(self.login_context)

        first = self.scorer.score(session, fresh, 3, FIXED_NOW)
        second = self.scorer.score(session, fresh, 3, FIXED_NOW)

        self.assertEqual(first.to_dict(), second.to_dict())

    def test_level_boundaries(self):
        self.assertEqual(self.scorer.risk_level(0), RiskLevel.LOW)
        self.assertEqual(self.scorer.risk_level(24), RiskLevel.LOW)
        self.assertEqual(self.scorer.risk_level(25), RiskLevel.MEDIUM)
        self.assertEqual(self.scorer.risk_level(49), RiskLevel.MEDIUM)
        self.assertEqual(self.scorer.risk_level(50), RiskLevel.HIGH)
        self.assertEqual(self.scorer.risk_level(79), RiskLevel.HIGH)
        self.assertEqual(self.scorer.risk_level(80), RiskLevel.CRITICAL)
        self.assertEqual(self.scorer.risk_level(100), RiskLevel.CRITICAL)

    @override_settings(RISK_POLICY={'fingerprint_mismatch_points': 80, 'unknown_key': 1})
    def test_policy_from_settings(self):
        policy = RiskPolicy.from_settings()

        self.assertEqual(policy.fingerprint_mismatch_points, 80)
        self.assertEqual(policy.far_distance_km, 1000)

        fresh = make_context(browser='Firefox')
        assessment = RiskScorer(policy).score(stored_session(self.login_context), fresh, 1, FIXED_NOW)
        self.assertTrue(assessment.is_critical)


class TimeoutPolicyTest(SimpleTestCase):
    """Test risk-adaptive session expiry."""

    def setUp(self):
        self.policy = TimeoutPolicy(base_ttl=timedelta(hours=24), min_ttl=timedelta(minutes=30))

    def test_low_risk_new_device(self):
        expires_at = self.policy.compute_expiry(FIXED_NOW, 0, DeviceTrust.NEW)
        self.assertEqual(expires_at - FIXED_NOW, timedelta(hours=36))

    def test_risk_multipliers(self):
        self.assertEqual(self.policy.compute_ttl(10), timedelta(hours=24))
        self.assertEqual(self.policy.compute_ttl(25), timedelta(hours=24))
        self.assertEqual(self.policy.compute_ttl(26), timedelta(hours=12))
        self.assertEqual(self.policy.compute_ttl(50), timedelta(hours=12))
        self.assertEqual(self.policy.compute_ttl(51), timedelta(hours=6))

    def test_trust_multipliers(self):
        self.assertEqual(self.policy.compute_ttl(10, DeviceTrust.TRUSTED), timedelta(hours=48))
        self.assertEqual(self.policy.compute_ttl(10, DeviceTrust.SUSPICIOUS), timedelta(hours=2.4))

    def test_never_below_thirty_minutes(self):
        policy = TimeoutPolicy(base_ttl=timedelta(hours=1), min_ttl=timedelta(minutes=30))

        expires_at = policy.compute_expiry(FIXED_NOW, 90, DeviceTrust.SUSPICIOUS)

        self.assertEqual(expires_at - FIXED_NOW, timedelta(minutes=30))

    def test_floor_holds_for_all_inputs(self):
        for risk_score in range(0, 101, 5):
            for trust in DeviceTrust.values:
                expires_at = self.policy.compute_expiry(FIXED_NOW, risk_score, trust)
                self.assertGreaterEqual(expires_at - FIXED_NOW, timedelta(minutes=30))

    @override_settings(SESSION_BASE_TTL_HOURS=2, SESSION_MIN_TTL_MINUTES=45)
    def test_defaults_from_settings(self):
        policy = TimeoutPolicy()

        self.assertEqual(policy.compute_ttl(20), timedelta(hours=2))
        self.assertEqual(policy.compute_ttl(90, DeviceTrust.SUSPICIOUS), timedelta(minutes=45))
