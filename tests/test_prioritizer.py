"""Unit tests for revocation prioritization and wallet summaries."""

import unittest

from approval_guard.constants import MAX_UINT256, REVOKE_GAS_ESTIMATE
from approval_guard.models import (
    ApprovalPairState,
    RiskAssessment,
    RiskFactor,
    RiskFactorKind,
    RiskLevel,
    Urgency,
)
from approval_guard.prioritizer import (
    build_recommendations,
    estimate_revocation_cost,
    filter_recommendations,
    group_by_spender,
    group_by_token,
    priority_score,
    revocation_breakdown,
    revocation_reason,
    should_revoke,
    summarize,
    wallet_score,
)


def factor(kind, points=10.0):
    return RiskFactor(kind=kind, raw_score=points, weight=1.0, description=kind.value)


def assessment(score, level, *kinds):
    return RiskAssessment(
        overall_score=score,
        level=level,
        factors=tuple(factor(k) for k in kinds),
        recommendation="",
    )


def pair(token_byte="aa", spender_byte="bb", allowance=1):
    return ApprovalPairState(
        token_address="0x" + token_byte * 20,
        spender="0x" + spender_byte * 20,
        current_allowance=allowance,
        is_unlimited=allowance == MAX_UINT256,
    )


class TestShouldRevoke(unittest.TestCase):
    def test_rules(self):
        self.assertTrue(should_revoke(assessment(95, RiskLevel.CRITICAL)))
        self.assertTrue(should_revoke(assessment(75, RiskLevel.HIGH, RiskFactorKind.UNLIMITED_ALLOWANCE)))
        self.assertTrue(
            should_revoke(
                assessment(
                    52,
                    RiskLevel.MEDIUM,
                    RiskFactorKind.DORMANT_APPROVAL,
                    RiskFactorKind.UNVERIFIED_SPENDER,
                )
            )
        )
        self.assertFalse(should_revoke(assessment(42, RiskLevel.MEDIUM, RiskFactorKind.NEVER_USED)))
        self.assertFalse(
            should_revoke(
                assessment(
                    30,
                    RiskLevel.LOW,
                    RiskFactorKind.DORMANT_APPROVAL,
                    RiskFactorKind.UNVERIFIED_SPENDER,
                )
            )
        )

    def test_priority_and_reason(self):
        a = assessment(
            95, RiskLevel.CRITICAL, RiskFactorKind.UNLIMITED_ALLOWANCE, RiskFactorKind.UNVERIFIED_SPENDER
        )
        self.assertEqual(priority_score(a), 99.5)
        self.assertIn("Unlimited approval", revocation_reason(a))
        self.assertIn("not verified", revocation_reason(a))
        self.assertEqual(
            revocation_reason(assessment(0, RiskLevel.LOW)),
            "General security hygiene recommendation",
        )


class TestOrdering(unittest.TestCase):
    def setUp(self):
        self.scored = [
            (pair("a1"), assessment(20, RiskLevel.LOW, RiskFactorKind.UNVERIFIED_SPENDER)),
            (pair("a2"), assessment(75, RiskLevel.HIGH, RiskFactorKind.UNLIMITED_ALLOWANCE)),
            (pair("a3"), assessment(95, RiskLevel.CRITICAL, RiskFactorKind.KNOWN_MALICIOUS)),
            (pair("a4"), assessment(82, RiskLevel.HIGH, RiskFactorKind.NEVER_USED)),
            (pair("a5"), assessment(20, RiskLevel.LOW, RiskFactorKind.UNVERIFIED_SPENDER)),
        ]

    def test_urgency_then_priority_then_input(self):
        recs = build_recommendations(self.scored)
        self.assertEqual(
            [r.state.token_address[2:4] for r in recs],
            ["a3", "a4", "a2", "a1", "a5"],
        )
        self.assertEqual(
            [r.urgency for r in recs],
            [Urgency.IMMEDIATE, Urgency.HIGH, Urgency.HIGH, Urgency.LOW, Urgency.LOW],
        )

    def test_deterministic(self):
        self.assertEqual(build_recommendations(self.scored), build_recommendations(self.scored))

    def test_gas_only_for_revocations(self):
        recs = build_recommendations(self.scored)
        self.assertEqual(
            [r.estimated_gas for r in recs],
            [REVOKE_GAS_ESTIMATE] * 3 + [0, 0],
        )
        self.assertEqual(
            estimate_revocation_cost(recs, gas_price_wei=10),
            3 * REVOKE_GAS_ESTIMATE * 10,
        )

    def test_breakdown(self):
        counts = revocation_breakdown(build_recommendations(self.scored))
        self.assertEqual(counts["immediate"], 1)
        self.assertEqual(counts["high"], 2)
        self.assertEqual(counts["no_action"], 2)
        self.assertEqual(counts["total"], 5)

    def test_empty(self):
        self.assertEqual(build_recommendations([]), [])


class TestSummary(unittest.TestCase):
    def test_blended_score(self):
        scored = [
            (pair("a1"), assessment(95, RiskLevel.CRITICAL, RiskFactorKind.KNOWN_MALICIOUS)),
            (pair("a2"), assessment(0, RiskLevel.LOW)),
            (pair("a3"), assessment(0, RiskLevel.LOW)),
        ]
        summary = summarize(build_recommendations(scored))
        # 0.6 * 95 + 0.4 * 31.67 = 69.67
        self.assertEqual(summary.overall_score, 70)
        self.assertEqual(summary.overall_level, RiskLevel.HIGH)
        self.assertEqual(summary.total_approvals, 3)
        self.assertEqual(summary.revoke_count, 1)
        self.assertEqual(summary.level_counts["critical"], 1)
        self.assertEqual(summary.level_counts["low"], 2)

    def test_empty_wallet(self):
        summary = summarize([])
        self.assertEqual(summary.overall_score, 0)
        self.assertEqual(summary.overall_level, RiskLevel.LOW)
        self.assertEqual(summary.total_approvals, 0)
        self.assertEqual(wallet_score([]), 0)

    def test_unlimited_count(self):
        scored = [
            (pair("a1", allowance=MAX_UINT256), assessment(75, RiskLevel.HIGH)),
            (pair("a2"), assessment(0, RiskLevel.LOW)),
        ]
        self.assertEqual(summarize(build_recommendations(scored)).unlimited_count, 1)


class TestFiltering(unittest.TestCase):
    def setUp(self):
        self.recs = build_recommendations(
            [
                (pair("a1", "b1", MAX_UINT256), assessment(95, RiskLevel.CRITICAL, RiskFactorKind.UNLIMITED_ALLOWANCE)),
                (pair("a1", "b2"), assessment(45, RiskLevel.MEDIUM, RiskFactorKind.NEVER_USED)),
                (pair("a2", "b1"), assessment(10, RiskLevel.LOW, RiskFactorKind.DORMANT_APPROVAL)),
            ]
        )

    def test_filters(self):
        self.assertEqual(len(filter_recommendations(self.recs, min_score=40)), 2)
        self.assertEqual(len(filter_recommendations(self.recs, max_score=40)), 1)
        self.assertEqual(len(filter_recommendations(self.recs, levels=[RiskLevel.MEDIUM])), 1)
        self.assertEqual(len(filter_recommendations(self.recs, only_unlimited=True)), 1)
        self.assertEqual(len(filter_recommendations(self.recs, only_revocable=True)), 1)
        by_token = filter_recommendations(self.recs, tokens=["0x" + "A1" * 20])
        self.assertEqual(len(by_token), 2)
        self.assertEqual(filter_recommendations(self.recs), self.recs)

    def test_grouping(self):
        tokens = group_by_token(self.recs)
        self.assertEqual(len(tokens["0x" + "a1" * 20]), 2)
        spenders = group_by_spender(self.recs)
        self.assertEqual(len(spenders["0x" + "b1" * 20]), 2)
        self.assertEqual(len(spenders["0x" + "b2" * 20]), 1)


if __name__ == "__main__":
    unittest.main()
