"""End-to-end tests over raw log records, without network access."""

import unittest

from approval_guard.addresses import address_to_topic
from approval_guard.constants import APPROVAL_TOPIC, MAX_UINT256, SECONDS_PER_DAY
from approval_guard.history import analyze_history
from approval_guard.models import (
    ApprovalPairState,
    Enrichment,
    NormalizedApprovalEvent,
    PairKey,
    RiskFactorKind,
    RiskLevel,
)
from approval_guard.pipeline import analyze_states, analyze_wallet, pair_keys

NOW = 1_700_000_000
OWNER = "0x" + "11" * 20
TOKEN = "0x" + "aa" * 20
SPENDER = "0x" + "bb" * 20
OTHER_SPENDER = "0x" + "cc" * 20


def raw_log(value, block, spender=SPENDER, log_index=0, timestamp=None):
    record = {
        "address": TOKEN,
        "topics": [APPROVAL_TOPIC, address_to_topic(OWNER), address_to_topic(spender)],
        "data": "0x" + format(value, "064x"),
        "blockNumber": hex(block),
        "transactionHash": "0x%064x" % block,
        "logIndex": hex(log_index),
    }
    if timestamp is not None:
        record["blockTimestamp"] = hex(timestamp)
    return record


class TestAnalyzeWallet(unittest.TestCase):
    def test_reapproved_unlimited(self):
        """A revoke followed by an unlimited re-approval is flagged for revocation."""
        report = analyze_wallet(OWNER, [raw_log(0, 10), raw_log(MAX_UINT256, 20)], NOW)
        self.assertEqual(len(report.states), 1)
        state = report.states[0]
        self.assertTrue(state.is_unlimited)
        self.assertEqual(state.mutation_count, 2)

        rec = report.recommendations[0]
        self.assertIn(rec.assessment.level, (RiskLevel.HIGH, RiskLevel.CRITICAL))
        self.assertTrue(rec.assessment.has_factor(RiskFactorKind.UNLIMITED_ALLOWANCE))
        self.assertTrue(rec.should_revoke)
        self.assertEqual(report.summary.revoke_count, 1)

    def test_empty_input(self):
        report = analyze_wallet(OWNER, [], NOW)
        self.assertEqual(report.states, ())
        self.assertEqual(report.recommendations, ())
        self.assertEqual(report.summary.overall_score, 0)
        self.assertEqual(report.summary.overall_level, RiskLevel.LOW)
        self.assertEqual(report.dropped_records, 0)

    def test_truncated_records_are_counted(self):
        broken = raw_log(5, 3)
        broken["topics"] = broken["topics"][:1]
        report = analyze_wallet(OWNER, [raw_log(5, 2), broken, {"address": TOKEN}], NOW)
        self.assertEqual(report.dropped_records, 2)
        self.assertEqual(len(report.states), 1)

    def test_enrichment_is_applied(self):
        key = PairKey.of(TOKEN, SPENDER)
        enrichments = {key: Enrichment(spender_verified=True)}
        report = analyze_wallet(OWNER, [raw_log(MAX_UINT256, 20)], NOW, enrichments=enrichments)
        self.assertEqual(report.recommendations[0].assessment.overall_score, 75)

    def test_include_zero(self):
        records = [raw_log(5, 1), raw_log(0, 2)]
        self.assertEqual(analyze_wallet(OWNER, records, NOW).states, ())
        report = analyze_wallet(OWNER, records, NOW, include_zero_allowances=True)
        self.assertEqual(report.recommendations[0].assessment.overall_score, 0)
        self.assertFalse(report.recommendations[0].should_revoke)

    def test_report_serializes(self):
        report = analyze_wallet(OWNER, [raw_log(MAX_UINT256, 20, timestamp=NOW - 10)], NOW)
        data = report.as_dict()
        self.assertEqual(data["owner"], OWNER)
        self.assertEqual(data["recommendations"][0]["current_allowance"], str(MAX_UINT256))
        self.assertIn("history", data)

    def test_pair_keys(self):
        report_events = [
            NormalizedApprovalEvent(TOKEN, OWNER, OTHER_SPENDER, 1, 1),
            NormalizedApprovalEvent(TOKEN, OWNER, SPENDER, 1, 2),
            NormalizedApprovalEvent(TOKEN, OWNER, SPENDER, 2, 3),
        ]
        self.assertEqual(
            pair_keys(report_events),
            [PairKey(TOKEN, SPENDER), PairKey(TOKEN, OTHER_SPENDER)],
        )

    def test_cached_states(self):
        state = ApprovalPairState(TOKEN, SPENDER, MAX_UINT256, True)
        report = analyze_states(OWNER, [state], NOW)
        self.assertIsNone(report.history)
        self.assertEqual(report.summary.total_approvals, 1)


class TestHistory(unittest.TestCase):
    def test_counts_and_ages(self):
        day = SECONDS_PER_DAY
        records = [
            raw_log(100, 1, timestamp=NOW - 100 * day),
            raw_log(0, 2, timestamp=NOW - 90 * day),
            raw_log(50, 3, timestamp=NOW - 10 * day),
            raw_log(7, 4, spender=OTHER_SPENDER, timestamp=NOW - 40 * day),
        ]
        history = analyze_wallet(OWNER, records, NOW).history
        self.assertEqual(history.total_approvals, 3)
        self.assertEqual(history.total_revocations, 1)
        self.assertEqual(history.oldest_approval_at, NOW - 100 * day)
        self.assertEqual(history.newest_approval_at, NOW - 10 * day)
        self.assertEqual(history.oldest_active.first_seen_at, NOW - 100 * day)
        self.assertAlmostEqual(history.average_active_age_days, 70.0)
        self.assertEqual([s.spender for s in history.never_modified], [OTHER_SPENDER])
        self.assertEqual(len(history.recent_events), 1)

    def test_redelivered_log_counted_once(self):
        record = raw_log(MAX_UINT256, 5, timestamp=NOW - 10)
        report = analyze_wallet(OWNER, [record, dict(record), dict(record)], NOW)
        self.assertEqual(report.states[0].mutation_count, 1)
        self.assertEqual(report.history.total_approvals, 1)
        self.assertEqual(len(report.history.recent_events), 1)

    def test_no_events(self):
        history = analyze_history([], [], NOW)
        self.assertEqual(history.total_approvals, 0)
        self.assertIsNone(history.oldest_active)
        self.assertEqual(history.average_active_age_days, 0.0)


if __name__ == "__main__":
    unittest.main()
