"""Tests for report rendering and export."""

import csv
import io
import json
import math
import os
import shutil
import tempfile
import unittest

from approval_guard.constants import MAX_UINT256
from approval_guard.errors import ApprovalGuardError, ErrorCode
from approval_guard.models import ApprovalPairState, Enrichment
from approval_guard.pipeline import analyze_states
from approval_guard.report import (
    CSV_FIELDS,
    export_report,
    print_table,
    readable_amount,
    render_summary,
)

NOW = 1_700_000_000
OWNER = "0x" + "11" * 20
TOKEN = "0x" + "aa" * 20
SPENDER = "0x" + "bb" * 20


def sample_report():
    states = [
        ApprovalPairState(TOKEN, SPENDER, MAX_UINT256, True),
        ApprovalPairState(TOKEN, "0x" + "cc" * 20, 25 * 10 ** 5, False),
    ]
    return analyze_states(OWNER, states, NOW)


def sample_enrichments(report):
    return {
        s.key: Enrichment(spender_verified=False, token_symbol="TEST", token_decimals=6)
        for s in report.states
    }


class TestReadableAmount(unittest.TestCase):
    def test_readable_amount(self):
        """Amounts are shown with at most four decimals."""
        human = readable_amount(1234567890000000000, 18)
        self.assertTrue(math.isclose(float(human), 1.2346, rel_tol=1e-4))

    def test_whole_and_zero_decimals(self):
        self.assertEqual(readable_amount(5 * 10 ** 6, 6), "5")
        self.assertEqual(readable_amount(2_500_000, 6), "2.5")
        self.assertEqual(readable_amount(42, 0), "42")


class TestConsoleOutput(unittest.TestCase):
    def test_table(self):
        report = sample_report()
        out = io.StringIO()
        print_table(report, sample_enrichments(report), file=out)
        text = out.getvalue()
        self.assertIn("unlimited", text)
        self.assertIn("2.5", text)
        self.assertIn("CRITICAL", text)
        self.assertIn("immediate", text)

    def test_empty_table(self):
        out = io.StringIO()
        print_table(analyze_states(OWNER, [], NOW), file=out)
        self.assertEqual(out.getvalue().strip(), "No outstanding approvals found.")

    def test_summary(self):
        text = render_summary(sample_report())
        self.assertIn(OWNER, text)
        self.assertIn("Unlimited approvals: 1", text)
        self.assertIn("Recommended revocations: 1", text)


class TestExport(unittest.TestCase):
    def setUp(self):
        self.directory = tempfile.mkdtemp()
        self.report = sample_report()

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

    def test_json(self):
        path = os.path.join(self.directory, "out.json")
        export_report(self.report, path, sample_enrichments(self.report))
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data["owner"], OWNER)
        self.assertEqual(len(data["recommendations"]), 2)
        first = data["recommendations"][0]
        self.assertEqual(first["current_allowance"], str(MAX_UINT256))
        self.assertEqual(first["enrichment"]["token_symbol"], "TEST")

    def test_csv(self):
        path = os.path.join(self.directory, "out.CSV")
        export_report(self.report, path)
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        self.assertEqual(list(rows[0].keys()), CSV_FIELDS)
        self.assertEqual(rows[0]["allowance_readable"], "unlimited")
        self.assertEqual(rows[0]["should_revoke"], "true")

    def test_text(self):
        path = os.path.join(self.directory, "out.txt")
        export_report(self.report, path, sample_enrichments(self.report))
        with open(path, encoding="utf-8") as f:
            text = f.read()
        self.assertTrue(text.startswith(f"Wallet {OWNER}"))
        self.assertIn("Unlimited approvals: 1", text)
        self.assertIn("CRITICAL", text)
        self.assertIn("TEST", text)

    def test_unknown_extension(self):
        with self.assertRaises(ApprovalGuardError) as ctx:
            export_report(self.report, os.path.join(self.directory, "out.xml"))
        self.assertEqual(ctx.exception.code, ErrorCode.REPORT_FAILED)

    def test_unwritable_path(self):
        path = os.path.join(self.directory, "missing", "out.json")
        with self.assertRaises(ApprovalGuardError) as ctx:
            export_report(self.report, path)
        self.assertEqual(ctx.exception.code, ErrorCode.REPORT_FAILED)


if __name__ == "__main__":
    unittest.main()
