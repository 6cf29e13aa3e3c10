"""
report.py
=========

Rendering of a :class:`ScanReport`: a console table, a text summary, and
JSON, CSV or plain-text export chosen by file extension.
"""

from __future__ import annotations

import csv
import json
import logging
from typing import Dict, List, Mapping, Optional, TextIO

from approval_guard.addresses import shorten_address
from approval_guard.errors import ApprovalGuardError, ErrorCode
from approval_guard.models import (
    Enrichment,
    PairKey,
    RevocationRecommendation,
    ScanReport,
)

logger = logging.getLogger("approval_guard.report")

CSV_FIELDS = [
    "token",
    "token_symbol",
    "spender",
    "spender_label",
    "allowance",
    "allowance_readable",
    "is_unlimited",
    "risk_score",
    "risk_level",
    "should_revoke",
    "urgency",
    "factors",
    "recommendation",
]


def readable_amount(value: int, decimals: int) -> str:
    """Return the human friendly amount based on token decimals."""
    if decimals <= 0:
        return str(value)
    whole, frac = divmod(value, 10 ** decimals)
    frac_text = str(frac).rjust(decimals, "0")[:4].rstrip("0")
    return f"{whole}.{frac_text}" if frac_text else str(whole)


def recommendation_row(
    rec: RevocationRecommendation, enrichment: Optional[Enrichment] = None
) -> Dict[str, str]:
    enrichment = enrichment or Enrichment()
    state = rec.state
    return {
        "token": state.token_address,
        "token_symbol": enrichment.token_symbol,
        "spender": state.spender,
        "spender_label": enrichment.spender_label or "Unknown",
        "allowance": str(state.current_allowance),
        "allowance_readable": (
            "unlimited"
            if state.is_unlimited
            else readable_amount(state.current_allowance, enrichment.token_decimals)
        ),
        "is_unlimited": str(state.is_unlimited).lower(),
        "risk_score": str(rec.assessment.overall_score),
        "risk_level": rec.assessment.level.value,
        "should_revoke": str(rec.should_revoke).lower(),
        "urgency": rec.urgency.value,
        "factors": ";".join(k.value for k in rec.assessment.factor_kinds),
        "recommendation": rec.assessment.recommendation,
    }


def print_table(
    report: ScanReport,
    enrichments: Optional[Mapping[PairKey, Enrichment]] = None,
    recommendations: Optional[List[RevocationRecommendation]] = None,
    file: Optional[TextIO] = None,
) -> None:
    """Print the recommendations as a table, most urgent first."""
    enrichments = enrichments or {}
    recs = list(report.recommendations if recommendations is None else recommendations)
    if not recs:
        print("No outstanding approvals found.", file=file)
        return
    headers = ["Token", "Spender", "Allowance", "Score", "Risk", "Action"]
    rows: List[List[str]] = []
    for rec in recs:
        row = recommendation_row(rec, enrichments.get(rec.state.key))
        rows.append([
            f"{row['token_symbol']}\n{shorten_address(row['token'])}",
            f"{row['spender_label']}\n{shorten_address(row['spender'])}",
            row["allowance_readable"],
            row["risk_score"],
            row["risk_level"].upper(),
            rec.urgency.value if rec.should_revoke else "keep",
        ])
    col_widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            for line in cell.split("\n"):
                col_widths[idx] = max(col_widths[idx], len(line))
    sep_line = "+" + "+".join("-" * (w + 2) for w in col_widths) + "+"
    print(sep_line, file=file)
    print(
        "|" + "|".join(
            f" {headers[i].ljust(col_widths[i])} " for i in range(len(headers))
        ) + "|",
        file=file,
    )
    print(sep_line, file=file)
    for row in rows:
        max_lines = max(cell.count("\n") + 1 for cell in row)
        lines_split = [
            cell.split("\n") + [""] * (max_lines - (cell.count("\n") + 1))
            for cell in row
        ]
        for i in range(max_lines):
            print(
                "|"
                + "|".join(
                    f" {lines_split[col][i].ljust(col_widths[col])} "
                    for col in range(len(headers))
                )
                + "|",
                file=file,
            )
        print(sep_line, file=file)


def render_summary(report: ScanReport) -> str:
    summary = report.summary
    counts = summary.level_counts
    lines = [
        f"Wallet {report.owner} on chain {report.chain_id}",
        f"Overall risk: {summary.overall_level.value.upper()} ({summary.overall_score}/100)",
        (
            f"Approvals: {summary.total_approvals} "
            f"({counts.get('critical', 0)} critical, {counts.get('high', 0)} high, "
            f"{counts.get('medium', 0)} medium, {counts.get('low', 0)} low)"
        ),
        f"Unlimited approvals: {summary.unlimited_count}",
        f"Recommended revocations: {summary.revoke_count}",
    ]
    if summary.revoke_count:
        lines.append(f"Estimated gas to revoke: {summary.estimated_gas:,}")
    if report.dropped_records:
        lines.append(f"Unparseable log records skipped: {report.dropped_records}")
    return "\n".join(lines)


def export_report(
    report: ScanReport,
    outfile: str,
    enrichments: Optional[Mapping[PairKey, Enrichment]] = None,
) -> None:
    """Export the report to JSON, CSV or plain text based on file extension."""
    lower = outfile.lower()
    if lower.endswith(".json"):
        fmt = "json"
    elif lower.endswith(".csv"):
        fmt = "csv"
    elif lower.endswith(".txt"):
        fmt = "txt"
    else:
        raise ApprovalGuardError(
            "Unknown export format; use .json, .csv or .txt extension.",
            code=ErrorCode.REPORT_FAILED,
            details={"path": outfile},
        )
    enrichments = enrichments or {}
    try:
        if fmt == "json":
            data = report.as_dict()
            for rec_dict, rec in zip(data["recommendations"], report.recommendations):
                enrichment = enrichments.get(rec.state.key)
                if enrichment is not None:
                    rec_dict["enrichment"] = enrichment.as_dict()
            with open(outfile, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        elif fmt == "txt":
            with open(outfile, "w", encoding="utf-8") as f:
                f.write(render_summary(report) + "\n\n")
                print_table(report, enrichments, file=f)
        else:
            with open(outfile, "w", newline="", encoding="utf-8") as csvfile:
                writer = csv.DictWriter(csvfile, fieldnames=CSV_FIELDS)
                writer.writeheader()
                for rec in report.recommendations:
                    writer.writerow(recommendation_row(rec, enrichments.get(rec.state.key)))
    except OSError as e:
        raise ApprovalGuardError(
            f"Could not write report to {outfile}: {e}",
            code=ErrorCode.REPORT_FAILED,
            details={"path": outfile},
        ) from e
    logger.info(f"Exported {len(report.recommendations)} records to {outfile}")
