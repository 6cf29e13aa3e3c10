"""
pipeline.py
===========

Composition of the pure stages: normalize -> reduce -> score -> prioritize.

Everything here works on data that is already in memory. Fetching logs,
block timestamps and enrichment is done beforehand by the callers in
``rpc.py`` and ``metadata.py``.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from approval_guard.addresses import validate_address
from approval_guard.history import HistoryAnalysis, analyze_history
from approval_guard.models import (
    ApprovalPairState,
    Enrichment,
    NormalizedApprovalEvent,
    PairKey,
    ScanReport,
)
from approval_guard.normalizer import normalize_logs
from approval_guard.prioritizer import build_recommendations, summarize
from approval_guard.reducer import owner_events, reduce_approvals
from approval_guard.scoring import RiskScorer, RiskScoringConfig


def pair_keys(events: Iterable[NormalizedApprovalEvent]) -> List[PairKey]:
    """Distinct pair keys in ``events``, sorted, for enrichment lookups."""
    return sorted({PairKey.of(e.token_address, e.spender) for e in events})


def analyze_states(
    owner: str,
    states: Sequence[ApprovalPairState],
    now: int,
    chain_id: int = 1,
    enrichments: Optional[Mapping[PairKey, Enrichment]] = None,
    config: Optional[RiskScoringConfig] = None,
    dropped_records: int = 0,
    history: Optional[HistoryAnalysis] = None,
) -> ScanReport:
    """Score and prioritize already reduced state (e.g. from the cache)."""
    owner = validate_address(owner, field="owner")
    scorer = RiskScorer(config)
    scored = scorer.score_many(states, now, enrichments)
    recommendations = build_recommendations(scored)
    return ScanReport(
        owner=owner,
        chain_id=chain_id,
        generated_at=int(now),
        states=tuple(states),
        recommendations=tuple(recommendations),
        summary=summarize(recommendations, scorer.config.level_thresholds),
        dropped_records=dropped_records,
        history=history,
    )


def analyze_events(
    owner: str,
    events: Sequence[NormalizedApprovalEvent],
    now: int,
    chain_id: int = 1,
    enrichments: Optional[Mapping[PairKey, Enrichment]] = None,
    config: Optional[RiskScoringConfig] = None,
    include_zero_allowances: bool = False,
    dropped_records: int = 0,
    with_history: bool = True,
) -> ScanReport:
    """Reduce, score and prioritize normalized events for one wallet."""
    owner = validate_address(owner, field="owner")
    config = config or RiskScoringConfig()
    states = reduce_approvals(
        owner,
        events,
        include_zero_allowances=include_zero_allowances,
        unlimited_threshold=config.unlimited_threshold,
    )
    history = None
    if with_history:
        history = analyze_history(
            owner_events(owner, events), states.values(), now
        )
    return analyze_states(
        owner,
        list(states.values()),
        now,
        chain_id=chain_id,
        enrichments=enrichments,
        config=config,
        dropped_records=dropped_records,
        history=history,
    )


def analyze_wallet(
    owner: str,
    records: Iterable[Any],
    now: int,
    chain_id: int = 1,
    enrichments: Optional[Mapping[PairKey, Enrichment]] = None,
    config: Optional[RiskScoringConfig] = None,
    include_zero_allowances: bool = False,
) -> ScanReport:
    """Run the whole pipeline over raw log records.

    An empty or truncated record list still produces a well formed report.
    """
    events, dropped = normalize_logs(records)
    return analyze_events(
        owner,
        events,
        now,
        chain_id=chain_id,
        enrichments=enrichments,
        config=config,
        include_zero_allowances=include_zero_allowances,
        dropped_records=dropped,
    )
