"""
prioritizer.py
==============

Turns scored approvals into an ordered revocation action list and a
wallet-level summary.

Ordering is by urgency tier (immediate first), then by ``priority_score``
descending, then by input position, so identical input always yields an
identical list.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from approval_guard.addresses import normalize_address
from approval_guard.constants import REVOKE_GAS_ESTIMATE
from approval_guard.models import (
    ApprovalPairState,
    RevocationRecommendation,
    RiskAssessment,
    RiskFactorKind,
    RiskLevel,
    Urgency,
    WalletSummary,
)
from approval_guard.scoring import LEVEL_THRESHOLDS, level_counts, level_for_score

# Bonus added to the risk score when ranking revocation candidates.
PRIORITY_BONUS: Mapping[RiskFactorKind, float] = MappingProxyType(
    {
        RiskFactorKind.UNLIMITED_ALLOWANCE: 3.0,
        RiskFactorKind.DORMANT_APPROVAL: 2.0,
        RiskFactorKind.NEVER_USED: 2.0,
        RiskFactorKind.HIGH_VALUE: 2.5,
        RiskFactorKind.UNVERIFIED_SPENDER: 1.5,
        RiskFactorKind.KNOWN_MALICIOUS: 4.0,
    }
)

REASONS: Mapping[RiskFactorKind, str] = MappingProxyType(
    {
        RiskFactorKind.KNOWN_MALICIOUS: "Spender is flagged as malicious",
        RiskFactorKind.UNLIMITED_ALLOWANCE: (
            "Unlimited approval poses significant risk if the spender is compromised"
        ),
        RiskFactorKind.NEVER_USED: "Approval was never used and may not be needed",
        RiskFactorKind.DORMANT_APPROVAL: (
            "Approval has been dormant and may no longer be needed"
        ),
        RiskFactorKind.UNVERIFIED_SPENDER: (
            "Spender contract is not verified or recognized"
        ),
        RiskFactorKind.HIGH_VALUE: "High value at risk",
    }
)

# Wallet score = MAX_WEIGHT * worst approval + MEAN_WEIGHT * average.
MAX_WEIGHT = 0.6
MEAN_WEIGHT = 0.4


def should_revoke(assessment: RiskAssessment) -> bool:
    if assessment.level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        return True
    return assessment.level == RiskLevel.MEDIUM and len(assessment.factors) >= 2


def priority_score(assessment: RiskAssessment) -> float:
    bonus = sum(PRIORITY_BONUS.get(f.kind, 0.0) for f in assessment.factors)
    return float(assessment.overall_score) + bonus


def revocation_reason(assessment: RiskAssessment) -> str:
    reasons = [REASONS[f.kind] for f in assessment.factors if f.kind in REASONS]
    if not reasons:
        return "General security hygiene recommendation"
    return ". ".join(reasons)


def build_recommendations(
    scored: Sequence[Tuple[ApprovalPairState, RiskAssessment]],
    gas_per_revocation: int = REVOKE_GAS_ESTIMATE,
) -> List[RevocationRecommendation]:
    """Build and order a recommendation for every scored approval."""
    entries = []
    for index, (state, assessment) in enumerate(scored):
        revoke = should_revoke(assessment)
        rec = RevocationRecommendation(
            state=state,
            assessment=assessment,
            should_revoke=revoke,
            urgency=Urgency.from_level(assessment.level),
            priority_score=priority_score(assessment),
            reason=revocation_reason(assessment),
            estimated_gas=gas_per_revocation if revoke else 0,
        )
        entries.append((index, rec))
    entries.sort(key=lambda e: (e[1].urgency.rank, -e[1].priority_score, e[0]))
    return [rec for _, rec in entries]


def wallet_score(assessments: Sequence[RiskAssessment]) -> int:
    """Blend of the worst and the mean score, weighted toward the worst."""
    if not assessments:
        return 0
    scores = [a.overall_score for a in assessments]
    blended = MAX_WEIGHT * max(scores) + MEAN_WEIGHT * (sum(scores) / len(scores))
    return max(0, min(100, int(blended + 0.5)))


def revocation_breakdown(
    recommendations: Iterable[RevocationRecommendation],
) -> Dict[str, int]:
    counts = {u.value: 0 for u in Urgency}
    counts["no_action"] = 0
    total = 0
    for rec in recommendations:
        total += 1
        if rec.should_revoke:
            counts[rec.urgency.value] += 1
        else:
            counts["no_action"] += 1
    counts["total"] = total
    return counts


def estimate_revocation_cost(
    recommendations: Iterable[RevocationRecommendation], gas_price_wei: int
) -> int:
    """Total wei needed to send every recommended revocation."""
    gas = sum(r.estimated_gas for r in recommendations if r.should_revoke)
    return gas * gas_price_wei


def summarize(
    recommendations: Sequence[RevocationRecommendation],
    thresholds: Sequence[Tuple[RiskLevel, int]] = LEVEL_THRESHOLDS,
) -> WalletSummary:
    """Wallet-level aggregate, recomputed from scratch on every call."""
    assessments = [r.assessment for r in recommendations]
    overall = wallet_score(assessments)
    return WalletSummary(
        total_approvals=len(recommendations),
        level_counts=level_counts(assessments),
        revoke_count=sum(1 for r in recommendations if r.should_revoke),
        overall_score=overall,
        overall_level=level_for_score(overall, thresholds),
        unlimited_count=sum(1 for r in recommendations if r.state.is_unlimited),
        urgency_counts=revocation_breakdown(recommendations),
        estimated_gas=sum(r.estimated_gas for r in recommendations),
    )


# ----------------------------------------------------------------------------
# Filtering and grouping
# ----------------------------------------------------------------------------

def filter_recommendations(
    recommendations: Iterable[RevocationRecommendation],
    min_score: Optional[int] = None,
    max_score: Optional[int] = None,
    levels: Optional[Iterable[RiskLevel]] = None,
    only_unlimited: bool = False,
    only_revocable: bool = False,
    tokens: Optional[Iterable[str]] = None,
    spenders: Optional[Iterable[str]] = None,
) -> List[RevocationRecommendation]:
    """Return the recommendations matching every given criterion, in order."""
    level_set = set(levels) if levels else None
    token_set = {normalize_address(t) for t in tokens} if tokens else None
    spender_set = {normalize_address(s) for s in spenders} if spenders else None

    selected = []
    for rec in recommendations:
        score = rec.assessment.overall_score
        if min_score is not None and score < min_score:
            continue
        if max_score is not None and score > max_score:
            continue
        if level_set is not None and rec.assessment.level not in level_set:
            continue
        if only_unlimited and not rec.state.is_unlimited:
            continue
        if only_revocable and not rec.should_revoke:
            continue
        if token_set is not None and rec.state.token_address not in token_set:
            continue
        if spender_set is not None and rec.state.spender not in spender_set:
            continue
        selected.append(rec)
    return selected


def group_by_token(
    recommendations: Iterable[RevocationRecommendation],
) -> Dict[str, List[RevocationRecommendation]]:
    grouped: Dict[str, List[RevocationRecommendation]] = {}
    for rec in recommendations:
        grouped.setdefault(rec.state.token_address, []).append(rec)
    return grouped


def group_by_spender(
    recommendations: Iterable[RevocationRecommendation],
) -> Dict[str, List[RevocationRecommendation]]:
    grouped: Dict[str, List[RevocationRecommendation]] = {}
    for rec in recommendations:
        grouped.setdefault(rec.state.spender, []).append(rec)
    return grouped
