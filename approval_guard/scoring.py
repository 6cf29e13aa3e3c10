"""
scoring.py
==========

Deterministic risk scoring for reduced approval state.

Scale and aggregation
---------------------
Every factor carries ``raw_score`` in points on the 0-100 scale and a
``weight`` multiplier. The overall score is the weighted sum of the factors
that fired, clamped to [0, 100] and rounded half up. With the default
policy the factors are worth:

    unlimited_allowance   50 x 1.5 = 75
    dormant_approval      10 / 20 / 26 / 32 after 30 / 90 / 180 / 365 days
    never_used            dormancy points + 10
    unverified_spender    20
    high_value            10 x (1.0 / 1.2 / 1.5 / 2.0) by USD tier, at most 20
    known_malicious       95

The minor factors sum to at most 42 + 20 + 20 = 82, below the critical cut
of 90, so only an unlimited allowance together with another factor, or a
known-malicious spender, can reach ``critical``.

All policy numbers live in :class:`RiskScoringConfig`; pass a modified copy
to :class:`RiskScorer` to change them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from approval_guard.addresses import normalize_address
from approval_guard.constants import SECONDS_PER_DAY, UNLIMITED_THRESHOLD
from approval_guard.errors import ConfigError, ErrorCode, ValidationError
from approval_guard.models import (
    ApprovalPairState,
    Enrichment,
    PairKey,
    RiskAssessment,
    RiskFactor,
    RiskFactorKind,
    RiskLevel,
)


# ----------------------------------------------------------------------------
# Policy tables
# ----------------------------------------------------------------------------

# Single source of truth for score -> level. Checked top to bottom.
LEVEL_THRESHOLDS: Tuple[Tuple[RiskLevel, int], ...] = (
    (RiskLevel.CRITICAL, 90),
    (RiskLevel.HIGH, 70),
    (RiskLevel.MEDIUM, 40),
)

# (days strictly exceeded, points)
DORMANCY_TIERS: Tuple[Tuple[int, float], ...] = (
    (365, 32.0),
    (180, 26.0),
    (90, 20.0),
    (30, 10.0),
)

# (USD strictly exceeded, multiplier)
USD_VALUE_TIERS: Tuple[Tuple[float, float], ...] = (
    (100_000.0, 2.0),
    (10_000.0, 1.5),
    (1_000.0, 1.2),
    (100.0, 1.0),
)

LEVEL_ADVICE: Mapping[RiskLevel, str] = MappingProxyType({
    RiskLevel.CRITICAL: "Revoke this approval immediately",
    RiskLevel.HIGH: "Revocation recommended",
    RiskLevel.MEDIUM: "Review this approval and revoke it if no longer needed",
    RiskLevel.LOW: "No immediate action required",
})

FACTOR_ADVICE: Mapping[RiskFactorKind, str] = MappingProxyType({
    RiskFactorKind.KNOWN_MALICIOUS: "the spender is on a known-malicious list",
    RiskFactorKind.UNLIMITED_ALLOWANCE: (
        "reduce the allowance to the amount actually needed"
    ),
    RiskFactorKind.NEVER_USED: "the spender has never used this approval",
    RiskFactorKind.DORMANT_APPROVAL: "the approval appears to be unused",
    RiskFactorKind.UNVERIFIED_SPENDER: "the spender contract is not verified",
    RiskFactorKind.HIGH_VALUE: "a large amount is exposed to the spender",
})


@dataclass(frozen=True)
class FactorWeights:
    """Weight multiplier applied to each factor's points."""

    unlimited_allowance: float = 1.5
    dormant_approval: float = 1.0
    never_used: float = 1.0
    unverified_spender: float = 1.0
    high_value: float = 1.0
    known_malicious: float = 1.0

    def for_kind(self, kind: RiskFactorKind) -> float:
        return getattr(self, kind.value, 1.0)


@dataclass(frozen=True)
class RiskScoringConfig:
    unlimited_threshold: int = UNLIMITED_THRESHOLD
    weights: FactorWeights = field(default_factory=FactorWeights)

    unlimited_points: float = 50.0
    dormancy_tiers: Tuple[Tuple[int, float], ...] = DORMANCY_TIERS
    never_used_bonus: float = 10.0
    unverified_points: float = 20.0
    high_value_points: float = 10.0
    usd_value_tiers: Tuple[Tuple[float, float], ...] = USD_VALUE_TIERS
    # Finite allowances of at least this many whole tokens count as high
    # value when no USD price is known.
    high_value_token_units: int = 1_000
    known_malicious_points: float = 95.0

    level_thresholds: Tuple[Tuple[RiskLevel, int], ...] = LEVEL_THRESHOLDS
    denylist: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        if self.unlimited_threshold <= 0:
            raise ConfigError(
                "unlimited_threshold must be positive", key="unlimited_threshold"
            )
        cutoffs = [cut for _, cut in self.level_thresholds]
        if cutoffs != sorted(cutoffs, reverse=True):
            raise ConfigError(
                "level thresholds must be listed from highest to lowest",
                key="level_thresholds",
            )
        days = [d for d, _ in self.dormancy_tiers]
        points = [p for _, p in self.dormancy_tiers]
        if days != sorted(days, reverse=True) or points != sorted(
            points, reverse=True
        ):
            # Longer dormancy must never score lower.
            raise ConfigError(
                "dormancy tiers must be descending in days and points",
                key="dormancy_tiers",
            )

    def with_weights(self, **overrides: float) -> "RiskScoringConfig":
        """Return a copy with some factor weights replaced."""
        return replace(self, weights=replace(self.weights, **overrides))

    def with_denylist(self, addresses: Iterable[str]) -> "RiskScoringConfig":
        """Return a copy whose denylist is ``addresses`` (canonicalized)."""
        return replace(
            self, denylist=frozenset(normalize_address(a) for a in addresses)
        )


# ----------------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------------

def level_for_score(
    score: float,
    thresholds: Sequence[Tuple[RiskLevel, int]] = LEVEL_THRESHOLDS,
) -> RiskLevel:
    for level, cutoff in thresholds:
        if score >= cutoff:
            return level
    return RiskLevel.LOW


def dormancy_points(
    days: int, tiers: Sequence[Tuple[int, float]] = DORMANCY_TIERS
) -> float:
    """Points for ``days`` of inactivity; non-decreasing in ``days``."""
    for boundary, points in tiers:
        if days > boundary:
            return points
    return 0.0


def usd_value_multiplier(
    usd_value: float, tiers: Sequence[Tuple[float, float]] = USD_VALUE_TIERS
) -> float:
    for boundary, multiplier in tiers:
        if usd_value > boundary:
            return multiplier
    return 0.0


def elapsed_days(since: int, now: int) -> int:
    return max(0, int((now - since) // SECONDS_PER_DAY))


def clamp_score(total: float) -> int:
    """Round half up and clamp to [0, 100]."""
    return max(0, min(100, int(math.floor(total + 0.5))))


def dominant_factor(factors: Sequence[RiskFactor]) -> Optional[RiskFactor]:
    """The factor with the largest contribution; the earliest wins ties."""
    best: Optional[RiskFactor] = None
    for factor in factors:
        if best is None or factor.contribution > best.contribution:
            best = factor
    return best


def recommendation_text(
    level: RiskLevel, factors: Sequence[RiskFactor] = ()
) -> str:
    """Recommendation for a level, qualified by the dominant factor."""
    base = LEVEL_ADVICE[level]
    top = dominant_factor(factors)
    if top is None or top.kind not in FACTOR_ADVICE:
        return base + "."
    return f"{base}: {FACTOR_ADVICE[top.kind]}."


def _usable_usd(value: object) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


def _usable_decimals(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 18
    if value < 0 or value > 77:
        return 18
    return value


# ----------------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------------

class RiskScorer:
    """Scores :class:`ApprovalPairState` instances against a fixed policy.

    The scorer is stateless apart from its immutable config, so one instance
    can be shared freely. ``now`` is always passed in explicitly; identical
    arguments give identical assessments.
    """

    def __init__(self, config: Optional[RiskScoringConfig] = None) -> None:
        self.config = config or RiskScoringConfig()

    # -- individual checks -------------------------------------------------

    def _factor(
        self, kind: RiskFactorKind, points: float, description: str
    ) -> RiskFactor:
        return RiskFactor(
            kind=kind,
            raw_score=float(points),
            weight=self.config.weights.for_kind(kind),
            description=description,
        )

    def _check_unlimited(self, state: ApprovalPairState) -> Optional[RiskFactor]:
        if state.current_allowance < self.config.unlimited_threshold:
            return None
        return self._factor(
            RiskFactorKind.UNLIMITED_ALLOWANCE,
            self.config.unlimited_points,
            "Unlimited allowance: the spender can move the entire token balance",
        )

    def _check_dormancy(
        self, state: ApprovalPairState, enrichment: Enrichment, now: int
    ) -> Optional[RiskFactor]:
        # Time of the latest change; None when its block time is unknown.
        granted_at = state.last_modified_at
        tiers = self.config.dormancy_tiers

        if enrichment.usage_observed is False:
            days = elapsed_days(granted_at, now) if granted_at is not None else 0
            points = dormancy_points(days, tiers) + self.config.never_used_bonus
            if granted_at is None:
                description = "Approval has never been used by the spender"
            else:
                description = (
                    f"Approval has never been used by the spender "
                    f"({days} days since granted)"
                )
            return self._factor(RiskFactorKind.NEVER_USED, points, description)

        reference = (
            enrichment.last_used_at
            if enrichment.last_used_at is not None
            else granted_at
        )
        if reference is None:
            return None
        days = elapsed_days(reference, now)
        points = dormancy_points(days, tiers)
        if points <= 0:
            return None
        return self._factor(
            RiskFactorKind.DORMANT_APPROVAL,
            points,
            f"Approval unused for {days} days",
        )

    def _check_verification(self, enrichment: Enrichment) -> Optional[RiskFactor]:
        if enrichment.spender_verified is True:
            return None
        if enrichment.spender_verified is None:
            description = "Spender contract is unknown"
        else:
            description = "Spender contract is not verified"
        return self._factor(
            RiskFactorKind.UNVERIFIED_SPENDER,
            self.config.unverified_points,
            description,
        )

    def _check_value(
        self, state: ApprovalPairState, enrichment: Enrichment
    ) -> Optional[RiskFactor]:
        usd = _usable_usd(enrichment.usd_value)
        if usd is not None:
            multiplier = usd_value_multiplier(usd, self.config.usd_value_tiers)
            if multiplier <= 0:
                return None
            return self._factor(
                RiskFactorKind.HIGH_VALUE,
                self.config.high_value_points * multiplier,
                f"High value at risk (${usd:,.2f})",
            )
        decimals = _usable_decimals(enrichment.token_decimals)
        threshold = self.config.high_value_token_units * 10 ** decimals
        if state.current_allowance < threshold:
            return None
        whole = state.current_allowance // 10 ** decimals
        return self._factor(
            RiskFactorKind.HIGH_VALUE,
            self.config.high_value_points,
            f"Large allowance of {whole:,} {enrichment.token_symbol}",
        )

    def _check_malicious(
        self, state: ApprovalPairState, enrichment: Enrichment
    ) -> Optional[RiskFactor]:
        if not enrichment.known_malicious and state.spender not in self.config.denylist:
            return None
        return self._factor(
            RiskFactorKind.KNOWN_MALICIOUS,
            self.config.known_malicious_points,
            "Spender is on a known-malicious denylist",
        )

    # -- public API ----------------------------------------------------------

    def score(
        self,
        state: ApprovalPairState,
        now: int,
        enrichment: Optional[Enrichment] = None,
    ) -> RiskAssessment:
        """Assess one approval as of unix time ``now``.

        Raises ValidationError for a non-numeric ``now`` or a negative
        allowance; every other input produces an assessment.
        """
        if (
            isinstance(now, bool)
            or not isinstance(now, (int, float))
            or (isinstance(now, float) and not math.isfinite(now))
        ):
            raise ValidationError("now must be a unix timestamp", field="now")
        if state.current_allowance < 0:
            raise ValidationError(
                "allowance cannot be negative",
                field="current_allowance",
                code=ErrorCode.INVALID_INPUT,
            )
        now = int(now)
        enrichment = enrichment or Enrichment()

        if state.current_allowance == 0:
            factor = RiskFactor(
                kind=RiskFactorKind.ZERO_APPROVAL,
                raw_score=0.0,
                weight=1.0,
                description="Approval has zero value (effectively revoked)",
            )
            return RiskAssessment(
                overall_score=0,
                level=RiskLevel.LOW,
                factors=(factor,),
                recommendation="Approval already revoked; no action required.",
            )

        unlimited = self._check_unlimited(state)
        checks = (
            unlimited,
            self._check_dormancy(state, enrichment, now),
            self._check_verification(enrichment),
            None if unlimited is not None else self._check_value(state, enrichment),
            self._check_malicious(state, enrichment),
        )
        factors = tuple(f for f in checks if f is not None)

        overall = clamp_score(sum(f.contribution for f in factors))
        level = level_for_score(overall, self.config.level_thresholds)
        return RiskAssessment(
            overall_score=overall,
            level=level,
            factors=factors,
            recommendation=recommendation_text(level, factors),
        )

    def score_many(
        self,
        states: Iterable[ApprovalPairState],
        now: int,
        enrichments: Optional[Mapping[PairKey, Enrichment]] = None,
    ) -> List[Tuple[ApprovalPairState, RiskAssessment]]:
        """Score each state in order, looking enrichment up by pair key."""
        enrichments = enrichments or {}
        return [
            (state, self.score(state, now, enrichments.get(state.key)))
            for state in states
        ]


def level_counts(assessments: Iterable[RiskAssessment]) -> Dict[str, int]:
    counts = {level.value: 0 for level in RiskLevel}
    for assessment in assessments:
        counts[assessment.level.value] += 1
    return counts
