"""
models.py
=========

Value objects passed between the pipeline stages:

    raw log -> NormalizedApprovalEvent -> ApprovalPairState
            -> RiskAssessment -> RevocationRecommendation + WalletSummary

None of these hold a reference back to the stage that produced them. All of
them serialise through ``as_dict()``; 256-bit integers are written as
decimal strings so JSON consumers do not lose precision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from approval_guard.addresses import normalize_address


# ----------------------------------------------------------------------------
# Enumerations
# ----------------------------------------------------------------------------

class RiskFactorKind(str, Enum):
    UNLIMITED_ALLOWANCE = "unlimited_allowance"
    DORMANT_APPROVAL = "dormant_approval"
    NEVER_USED = "never_used"
    UNVERIFIED_SPENDER = "unverified_spender"
    HIGH_VALUE = "high_value"
    KNOWN_MALICIOUS = "known_malicious"
    # Marker emitted only by the zero-allowance short circuit.
    ZERO_APPROVAL = "zero_approval"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _LEVEL_SEVERITY[self]


_LEVEL_SEVERITY = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, most urgent first."""
        return _URGENCY_RANK[self]

    @classmethod
    def from_level(cls, level: RiskLevel) -> "Urgency":
        return _URGENCY_FOR_LEVEL[level]


_URGENCY_RANK = {
    Urgency.IMMEDIATE: 0,
    Urgency.HIGH: 1,
    Urgency.MEDIUM: 2,
    Urgency.LOW: 3,
}

_URGENCY_FOR_LEVEL = {
    RiskLevel.CRITICAL: Urgency.IMMEDIATE,
    RiskLevel.HIGH: Urgency.HIGH,
    RiskLevel.MEDIUM: Urgency.MEDIUM,
    RiskLevel.LOW: Urgency.LOW,
}


# ----------------------------------------------------------------------------
# Events and reduced state
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class NormalizedApprovalEvent:
    """One on-chain ``Approval(owner, spender, value)`` emission.

    ``value`` is the allowance as of this event, not a delta. ``timestamp``
    is the block time in unix seconds, filled in by the caller when known.
    """

    token_address: str
    owner: str
    spender: str
    value: int
    block_number: int
    transaction_hash: str = ""
    log_index: Optional[int] = None
    timestamp: Optional[int] = None

    @property
    def is_revocation(self) -> bool:
        return self.value == 0

    def identity(self) -> Tuple[Any, ...]:
        """Key used to drop duplicate deliveries of the same log."""
        if self.transaction_hash and self.log_index is not None:
            return (self.transaction_hash.lower(), self.log_index)
        return (
            self.transaction_hash.lower(),
            self.block_number,
            self.token_address,
            self.spender,
            self.value,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "owner": self.owner,
            "spender": self.spender,
            "value": str(self.value),
            "block_number": self.block_number,
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "timestamp": self.timestamp,
        }


class PairKey(NamedTuple):
    """Composite (token, spender) key; build it with :meth:`of`."""

    token_address: str
    spender: str

    @classmethod
    def of(cls, token_address: str, spender: str) -> "PairKey":
        return cls(normalize_address(token_address), normalize_address(spender))

    def __str__(self) -> str:
        return f"{self.token_address}:{self.spender}"


@dataclass
class ApprovalPairState:
    """Current state of one (token, spender) approval for one owner."""

    token_address: str
    spender: str
    current_allowance: int
    is_unlimited: bool
    mutation_count: int = 1
    first_seen_at: Optional[int] = None
    last_modified_at: Optional[int] = None
    first_seen_block: int = 0
    last_modified_block: int = 0
    last_transaction_hash: str = ""

    @property
    def key(self) -> PairKey:
        return PairKey(self.token_address, self.spender)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "spender": self.spender,
            "current_allowance": str(self.current_allowance),
            "is_unlimited": self.is_unlimited,
            "mutation_count": self.mutation_count,
            "first_seen_at": self.first_seen_at,
            "last_modified_at": self.last_modified_at,
            "first_seen_block": self.first_seen_block,
            "last_modified_block": self.last_modified_block,
            "last_transaction_hash": self.last_transaction_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalPairState":
        return cls(
            token_address=data["token_address"],
            spender=data["spender"],
            current_allowance=int(data["current_allowance"]),
            is_unlimited=bool(data["is_unlimited"]),
            mutation_count=int(data.get("mutation_count", 1)),
            first_seen_at=data.get("first_seen_at"),
            last_modified_at=data.get("last_modified_at"),
            first_seen_block=int(data.get("first_seen_block", 0)),
            last_modified_block=int(data.get("last_modified_block", 0)),
            last_transaction_hash=data.get("last_transaction_hash", ""),
        )


# ----------------------------------------------------------------------------
# Enrichment
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Enrichment:
    """Optional facts about a pair gathered outside the core.

    Every field has a default meaning "unknown". A missing enrichment bundle
    is equivalent to ``Enrichment()``: the spender counts as unverified and
    no value or usage signal is available.
    """

    VERSION = 1

    spender_verified: Optional[bool] = None
    usd_value: Optional[float] = None
    known_malicious: bool = False
    # Unix time of the last observed spend by the spender, if usage was fetched.
    last_used_at: Optional[int] = None
    # False means usage was looked up and none was found.
    usage_observed: Optional[bool] = None
    token_symbol: str = "UNKNOWN"
    token_decimals: int = 18
    spender_label: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "spender_verified": self.spender_verified,
            "usd_value": self.usd_value,
            "known_malicious": self.known_malicious,
            "last_used_at": self.last_used_at,
            "usage_observed": self.usage_observed,
            "token_symbol": self.token_symbol,
            "token_decimals": self.token_decimals,
            "spender_label": self.spender_label,
        }


# ----------------------------------------------------------------------------
# Scoring output
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class RiskFactor:
    """One contributing signal. ``raw_score`` is in points (0-100 scale)."""

    kind: RiskFactorKind
    raw_score: float
    weight: float
    description: str

    @property
    def contribution(self) -> float:
        return self.raw_score * self.weight

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "raw_score": self.raw_score,
            "weight": self.weight,
            "contribution": round(self.contribution, 4),
            "description": self.description,
        }


@dataclass(frozen=True)
class RiskAssessment:
    overall_score: int
    level: RiskLevel
    factors: Tuple[RiskFactor, ...]
    recommendation: str

    @property
    def factor_kinds(self) -> List[RiskFactorKind]:
        return [f.kind for f in self.factors]

    def has_factor(self, kind: RiskFactorKind) -> bool:
        return any(f.kind == kind for f in self.factors)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "level": self.level.value,
            "factors": [f.as_dict() for f in self.factors],
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class RevocationRecommendation:
    state: ApprovalPairState
    assessment: RiskAssessment
    should_revoke: bool
    urgency: Urgency
    priority_score: float
    reason: str
    estimated_gas: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "token_address": self.state.token_address,
            "spender": self.state.spender,
            "current_allowance": str(self.state.current_allowance),
            "is_unlimited": self.state.is_unlimited,
            "overall_score": self.assessment.overall_score,
            "level": self.assessment.level.value,
            "should_revoke": self.should_revoke,
            "urgency": self.urgency.value,
            "priority_score": self.priority_score,
            "reason": self.reason,
            "recommendation": self.assessment.recommendation,
            "factors": [f.as_dict() for f in self.assessment.factors],
            "estimated_gas": self.estimated_gas,
        }


@dataclass(frozen=True)
class WalletSummary:
    total_approvals: int
    level_counts: Dict[str, int]
    revoke_count: int
    overall_score: int
    overall_level: RiskLevel
    unlimited_count: int = 0
    urgency_counts: Dict[str, int] = field(default_factory=dict)
    estimated_gas: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_approvals": self.total_approvals,
            "level_counts": dict(self.level_counts),
            "revoke_count": self.revoke_count,
            "overall_score": self.overall_score,
            "overall_level": self.overall_level.value,
            "unlimited_count": self.unlimited_count,
            "urgency_counts": dict(self.urgency_counts),
            "estimated_gas": self.estimated_gas,
        }


@dataclass(frozen=True)
class ScanReport:
    """Everything one wallet scan produced, ready for rendering."""

    owner: str
    chain_id: int
    generated_at: int
    states: Tuple[ApprovalPairState, ...]
    recommendations: Tuple[RevocationRecommendation, ...]
    summary: WalletSummary
    dropped_records: int = 0
    history: Optional[Any] = None

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "owner": self.owner,
            "chain_id": self.chain_id,
            "generated_at": self.generated_at,
            "summary": self.summary.as_dict(),
            "recommendations": [r.as_dict() for r in self.recommendations],
            "dropped_records": self.dropped_records,
        }
        if self.history is not None:
            data["history"] = self.history.as_dict()
        return data
