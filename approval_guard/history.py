"""
history.py
==========

Descriptive statistics over a wallet's approval history: how many grants
and revocations it made, how old its live approvals are, and which pairs
churn or were never touched again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from approval_guard.constants import SECONDS_PER_DAY
from approval_guard.models import ApprovalPairState, NormalizedApprovalEvent

RECENT_WINDOW_SECONDS = 30 * SECONDS_PER_DAY
FREQUENT_MUTATIONS = 3


@dataclass(frozen=True)
class HistoryAnalysis:
    total_approvals: int
    total_revocations: int
    oldest_approval_at: Optional[int]
    newest_approval_at: Optional[int]
    average_active_age_days: float
    oldest_active: Optional[ApprovalPairState]
    frequently_modified: List[ApprovalPairState] = field(default_factory=list)
    never_modified: List[ApprovalPairState] = field(default_factory=list)
    recent_events: List[NormalizedApprovalEvent] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_approvals": self.total_approvals,
            "total_revocations": self.total_revocations,
            "oldest_approval_at": self.oldest_approval_at,
            "newest_approval_at": self.newest_approval_at,
            "average_active_age_days": round(self.average_active_age_days, 2),
            "oldest_active": (
                self.oldest_active.as_dict() if self.oldest_active else None
            ),
            "frequently_modified": [s.as_dict() for s in self.frequently_modified],
            "never_modified": [s.as_dict() for s in self.never_modified],
            "recent_events": [e.as_dict() for e in self.recent_events],
        }


def analyze_history(
    events: Sequence[NormalizedApprovalEvent],
    states: Iterable[ApprovalPairState],
    now: int,
) -> HistoryAnalysis:
    """Summarise ``events`` and the reduced ``states`` as of ``now``.

    Only states with a non-zero allowance count as active. Events without a
    timestamp are counted but take no part in the time-based figures.
    """
    grants = [e for e in events if not e.is_revocation]
    revocations = [e for e in events if e.is_revocation]
    grant_times = [e.timestamp for e in grants if e.timestamp is not None]

    active = [s for s in states if s.current_allowance > 0]
    dated = [s for s in active if s.first_seen_at is not None]
    ages = [max(0, now - s.first_seen_at) / SECONDS_PER_DAY for s in dated]

    oldest_active = None
    for state in dated:
        if oldest_active is None or state.first_seen_at < oldest_active.first_seen_at:
            oldest_active = state

    cutoff = now - RECENT_WINDOW_SECONDS
    recent = [
        e for e in events if e.timestamp is not None and e.timestamp > cutoff
    ]
    recent.sort(key=lambda e: (e.timestamp, e.block_number), reverse=True)

    return HistoryAnalysis(
        total_approvals=len(grants),
        total_revocations=len(revocations),
        oldest_approval_at=min(grant_times) if grant_times else None,
        newest_approval_at=max(grant_times) if grant_times else None,
        average_active_age_days=sum(ages) / len(ages) if ages else 0.0,
        oldest_active=oldest_active,
        frequently_modified=[
            s for s in active if s.mutation_count > FREQUENT_MUTATIONS
        ],
        never_modified=[s for s in active if s.mutation_count == 1],
        recent_events=recent,
    )
