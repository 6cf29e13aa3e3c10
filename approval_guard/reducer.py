"""
reducer.py
==========

Folds a wallet's approval events into the current allowance of every
(token, spender) pair.

Log pages can arrive out of block order and the same log can be delivered
twice, so the reducer never trusts input order except as the tie-break for
events mined in the same block: within a pair, events are applied in
``(block_number, input position)`` order and the last one applied wins.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple

from approval_guard.addresses import validate_address
from approval_guard.constants import UNLIMITED_THRESHOLD
from approval_guard.models import (
    ApprovalPairState,
    NormalizedApprovalEvent,
    PairKey,
)


def owner_events(
    owner: str, events: Iterable[NormalizedApprovalEvent]
) -> List[NormalizedApprovalEvent]:
    """Events emitted for ``owner``, in input order, each log kept once."""
    unique: List[NormalizedApprovalEvent] = []
    seen: Set[tuple] = set()
    for event in events:
        if event.owner.lower() != owner:
            continue
        identity = event.identity()
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(event)
    return unique


def _group_events(
    owner: str, events: Iterable[NormalizedApprovalEvent]
) -> Dict[PairKey, List[Tuple[int, NormalizedApprovalEvent]]]:
    groups: Dict[PairKey, List[Tuple[int, NormalizedApprovalEvent]]] = {}
    for position, event in enumerate(owner_events(owner, events)):
        key = PairKey.of(event.token_address, event.spender)
        groups.setdefault(key, []).append((position, event))
    return groups


def _fold(
    key: PairKey,
    ordered: List[NormalizedApprovalEvent],
    unlimited_threshold: int,
) -> ApprovalPairState:
    first = ordered[0]
    state = ApprovalPairState(
        token_address=key.token_address,
        spender=key.spender,
        current_allowance=first.value,
        is_unlimited=first.value >= unlimited_threshold,
        mutation_count=1,
        first_seen_at=first.timestamp,
        last_modified_at=first.timestamp,
        first_seen_block=first.block_number,
        last_modified_block=first.block_number,
        last_transaction_hash=first.transaction_hash,
    )
    for event in ordered[1:]:
        # A re-approval after a revocation continues the same pair: the
        # counter keeps accumulating and first_seen_at stays untouched.
        state.current_allowance = event.value
        state.is_unlimited = event.value >= unlimited_threshold
        state.mutation_count += 1
        state.last_modified_block = event.block_number
        state.last_transaction_hash = event.transaction_hash
        # An unknown block time stays unknown.
        state.last_modified_at = event.timestamp
        if state.first_seen_at is None:
            state.first_seen_at = event.timestamp
    return state


def reduce_approvals(
    owner: Optional[str],
    events: Iterable[NormalizedApprovalEvent],
    include_zero_allowances: bool = False,
    unlimited_threshold: int = UNLIMITED_THRESHOLD,
) -> Dict[PairKey, ApprovalPairState]:
    """Reduce ``events`` for ``owner`` to one state per (token, spender).

    Events belonging to other owners and duplicate deliveries of the same
    log are skipped. Pairs whose final allowance is zero are fully revoked
    and left out unless ``include_zero_allowances`` is set. The returned
    mapping is ordered by key so repeated runs produce identical output.

    Raises ValidationError if ``owner`` is missing or malformed.
    """
    owner = validate_address(owner, field="owner")
    groups = _group_events(owner, events)

    states: Dict[PairKey, ApprovalPairState] = {}
    for key in sorted(groups):
        entries = sorted(groups[key], key=lambda e: (e[1].block_number, e[0]))
        state = _fold(key, [event for _, event in entries], unlimited_threshold)
        if state.current_allowance == 0 and not include_zero_allowances:
            continue
        states[key] = state
    return states
