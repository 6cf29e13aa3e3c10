"""
normalizer.py
=============

Turns raw ``Approval`` log records into :class:`NormalizedApprovalEvent`.

Two record shapes are understood:

* raw ``eth_getLogs`` entries (``address``, ``topics``, ``data``,
  ``blockNumber``, ``transactionHash``, ``logIndex``), where the owner and
  spender are the second and third topics and the value is the first
  32-byte word of ``data``;
* already decoded entries carrying ``owner``, ``spender`` and ``value`` keys,
  as block explorer APIs and some SDKs return them.

A record that cannot be parsed yields ``None``; the caller decides whether
to log it. Nothing here raises for bad input.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from approval_guard.addresses import normalize_address, topic_to_address
from approval_guard.constants import APPROVAL_TOPIC, MAX_UINT256
from approval_guard.models import NormalizedApprovalEvent

_TOKEN_KEYS = ("address", "token_address", "tokenAddress", "contractAddress")
_BLOCK_KEYS = ("blockNumber", "block_number")
_TX_KEYS = ("transactionHash", "transaction_hash", "hash")
_LOG_INDEX_KEYS = ("logIndex", "log_index")
_TIMESTAMP_KEYS = ("blockTimestamp", "timeStamp", "timestamp")


def _first(record: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _as_hex(value: Any) -> Optional[str]:
    """Return ``value`` as a 0x-prefixed hex string if it is bytes-like or str."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return None
    if hasattr(value, "hex") and callable(value.hex):
        # HexBytes and similar wrappers
        text = value.hex()
        return text if text.startswith("0x") else "0x" + text
    return None


def parse_quantity(value: Any) -> Optional[int]:
    """Parse a JSON-RPC quantity given as int, hex string or decimal string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big") if value else None
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if text[:2].lower() == "0x":
            return int(text[2:], 16) if len(text) > 2 else None
        return int(text, 10)
    except ValueError:
        return None


def _parse_value_word(data: Any) -> Optional[int]:
    """Decode the uint256 value from the ``data`` field of a raw log."""
    text = _as_hex(data)
    if text is None:
        return None
    if text.startswith("0x") or text.startswith("0X"):
        text = text[2:]
    if not text:
        return None
    # ERC-20 puts the value in the first 32-byte word; longer payloads come
    # from non-standard tokens.
    try:
        return int(text[:64], 16)
    except ValueError:
        return None


def _from_topics(record: Mapping[str, Any]) -> Optional[Tuple[str, str, int]]:
    topics = record.get("topics")
    if not isinstance(topics, (list, tuple)) or len(topics) < 3:
        return None
    topics = [_as_hex(t) for t in topics]
    if topics[0] is not None and topics[0].lower() != APPROVAL_TOPIC:
        return None
    owner = topic_to_address(topics[1])
    spender = topic_to_address(topics[2])
    value = _parse_value_word(record.get("data"))
    if owner is None or spender is None or value is None:
        return None
    return owner, spender, value


def _from_decoded(record: Mapping[str, Any]) -> Optional[Tuple[str, str, int]]:
    args = record.get("args")
    source = args if isinstance(args, Mapping) else record
    owner = source.get("owner")
    spender = source.get("spender")
    value = parse_quantity(source.get("value"))
    if owner is None or spender is None or value is None:
        return None
    try:
        return normalize_address(owner), normalize_address(spender), value
    except ValueError:
        return None


def normalize_log(record: Any) -> Optional[NormalizedApprovalEvent]:
    """Parse one log record, returning None when it is unusable.

    A record is rejected when it lacks a token address, an owner, a spender,
    a block number or a parseable value, when its first topic is not the
    ``Approval`` signature, when it was marked ``removed`` by a reorg, or
    when the value does not fit in a uint256.
    """
    if not isinstance(record, Mapping):
        return None
    if record.get("removed") is True:
        return None

    if "topics" in record:
        decoded = _from_topics(record)
    else:
        decoded = _from_decoded(record)
    if decoded is None:
        return None
    owner, spender, value = decoded
    if value < 0 or value > MAX_UINT256:
        return None

    token = _first(record, _TOKEN_KEYS)
    try:
        token = normalize_address(token)
    except ValueError:
        return None

    block_number = parse_quantity(_first(record, _BLOCK_KEYS))
    if block_number is None or block_number < 0:
        return None

    tx_hash = _as_hex(_first(record, _TX_KEYS)) or ""
    log_index = parse_quantity(_first(record, _LOG_INDEX_KEYS))
    timestamp = parse_quantity(_first(record, _TIMESTAMP_KEYS))

    return NormalizedApprovalEvent(
        token_address=token,
        owner=owner,
        spender=spender,
        value=value,
        block_number=block_number,
        transaction_hash=tx_hash.lower(),
        log_index=log_index,
        timestamp=timestamp,
    )


def normalize_logs(
    records: Iterable[Any],
) -> Tuple[List[NormalizedApprovalEvent], int]:
    """Normalize a batch, returning ``(events, dropped_count)``.

    Input order is preserved; the reducer relies on it for same-block ties.
    """
    events: List[NormalizedApprovalEvent] = []
    dropped = 0
    for record in records:
        event = normalize_log(record)
        if event is None:
            dropped += 1
        else:
            events.append(event)
    return events, dropped
