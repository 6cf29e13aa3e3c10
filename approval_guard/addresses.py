"""
addresses.py
============

Address helpers. The canonical address form used throughout the package is
lower-case hex with the ``0x`` prefix; log data from different providers
mixes checksummed and lower-case casing, so every comparison goes through
:func:`normalize_address` first.
"""

from __future__ import annotations

import re
from typing import Optional

from approval_guard.errors import ErrorCode, ValidationError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TOPIC_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def clean_address(addr: str) -> str:
    """Normalise an Ethereum address to lower-case without the 0x prefix."""
    if addr.startswith("0x") or addr.startswith("0X"):
        addr = addr[2:]
    return addr.lower()


def is_valid_address(addr: object) -> bool:
    return isinstance(addr, str) and bool(_ADDRESS_RE.match(addr))


def normalize_address(addr: str) -> str:
    """Return the canonical (lower-case, 0x-prefixed) form of ``addr``.

    Raises ValueError if ``addr`` is not a 20-byte hex address.
    """
    if not isinstance(addr, str):
        raise ValueError(f"address must be a string, got {type(addr).__name__}")
    addr = addr.strip()
    if addr[:2] == "0X":
        addr = "0x" + addr[2:]
    if not _ADDRESS_RE.match(addr):
        raise ValueError(f"not a valid address: {addr!r}")
    return addr.lower()


def validate_address(addr: Optional[str], field: str = "address") -> str:
    """Validate ``addr`` at an API boundary and return its canonical form."""
    if addr is None or (isinstance(addr, str) and not addr.strip()):
        raise ValidationError(
            f"{field} is required", field=field, code=ErrorCode.INVALID_ADDRESS
        )
    try:
        return normalize_address(addr)
    except ValueError:
        raise ValidationError(
            f'{field} "{addr}" is not a valid Ethereum address',
            field=field,
            code=ErrorCode.INVALID_ADDRESS,
        ) from None


def topic_to_address(topic: str) -> Optional[str]:
    """Decode an indexed address topic (32-byte word) into an address.

    The address is the lower 20 bytes of the word. Returns None when the
    topic is not a 32-byte hex string.
    """
    if not isinstance(topic, str) or not _TOPIC_RE.match(topic):
        return None
    if topic.startswith("0x"):
        topic = topic[2:]
    return "0x" + topic[-40:].lower()


def address_to_topic(addr: str) -> str:
    """Left pad an address into a 32-byte topic for log filters."""
    return "0x" + clean_address(addr).rjust(64, "0")


def shorten_address(addr: str, chars: int = 4) -> str:
    """Shorten an address for display, e.g. ``0x1234...5678``."""
    if not is_valid_address(addr):
        return addr
    return f"{addr[:chars + 2]}...{addr[-chars:]}"
