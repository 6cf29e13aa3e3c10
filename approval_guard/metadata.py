"""
metadata.py
===========

Best-effort enrichment gathered before scoring: token name, symbol and
decimals via ``eth_call``, and whether a spender contract is a known
protocol or has verified source on a block explorer.

Lookups never raise. Any failure falls back to fixed placeholders
(``"Unknown Token"``, ``"UNKNOWN"``, 18 decimals, unverified) so the scoring
engine simply sees "unknown".
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional

import requests

from approval_guard.addresses import normalize_address
from approval_guard.constants import (
    DECIMALS_SELECTOR,
    KNOWN_SPENDERS,
    KNOWN_TOKENS,
    NAME_SELECTOR,
    SYMBOL_SELECTOR,
)
from approval_guard.errors import ApprovalGuardError
from approval_guard.models import Enrichment, PairKey
from approval_guard.rpc import EthereumRPC

logger = logging.getLogger("approval_guard.metadata")

PLACEHOLDER_NAME = "Unknown Token"
PLACEHOLDER_SYMBOL = "UNKNOWN"
PLACEHOLDER_DECIMALS = 18


@dataclass(frozen=True)
class TokenMetadata:
    address: str
    name: str = PLACEHOLDER_NAME
    symbol: str = PLACEHOLDER_SYMBOL
    decimals: int = PLACEHOLDER_DECIMALS
    known: bool = False


def parse_uint(data: Optional[str]) -> Optional[int]:
    """Decode the first 32-byte word of an eth_call result."""
    if not data:
        return None
    if data.startswith("0x"):
        data = data[2:]
    if len(data) < 64:
        return None
    try:
        return int(data[:64], 16)
    except ValueError:
        return None


def decode_abi_string(data: Optional[str]) -> Optional[str]:
    """Decode an ABI ``string`` return value.

    Handles the standard dynamic encoding (offset, length, bytes) and the
    older ``bytes32`` form some tokens (MKR, SAI) return.
    """
    if not data:
        return None
    if data.startswith("0x"):
        data = data[2:]
    try:
        if len(data) >= 128:
            offset = int(data[:64], 16) * 2
            length = int(data[offset:offset + 64], 16)
            raw = bytes.fromhex(data[offset + 64:offset + 64 + length * 2])
        elif len(data) == 64:
            raw = bytes.fromhex(data).rstrip(b"\x00")
        else:
            return None
    except ValueError:
        return None
    text = raw.decode("utf-8", errors="ignore").strip("\x00").strip()
    return text or None


class TokenMetadataService:
    """Resolves token metadata, caching results for the life of the object."""

    def __init__(self, rpc: Optional[EthereumRPC], max_workers: int = 4) -> None:
        self.rpc = rpc
        self.max_workers = max_workers
        self._cache: Dict[str, TokenMetadata] = {}

    def _call(self, token: str, selector: str) -> Optional[str]:
        if self.rpc is None:
            return None
        try:
            return self.rpc.eth_call(token, selector)
        except ApprovalGuardError as e:
            logger.debug(f"eth_call {selector} on {token} failed: {e.message}")
            return None

    def _fetch(self, token: str) -> TokenMetadata:
        known = KNOWN_TOKENS.get(token)
        if known is not None:
            return TokenMetadata(
                address=token,
                name=str(known["name"]),
                symbol=str(known["symbol"]),
                decimals=int(known["decimals"]),
                known=True,
            )
        name = decode_abi_string(self._call(token, NAME_SELECTOR))
        symbol = decode_abi_string(self._call(token, SYMBOL_SELECTOR))
        decimals = parse_uint(self._call(token, DECIMALS_SELECTOR))
        if decimals is None or decimals > 77:
            decimals = PLACEHOLDER_DECIMALS
        if symbol is None:
            logger.warning(f"No symbol for token {token}; using placeholder")
        return TokenMetadata(
            address=token,
            name=name or PLACEHOLDER_NAME,
            symbol=symbol or PLACEHOLDER_SYMBOL,
            decimals=decimals,
        )

    def get(self, token: str) -> TokenMetadata:
        token = normalize_address(token)
        cached = self._cache.get(token)
        if cached is None:
            cached = self._fetch(token)
            self._cache[token] = cached
        return cached

    def get_many(self, tokens: Iterable[str]) -> Dict[str, TokenMetadata]:
        """Resolve several tokens concurrently, keyed by canonical address."""
        unique = sorted({normalize_address(t) for t in tokens})
        missing = [t for t in unique if t not in self._cache]
        if missing:
            with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as pool:
                for token, meta in zip(missing, pool.map(self._fetch, missing)):
                    self._cache[token] = meta
        return {t: self._cache[t] for t in unique}

    def clear(self) -> None:
        self._cache.clear()


class SpenderVerifier:
    """Decides whether a spender is a recognized, source-verified contract.

    Spenders in the built-in registry are trusted outright. Otherwise, when
    an explorer API key is configured, the contract's verification status
    is looked up with ``getsourcecode``. No key, or any failure, counts as
    unverified.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: str = "https://api.etherscan.io/v2/api",
        chain_id: int = 1,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
        max_workers: int = 4,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.chain_id = chain_id
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_workers = max_workers
        self._cache: Dict[str, bool] = {}

    @staticmethod
    def label(spender: str) -> Optional[str]:
        return KNOWN_SPENDERS.get(spender.lower())

    def _lookup(self, spender: str) -> bool:
        if spender in KNOWN_SPENDERS:
            return True
        if not self.api_key:
            return False
        params = {
            "chainid": self.chain_id,
            "module": "contract",
            "action": "getsourcecode",
            "address": spender,
            "apikey": self.api_key,
        }
        try:
            response = self.session.get(self.api_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Verification lookup failed for {spender}: {e}")
            return False
        if not isinstance(payload, dict) or payload.get("status") != "1":
            return False
        result = payload.get("result")
        if not isinstance(result, list) or not result:
            return False
        entry = result[0] if isinstance(result[0], dict) else {}
        return bool(entry.get("SourceCode"))

    def is_verified(self, spender: str) -> bool:
        spender = normalize_address(spender)
        if spender not in self._cache:
            self._cache[spender] = self._lookup(spender)
        return self._cache[spender]

    def verify_many(self, spenders: Iterable[str]) -> Dict[str, bool]:
        unique = sorted({normalize_address(s) for s in spenders})
        missing = [s for s in unique if s not in self._cache]
        if missing:
            with ThreadPoolExecutor(max_workers=max(1, self.max_workers)) as pool:
                for spender, ok in zip(missing, pool.map(self._lookup, missing)):
                    self._cache[spender] = ok
        return {s: self._cache[s] for s in unique}


def build_enrichment(
    keys: Iterable[PairKey],
    tokens: Mapping[str, TokenMetadata],
    verified: Mapping[str, bool],
    denylist: Iterable[str] = (),
    usd_values: Optional[Mapping[PairKey, float]] = None,
) -> Dict[PairKey, Enrichment]:
    """Assemble one :class:`Enrichment` per pair from resolved lookups."""
    deny = {normalize_address(a) for a in denylist}
    usd_values = usd_values or {}
    enrichments: Dict[PairKey, Enrichment] = {}
    for key in keys:
        meta = tokens.get(key.token_address) or TokenMetadata(key.token_address)
        enrichments[key] = Enrichment(
            spender_verified=verified.get(key.spender, False),
            usd_value=usd_values.get(key),
            known_malicious=key.spender in deny,
            token_symbol=meta.symbol,
            token_decimals=meta.decimals,
            spender_label=SpenderVerifier.label(key.spender),
        )
    return enrichments
