"""
config.py
=========

Runtime settings read from the environment (and a ``.env`` file, if one is
present in the working directory). Command line flags override these.

    ETH_RPC_URL                 JSON-RPC endpoint (required to scan)
    CHAIN_ID                    chain id, default 1
    ETHERSCAN_API_KEY           enables spender source-verification lookups
    ETHERSCAN_API_URL           explorer API base, default Etherscan v2
    APPROVAL_GUARD_CACHE_DIR    directory for cached scan results
    APPROVAL_GUARD_CACHE_TTL    cache lifetime in seconds, default 300
    APPROVAL_GUARD_MAX_WORKERS  parallel lookups, default 4
    APPROVAL_GUARD_BATCH_SIZE   blocks per eth_getLogs call, default 10000
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from approval_guard.constants import SUPPORTED_CHAINS
from approval_guard.errors import ConfigError, ErrorCode, ValidationError

DEFAULT_CACHE_DIR = os.path.join(os.path.expanduser("~"), ".cache", "approval-guard")
DEFAULT_EXPLORER_URL = "https://api.etherscan.io/v2/api"


@dataclass(frozen=True)
class Settings:
    rpc_url: Optional[str] = None
    chain_id: int = 1
    etherscan_api_key: Optional[str] = None
    etherscan_api_url: str = DEFAULT_EXPLORER_URL
    cache_dir: str = DEFAULT_CACHE_DIR
    cache_ttl: int = 300
    max_workers: int = 4
    batch_size: int = 10000

    @property
    def chain_name(self) -> str:
        return SUPPORTED_CHAINS[self.chain_id]

    def require_rpc_url(self) -> str:
        if not self.rpc_url:
            raise ConfigError(
                "ETH_RPC_URL environment variable or --rpc is required",
                key="ETH_RPC_URL",
            )
        return self.rpc_url


def validate_chain_id(chain_id: int) -> int:
    if chain_id not in SUPPORTED_CHAINS:
        supported = ", ".join(str(c) for c in SUPPORTED_CHAINS)
        raise ValidationError(
            f"Unsupported chain ID: {chain_id}. Supported chains: {supported}",
            field="chain_id",
            code=ErrorCode.INVALID_CHAIN_ID,
        )
    return chain_id


def _positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}", key=key) from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}", key=key)
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``env`` (defaults to ``os.environ``).

    When reading the real environment a ``.env`` file is loaded first;
    variables already set take precedence over it.
    """
    if env is None:
        load_dotenv()
        env = os.environ
    chain_id = _positive_int(env, "CHAIN_ID", 1)
    try:
        validate_chain_id(chain_id)
    except ValidationError as e:
        raise ConfigError(e.message, key="CHAIN_ID") from None
    return Settings(
        rpc_url=env.get("ETH_RPC_URL") or None,
        chain_id=chain_id,
        etherscan_api_key=env.get("ETHERSCAN_API_KEY") or None,
        etherscan_api_url=env.get("ETHERSCAN_API_URL") or DEFAULT_EXPLORER_URL,
        cache_dir=env.get("APPROVAL_GUARD_CACHE_DIR") or DEFAULT_CACHE_DIR,
        cache_ttl=_positive_int(env, "APPROVAL_GUARD_CACHE_TTL", 300),
        max_workers=_positive_int(env, "APPROVAL_GUARD_MAX_WORKERS", 4),
        batch_size=_positive_int(env, "APPROVAL_GUARD_BATCH_SIZE", 10000),
    )
