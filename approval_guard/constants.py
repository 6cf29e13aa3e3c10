"""
constants.py
============

Chain-level constants, ABI selectors and read-only registries of well-known
tokens and spender contracts. Registries are exposed as read-only mappings;
the scoring engine receives the policy values it needs through
:class:`approval_guard.scoring.RiskScoringConfig`, never by reading mutable
module state.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping


# ----------------------------------------------------------------------------
# ERC-20 event topics and function selectors
# ----------------------------------------------------------------------------

# keccak("Approval(address,address,uint256)")
APPROVAL_TOPIC = (
    "0x8c5be1e5ebec7d5bd14f714f22dc3bd3f1fc0cf11088a7c6c1559617d7e604bb"
)
NAME_SELECTOR = "0x06fdde03"      # keccak("name()")[:4]
SYMBOL_SELECTOR = "0x95d89b41"    # keccak("symbol()")[:4]
DECIMALS_SELECTOR = "0x313ce567"  # keccak("decimals()")[:4]

MAX_UINT256 = 2 ** 256 - 1

# Allowances at or above half of the uint256 range are treated as unlimited.
UNLIMITED_THRESHOLD = 2 ** 255

# Gas used by a typical ERC-20 approve(spender, 0) call.
REVOKE_GAS_ESTIMATE = 45_000

SECONDS_PER_DAY = 86_400


# ----------------------------------------------------------------------------
# Chains
# ----------------------------------------------------------------------------

SUPPORTED_CHAINS: Mapping[int, str] = MappingProxyType(
    {
        1: "mainnet",
        10: "optimism",
        56: "bsc",
        137: "polygon",
        8453: "base",
        42161: "arbitrum",
    }
)


# ----------------------------------------------------------------------------
# Registries (lower-case addresses)
# ----------------------------------------------------------------------------

# Widely used router and protocol contracts on mainnet. Approvals to these
# are treated as going to a verified spender.
KNOWN_SPENDERS: Mapping[str, str] = MappingProxyType(
    {
        "0x7a250d5630b4cf539739df2c5dacb4c659f2488d": "Uniswap V2 Router",
        "0xe592427a0aece92de3edee1f18e0157c05861564": "Uniswap V3 Router",
        "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45": "Uniswap V3 SwapRouter02",
        "0x000000000022d473030f116ddee9f6b43ac78ba3": "Uniswap Permit2",
        "0xd9e1ce17f2641f24ae83637ab66a2cca9c378b9f": "SushiSwap Router",
        "0x1111111254eeb25477b68fb85ed929f73a960582": "1inch Aggregation Router V5",
        "0xdef1c0ded9bec7f1a1670819833240f027b25eff": "0x Exchange Proxy",
        "0x7d2768de32b0b80b7a3454c06bdac139dff81b6c": "Aave LendingPoolV2",
        "0x87870bca3f3fd6335c3f4ce8392d69350b4fa4e2": "Aave V3 Pool",
        "0x8731d54e9d02c286767d56ac03e8037c07e01e98": "Stargate Router",
        "0xba12222222228d8ba445958a75a0704d566bf2c8": "Balancer Vault",
    }
)

KNOWN_TOKENS: Mapping[str, Mapping[str, object]] = MappingProxyType(
    {
        "0xdac17f958d2ee523a2206206994597c13d831ec7": MappingProxyType(
            {"name": "Tether USD", "symbol": "USDT", "decimals": 6}
        ),
        "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": MappingProxyType(
            {"name": "USD Coin", "symbol": "USDC", "decimals": 6}
        ),
        "0x6b175474e89094c44da98b954eedeac495271d0f": MappingProxyType(
            {"name": "Dai Stablecoin", "symbol": "DAI", "decimals": 18}
        ),
        "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599": MappingProxyType(
            {"name": "Wrapped BTC", "symbol": "WBTC", "decimals": 8}
        ),
        "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": MappingProxyType(
            {"name": "Wrapped Ether", "symbol": "WETH", "decimals": 18}
        ),
    }
)
