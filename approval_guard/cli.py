"""
cli.py
======

Command line entry point. Audits the ERC-20 approvals granted by a wallet
and prints a prioritized list of the ones worth revoking. Nothing is ever
signed or sent; revocation is left to the user's wallet or a tool such as
https://revoke.cash.

    approval-guard --address 0x... --rpc https://... [--export out.json]
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import List, Optional

from approval_guard.addresses import validate_address
from approval_guard.cache import ApprovalCache
from approval_guard.config import load_settings, validate_chain_id
from approval_guard.errors import ApprovalGuardError, ConfigError, ValidationError
from approval_guard.metadata import SpenderVerifier, TokenMetadataService, build_enrichment
from approval_guard.models import RiskLevel
from approval_guard.normalizer import normalize_logs
from approval_guard.pipeline import analyze_events, analyze_states, pair_keys
from approval_guard.prioritizer import filter_recommendations
from approval_guard.report import export_report, print_table, render_summary
from approval_guard.rpc import (
    EthereumRPC,
    attach_timestamps,
    fetch_block_timestamps,
    get_approval_logs,
)
from approval_guard.scoring import RiskScoringConfig

logger = logging.getLogger("approval_guard.cli")


def load_denylist(path: str) -> List[str]:
    """Read one address per line; blank lines and ``#`` comments are skipped."""
    addresses = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                entry = line.split("#", 1)[0].strip()
                if not entry:
                    continue
                addresses.append(validate_address(entry, field=f"{path}:{lineno}"))
    except OSError as e:
        raise ConfigError(f"Cannot read denylist {path}: {e}", key="denylist") from e
    return addresses


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="approval-guard",
        description="Audit ERC-20 approvals granted by a wallet and rank the ones to revoke.",
    )
    parser.add_argument("--address", required=True, help="Wallet address to audit (0x...).")
    parser.add_argument(
        "--rpc",
        default=None,
        help="JSON-RPC endpoint (default: $ETH_RPC_URL).",
    )
    parser.add_argument(
        "--chain-id",
        type=int,
        default=None,
        help="Chain id (default: $CHAIN_ID or 1).",
    )
    parser.add_argument(
        "--from-block",
        type=int,
        default=0,
        help="Starting block for log scanning (default: 0).",
    )
    parser.add_argument(
        "--to-block",
        type=int,
        default=None,
        help="Ending block for scanning (default: latest).",
    )
    parser.add_argument(
        "--include-zero",
        action="store_true",
        help="Keep fully revoked approvals in the output.",
    )
    parser.add_argument(
        "--min-score",
        type=int,
        default=0,
        help="Only display approvals scoring at least this much.",
    )
    parser.add_argument(
        "--denylist",
        default=None,
        help="File of known-malicious spender addresses, one per line.",
    )
    parser.add_argument(
        "--export",
        default=None,
        help="Export results to a file (.json, .csv or .txt).",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore and do not update the local scan cache.",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    verbosity.add_argument("--quiet", action="store_true", help="Only log errors.")
    return parser


def run(args: argparse.Namespace) -> int:
    settings = load_settings()
    owner = validate_address(args.address, field="address")
    chain_id = validate_chain_id(args.chain_id or settings.chain_id)
    rpc_url = args.rpc or settings.require_rpc_url()
    denylist = load_denylist(args.denylist) if args.denylist else []
    config = RiskScoringConfig().with_denylist(denylist)

    rpc = EthereumRPC(rpc_url)
    now = int(time.time())
    # Only full default scans are cached; ranged or audit scans always refetch.
    cacheable = (
        not args.no_cache
        and not args.include_zero
        and args.from_block == 0
        and args.to_block is None
    )
    cache = ApprovalCache(settings.cache_dir, settings.cache_ttl) if cacheable else None

    tokens = TokenMetadataService(rpc, max_workers=settings.max_workers)
    verifier = SpenderVerifier(
        api_key=settings.etherscan_api_key,
        api_url=settings.etherscan_api_url,
        chain_id=chain_id,
        max_workers=settings.max_workers,
    )

    cached = cache.get(owner, chain_id) if cache else None
    if cached is not None:
        logger.info(f"Using cached scan up to block {cached.block_number}")
        keys = [s.key for s in cached.states]
        enrichments = build_enrichment(
            keys,
            tokens.get_many(k.token_address for k in keys),
            verifier.verify_many(k.spender for k in keys),
            denylist,
        )
        report = analyze_states(
            owner, cached.states, now, chain_id=chain_id,
            enrichments=enrichments, config=config,
        )
    else:
        to_block = args.to_block if args.to_block is not None else rpc.block_number()
        logger.info(f"Scanning approval logs for {owner} (blocks {args.from_block}-{to_block})...")
        records = list(
            get_approval_logs(rpc, owner, args.from_block, to_block, settings.batch_size)
        )
        events, dropped = normalize_logs(records)
        if dropped:
            logger.warning(f"Skipped {dropped} unparseable log records")
        timestamps = fetch_block_timestamps(
            rpc, (e.block_number for e in events), settings.max_workers
        )
        events = attach_timestamps(events, timestamps)
        keys = pair_keys(events)
        logger.info(f"Found {len(events)} approval events across {len(keys)} token/spender pairs")
        enrichments = build_enrichment(
            keys,
            tokens.get_many(k.token_address for k in keys),
            verifier.verify_many(k.spender for k in keys),
            denylist,
        )
        report = analyze_events(
            owner, events, now, chain_id=chain_id, enrichments=enrichments,
            config=config, include_zero_allowances=args.include_zero,
            dropped_records=dropped,
        )
        if cache is not None:
            cache.set(owner, chain_id, report.states, to_block)

    shown = filter_recommendations(report.recommendations, min_score=args.min_score)
    print_table(report, enrichments, shown)
    print(render_summary(report))
    if report.summary.level_counts.get(RiskLevel.CRITICAL.value) or report.summary.revoke_count:
        print(
            "\nRecommended: revoke the flagged approvals using https://revoke.cash "
            "or a similar allowance manager."
        )
    if args.export:
        export_report(report, args.export, enrichments)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s:%(name)s:%(message)s")
    try:
        return run(args)
    except (ValidationError, ConfigError) as e:
        logger.error(e.message)
        return 2
    except ApprovalGuardError as e:
        logger.error(f"{e.code.value}: {e.message}")
        logger.debug(f"Error details: {e.as_dict()}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
