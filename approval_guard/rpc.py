"""
rpc.py
======

JSON-RPC transport: fetching ``Approval`` logs for an owner and the block
timestamps the reducer needs. This module talks to the node directly over
HTTP with ``requests``; it does not depend on ``web3.py``.

Transient failures (HTTP 429/5xx, timeouts, dropped connections) are
retried with exponential backoff. A block range that still fails after the
retries is logged and skipped, so the caller may receive a truncated log
list; the analysis pipeline accepts that.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import requests

from approval_guard.addresses import address_to_topic
from approval_guard.constants import APPROVAL_TOPIC
from approval_guard.errors import RpcError
from approval_guard.models import NormalizedApprovalEvent
from approval_guard.normalizer import parse_quantity

logger = logging.getLogger("approval_guard.rpc")


class EthereumRPC:
    """A minimal JSON-RPC client for EVM nodes.

    See https://ethereum.org/en/developers/docs/apis/json-rpc/ for the
    methods used here.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30,
        max_retries: int = 4,
        backoff: float = 0.5,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self.session = session or requests.Session()
        self._sleep = sleep
        self._id_counter = 0

    def _post(self, method: str, params: list):
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            raise RpcError(f"RPC request timed out: {e}") from e
        except requests.RequestException as e:
            raise RpcError(f"RPC connection error: {e}") from e
        if response.status_code != 200:
            retry_after = parse_quantity(response.headers.get("Retry-After", ""))
            raise RpcError(
                f"RPC HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                retry_after=retry_after,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise RpcError(f"invalid JSON-RPC response: {response.text[:200]}") from e
        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                message = f"RPC error {error.get('code')}: {error.get('message')}"
            else:
                message = f"RPC error: {error}"
            raise RpcError(message)
        return data.get("result") if isinstance(data, dict) else data

    def call(self, method: str, params: list):
        """Send one request, retrying transient failures with backoff."""
        attempt = 0
        while True:
            try:
                return self._post(method, params)
            except RpcError as e:
                attempt += 1
                if not e.retryable or attempt > self.max_retries:
                    raise
                delay = self.backoff * (2 ** (attempt - 1))
                if e.retry_after:
                    delay = max(delay, float(e.retry_after))
                logger.warning(
                    f"{method} failed ({e.message}); retry {attempt}/{self.max_retries} in {delay:.1f}s"
                )
                self._sleep(delay)

    def block_number(self) -> int:
        """Return the latest block number."""
        return int(self.call("eth_blockNumber", []), 16)

    def get_logs(self, log_filter: dict) -> List[dict]:
        """Return event logs matching the provided filter."""
        return self.call("eth_getLogs", [log_filter]) or []

    def get_block_timestamp(self, block_number: int) -> Optional[int]:
        block = self.call("eth_getBlockByNumber", [hex(block_number), False])
        if not block:
            return None
        return parse_quantity(block.get("timestamp"))

    def eth_call(self, to: str, data: str) -> str:
        """Perform a call without creating a transaction and return raw hex data."""
        return self.call("eth_call", [{"to": to, "data": data}, "latest"])


def _too_many_results(message: str) -> bool:
    message = message.lower()
    return (
        "query returned more than" in message
        or "limit" in message
        or "response size" in message
        or "range" in message
    )


def get_approval_logs(
    rpc: EthereumRPC,
    owner: str,
    from_block: int = 0,
    to_block: Optional[int] = None,
    batch_size: int = 10000,
) -> Iterator[dict]:
    """Yield Approval event logs for the owner between block ranges.

    The range is split into batches to stay under provider limits; when a
    provider reports too many results the batch size for that segment is
    halved. Filters by the Approval topic and the owner topic (the first
    indexed parameter).
    """
    latest = to_block if to_block is not None else rpc.block_number()
    owner_topic = address_to_topic(owner)
    start = from_block
    while start <= latest:
        end = min(start + batch_size - 1, latest)
        log_filter = {
            "fromBlock": hex(start),
            "toBlock": hex(end),
            "topics": [APPROVAL_TOPIC, owner_topic],
        }
        try:
            logs = rpc.get_logs(log_filter)
        except RpcError as exc:
            if (
                not exc.retryable
                and _too_many_results(exc.message)
                and batch_size > 100
            ):
                logger.warning(
                    f"Too many logs in batch {start}-{end}; reducing batch size to {batch_size // 2}"
                )
                yield from get_approval_logs(rpc, owner, start, end, batch_size // 2)
                start = end + 1
                continue
            logger.error(
                f"Error fetching logs for block range {start}-{end}: {exc.message}"
            )
            start = end + 1
            continue
        logger.debug(f"Blocks {start}-{end}: {len(logs)} approval logs")
        yield from logs
        start = end + 1


def fetch_block_timestamps(
    rpc: EthereumRPC, block_numbers: Iterable[int], max_workers: int = 4
) -> Dict[int, int]:
    """Look up block timestamps concurrently.

    Blocks whose lookup fails are left out of the result; the reducer then
    works without a timestamp for those events.
    """
    blocks = sorted(set(block_numbers))
    if not blocks:
        return {}

    def lookup(block: int) -> Optional[int]:
        try:
            return rpc.get_block_timestamp(block)
        except RpcError as e:
            logger.warning(f"Could not fetch timestamp for block {block}: {e.message}")
            return None

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        results = list(pool.map(lookup, blocks))
    return {b: ts for b, ts in zip(blocks, results) if ts is not None}


def attach_timestamps(
    events: Iterable[NormalizedApprovalEvent], timestamps: Dict[int, int]
) -> List[NormalizedApprovalEvent]:
    """Return ``events`` with missing timestamps filled from ``timestamps``."""
    resolved = []
    for event in events:
        if event.timestamp is None and event.block_number in timestamps:
            event = replace(event, timestamp=timestamps[event.block_number])
        resolved.append(event)
    return resolved
