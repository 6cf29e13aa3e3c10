"""
cache.py
========

On-disk cache of reduced approval state, one JSON file per (owner, chain).

Each entry stores the serialized :class:`ApprovalPairState` list, the block
number the scan covered up to (the watermark) and an expiry time. Expired
entries are treated as missing and removed on access. The analysis code
never depends on the cache; it only offers "get by key, same-or-None".
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from approval_guard.models import ApprovalPairState

logger = logging.getLogger("approval_guard.cache")

CACHE_FORMAT_VERSION = 1


@dataclass(frozen=True)
class CacheEntry:
    owner: str
    chain_id: int
    block_number: int
    created_at: int
    expires_at: int
    states: List[ApprovalPairState]


def cache_key(owner: str, chain_id: int) -> str:
    return f"{owner.lower()}-{chain_id}"


class ApprovalCache:
    def __init__(
        self,
        directory: str,
        ttl_seconds: int = 300,
        max_entries: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def _entry_paths(self) -> List[str]:
        if not os.path.isdir(self.directory):
            return []
        return [
            os.path.join(self.directory, name)
            for name in sorted(os.listdir(self.directory))
            if name.endswith(".json")
        ]

    def _read(self, path: str) -> Optional[Dict]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {path}: {e}")
            return None
        if not isinstance(data, dict) or data.get("version") != CACHE_FORMAT_VERSION:
            return None
        return data

    def get(self, owner: str, chain_id: int) -> Optional[CacheEntry]:
        path = self._path(cache_key(owner, chain_id))
        data = self._read(path) if os.path.exists(path) else None
        if data is None:
            self.misses += 1
            return None
        if data["expires_at"] <= self._clock():
            self._remove(path)
            self.misses += 1
            return None
        self.hits += 1
        return CacheEntry(
            owner=data["owner"],
            chain_id=data["chain_id"],
            block_number=data["block_number"],
            created_at=data["created_at"],
            expires_at=data["expires_at"],
            states=[ApprovalPairState.from_dict(s) for s in data["states"]],
        )

    def set(
        self,
        owner: str,
        chain_id: int,
        states: Sequence[ApprovalPairState],
        block_number: int,
    ) -> None:
        now = int(self._clock())
        payload = {
            "version": CACHE_FORMAT_VERSION,
            "owner": owner.lower(),
            "chain_id": chain_id,
            "block_number": block_number,
            "created_at": now,
            "expires_at": now + self.ttl_seconds,
            "states": [s.as_dict() for s in states],
        }
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(cache_key(owner, chain_id))
        tmp_path = path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"Cached {len(states)} approvals for {owner} at block {block_number}")
        self._enforce_max_entries()

    def _remove(self, path: str) -> bool:
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False

    def _enforce_max_entries(self) -> None:
        paths = self._entry_paths()
        if len(paths) <= self.max_entries:
            return
        created = []
        for path in paths:
            data = self._read(path)
            created.append((data["created_at"] if data else 0, path))
        created.sort()
        for _, path in created[: len(paths) - self.max_entries]:
            self._remove(path)

    def invalidate(self, owner: str, chain_id: int) -> bool:
        return self._remove(self._path(cache_key(owner, chain_id)))

    def invalidate_all(self) -> None:
        for path in self._entry_paths():
            self._remove(path)
        self.hits = 0
        self.misses = 0

    def stats(self) -> Dict[str, float]:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entry_paths()),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
        }
