# Linkpeek
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
#
# This file is part of Linkpeek.
#
# Linkpeek is dual-licensed:
#
# 1. Open Source: GNU Affero General Public License v3.0 (AGPL-3.0)
#    You may use, modify, and distribute this file under AGPL-3.0.
#    See LICENSE for the full text.
#
# 2. Commercial: Available from Phoenix Link (Pty) Ltd
#    For proprietary use, SaaS deployment, or enterprise licensing.
#    See LICENSE-ENTERPRISE.md or contact info@phoenixlink.co.za
#
# Contributions require a signed CLA. See COPYRIGHT.md and CLA.md.
"""Resolution cache -- hostname to resolved addresses, bounded and expiring.

Only successful resolutions are stored. Each entry carries its own TTL;
when the cache is full the least recently used entry goes first,
regardless of how much TTL it has left.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from cachetools import TLRUCache

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_ENTRIES = 1000


@dataclass(frozen=True)
class ResolutionCacheEntry:
    """A successful resolution of one hostname."""

    addresses: tuple[str, ...]
    inserted_at: float
    ttl: float


def normalize_hostname(hostname: str) -> str:
    """DNS names are case-insensitive; a trailing root dot is redundant."""
    return hostname.strip().rstrip(".").lower()


def _expires_at(_key: str, entry: ResolutionCacheEntry, now: float) -> float:
    return now + entry.ttl


class ResolutionCache:
    """Thread-safe LRU cache of DNS results with per-entry expiry."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max_entries
        self._default_ttl = ttl_seconds
        self._timer = timer
        self._entries: TLRUCache = TLRUCache(
            maxsize=max_entries, ttu=_expires_at, timer=timer
        )
        self._lock = threading.Lock()

    def get(self, hostname: str) -> tuple[str, ...] | None:
        """Return the cached addresses, or None on a miss or expired entry."""
        key = normalize_hostname(hostname)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.addresses

    def set(self, hostname: str, addresses: Iterable[str], ttl: float | None = None) -> None:
        """Store a resolution, replacing any previous entry for the host."""
        key = normalize_hostname(hostname)
        records = tuple(addresses)
        if not records:
            return
        entry = ResolutionCacheEntry(
            addresses=records,
            inserted_at=self._timer(),
            ttl=self._default_ttl if ttl is None else ttl,
        )
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int]:
        with self._lock:
            self._entries.expire()
            size = len(self._entries)
        return {"size": size, "max": self._max_entries}
