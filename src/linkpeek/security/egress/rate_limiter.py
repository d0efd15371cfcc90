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
"""Admission limiter -- per-caller sliding-window request budget.

Each caller identity (normally the client IP) keeps the timestamps of
its recent requests. Timestamps older than the window are dropped lazily
on every check; there is no background sweep. A caller whose window is
full is told how long until its oldest request ages out.

The identity store is bounded (oldest identities evicted first) and an
idle identity disappears after one window.
"""

from __future__ import annotations

import logging
import math
import threading
import time
import zlib
from collections.abc import Callable
from dataclasses import dataclass

from cachetools import TTLCache

logger = logging.getLogger("linkpeek.security.egress.rate_limiter")

DEFAULT_MAX_REQUESTS = 5
DEFAULT_WINDOW_MS = 60_000
DEFAULT_MAX_IDENTITIES = 10_000
UNKNOWN_IDENTITY = "unknown"

_LOCK_STRIPES = 64


@dataclass
class RateLimitResult:
    """Result of an admission check."""

    allowed: bool
    reason: str = ""
    retry_after_seconds: int | None = None
    count: int = 0  # Requests in the window, including this one when allowed
    limit: int = 0

    def to_dict(self) -> dict:
        if self.allowed:
            return {"allowed": True}
        return {"allowed": False, "retry_after_seconds": self.retry_after_seconds}


class AdmissionLimiter:
    """Thread-safe sliding-window limiter keyed by caller identity.

    Checks for the same identity are serialized so two concurrent
    requests cannot both take the last slot. Identities hash onto a
    fixed set of lock stripes, so unrelated callers rarely wait on
    each other; the store lock is only held for single get/set calls.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        max_identities: int = DEFAULT_MAX_IDENTITIES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_requests = max_requests
        self._window_ms = window_ms
        self._max_identities = max_identities
        self._clock = clock
        self._store: TTLCache = TTLCache(
            maxsize=max_identities, ttl=window_ms / 1000.0, timer=clock
        )
        self._store_lock = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _stripe(self, identity: str) -> threading.Lock:
        return self._stripes[zlib.crc32(identity.encode("utf-8")) % _LOCK_STRIPES]

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def allow(self, identity: str | None, now_ms: int | None = None) -> RateLimitResult:
        """Record a request for identity if it is within budget.

        The trimmed timestamp list is written back even when the request
        is denied, so stale entries never accumulate.
        """
        identity = identity or UNKNOWN_IDENTITY
        now = self._now_ms() if now_ms is None else now_ms
        window_start = now - self._window_ms

        with self._stripe(identity):
            with self._store_lock:
                previous = self._store.get(identity, ())
            timestamps = [t for t in previous if t > window_start]

            if len(timestamps) >= self._max_requests:
                with self._store_lock:
                    self._store[identity] = tuple(timestamps)
                oldest = min(timestamps)
                retry_after = math.ceil((oldest + self._window_ms - now) / 1000)
                logger.warning(
                    "Rate limit exceeded for %s: %d/%d in %dms",
                    identity,
                    len(timestamps),
                    self._max_requests,
                    self._window_ms,
                )
                return RateLimitResult(
                    allowed=False,
                    reason=f"Rate limit exceeded for {identity} "
                    f"({len(timestamps)}/{self._max_requests} per {self._window_ms}ms)",
                    retry_after_seconds=retry_after,
                    count=len(timestamps),
                    limit=self._max_requests,
                )

            timestamps.append(now)
            with self._store_lock:
                self._store[identity] = tuple(timestamps)

        return RateLimitResult(
            allowed=True,
            count=len(timestamps),
            limit=self._max_requests,
        )

    def reset(self, identity: str | None = None) -> None:
        """Forget one identity, or every identity when None."""
        with self._store_lock:
            if identity is None:
                self._store.clear()
            else:
                self._store.pop(identity, None)

    def clear(self) -> None:
        self.reset()

    def stats(self) -> dict[str, int]:
        with self._store_lock:
            self._store.expire()
            size = len(self._store)
        return {"size": size, "max": self._max_identities}
