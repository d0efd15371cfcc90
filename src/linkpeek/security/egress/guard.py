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
"""Egress guard -- decides whether a URL is safe for the fetcher to contact.

The same check runs for the navigation target and for every sub-request
the browser issues while rendering. Steps, stopping at the first failure:

  1. Parse the URL
  2. Scheme must be http or https
  3. A hostname must be present
  4. IP literal: classify it directly, no DNS
  5. Otherwise resolve (cached) to all A and AAAA addresses
  6. Deny if ANY resolved address is in a forbidden range

"Any forbidden" rather than "all forbidden": the connection may use any
of the returned records, and the answer can change between this check
and the connect (DNS rebinding), so the whole set must be clean.

Expected denials are returned as Denied(reason). Only infrastructure
failures (e.g. the cache itself breaking) raise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union
from urllib.parse import SplitResult, urlsplit

from linkpeek.errors import ResolutionError

from .classifier import is_forbidden, is_ip_literal
from .resolution_cache import ResolutionCache, normalize_hostname
from .resolver import HostResolver, Resolver

logger = logging.getLogger("linkpeek.security.egress.guard")

ALLOWED_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True)
class Allowed:
    """The URL may be fetched."""

    url: SplitResult

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {"ok": True}


@dataclass(frozen=True)
class Denied:
    """The URL must not be fetched; reason is safe to show to callers."""

    reason: str

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {"ok": False, "reason": self.reason}


ValidationOutcome = Union[Allowed, Denied]


def parse_url(candidate: str) -> SplitResult:
    """Parse an absolute URL the way a browser would see its host.

    Browsers treat a backslash as a path separator in http(s) URLs, so
    "http://127.0.0.1\\@example.com" navigates to 127.0.0.1. Normalize
    it before splitting so both sides agree on the hostname.

    Raises:
        ValueError: the string is not an absolute URL.
    """
    text = candidate.strip()
    scheme, sep, rest = text.partition(":")
    if sep and scheme.lower() in ALLOWED_SCHEMES:
        text = f"{scheme}:{rest.replace(chr(92), '/')}"
    parts = urlsplit(text)
    if not parts.scheme:
        raise ValueError("missing scheme")
    # Malformed ports only surface when .port is read.
    _ = parts.port
    return parts


class EgressGuard:
    """URL validator with a shared resolution cache."""

    def __init__(
        self,
        cache: ResolutionCache | None = None,
        resolver: Resolver | None = None,
    ) -> None:
        self._cache = cache or ResolutionCache()
        self._resolver = resolver or HostResolver()

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    async def validate(self, candidate_url: str) -> ValidationOutcome:
        """Validate a URL for server-side fetching."""
        try:
            parsed = parse_url(candidate_url)
        except ValueError as exc:
            return Denied(f'Invalid URL "{candidate_url}": {exc}')

        display = parsed.geturl()
        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            return Denied(f"Unsupported protocol for URL: {display}")

        hostname = parsed.hostname or ""
        if not hostname:
            return Denied(f"URL {display} must include a hostname")

        # Literal addresses skip DNS entirely.
        if is_ip_literal(hostname):
            if is_forbidden(hostname):
                return Denied(f"Refusing to access forbidden IP address {hostname}")
            return Allowed(parsed)

        host = normalize_hostname(hostname)
        records = self._cache.get(host)
        if records is None:
            try:
                resolved = await self._resolver.resolve(host)
            except ResolutionError as exc:
                return Denied(f"Failed to resolve hostname {host}: {exc}")
            self._cache.set(host, resolved)
            records = tuple(resolved)

        if not records:
            return Denied(f"DNS lookup for {host} did not return any addresses")

        for record in records:
            if is_forbidden(record):
                return Denied(
                    f"Refusing to access forbidden resolved address {record} for host {host}"
                )

        return Allowed(parsed)

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, int]:
        return self._cache.stats()
