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
"""Host resolver -- A and AAAA lookups with a hard timeout.

Both families are queried concurrently. Resolution succeeds when either
family returns at least one address; it fails only when both lookups
fail or come back empty, and the error then carries both messages.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from typing import Protocol

from linkpeek.errors import ResolutionError

logger = logging.getLogger("linkpeek.security.egress.resolver")

DEFAULT_TIMEOUT_MS = 3000

# (hostname, family) -> addresses
LookupFunc = Callable[[str, int], Awaitable[list[str]]]

_FAMILY_LABELS = {socket.AF_INET: "A", socket.AF_INET6: "AAAA"}


class Resolver(Protocol):
    async def resolve(self, hostname: str) -> list[str]: ...


async def getaddrinfo_lookup(hostname: str, family: int) -> list[str]:
    """Resolve one address family through the event loop's getaddrinfo."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, family=family, type=socket.SOCK_STREAM)
    addresses: list[str] = []
    for info in infos:
        address = info[4][0]
        if address not in addresses:
            addresses.append(address)
    return addresses


class HostResolver:
    """Concurrent dual-stack resolver bounded by a per-lookup timeout."""

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        lookup: LookupFunc | None = None,
    ) -> None:
        self._timeout = timeout_ms / 1000.0
        self._timeout_ms = timeout_ms
        self._lookup = lookup or getaddrinfo_lookup

    async def _lookup_family(self, hostname: str, family: int) -> list[str]:
        label = _FAMILY_LABELS.get(family, str(family))
        try:
            return await asyncio.wait_for(self._lookup(hostname, family), self._timeout)
        except asyncio.TimeoutError:
            raise ResolutionError(
                f"{label} lookup for {hostname} timed out after {self._timeout_ms}ms"
            ) from None
        except socket.gaierror as exc:
            raise ResolutionError(f"{label} lookup for {hostname} failed: {exc.strerror or exc}") from exc
        except OSError as exc:
            raise ResolutionError(f"{label} lookup for {hostname} failed: {exc}") from exc
        except ValueError as exc:
            # IDNA encoding rejects empty or over-long labels before any query is sent
            raise ResolutionError(f"{label} lookup for {hostname} failed: invalid hostname ({exc})") from exc

    async def resolve(self, hostname: str) -> list[str]:
        """Return every A and AAAA address for hostname.

        Raises:
            ResolutionError: both lookups failed or returned nothing.
        """
        results = await asyncio.gather(
            self._lookup_family(hostname, socket.AF_INET),
            self._lookup_family(hostname, socket.AF_INET6),
            return_exceptions=True,
        )

        addresses: list[str] = []
        errors: list[str] = []
        for result in results:
            if isinstance(result, ResolutionError):
                errors.append(str(result))
            elif isinstance(result, BaseException):
                raise result
            else:
                addresses.extend(result)

        if addresses:
            return addresses

        if errors:
            message = "; ".join(errors)
        else:
            message = "DNS lookup did not return any A or AAAA records"
        logger.debug("Resolution failed for %s: %s", hostname, message)
        raise ResolutionError(message)
