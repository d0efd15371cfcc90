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
"""Request gate -- egress checks for every request the browser makes.

Installed as a Playwright route handler on each page. Redirects,
iframes, scripts and XHR that target internal addresses are caught
here, before they leave the browser. A blocked request is aborted on
its own; the page load carries on.
"""

from __future__ import annotations

import logging
from typing import Any

from linkpeek.core.logging import LiveLogger

from .audit import STAGE_SUBREQUEST, AuditEntry, AuditLogger
from .guard import EgressGuard

logger = logging.getLogger("linkpeek.security.egress.request_gate")

# Playwright error code for a request cancelled by the client
BLOCKED_ERROR_CODE = "blockedbyclient"

_NETWORK_PREFIXES = ("http://", "https://")


class RequestGate:
    """Route handler that asks the egress guard about each request."""

    def __init__(
        self,
        guard: EgressGuard,
        audit: AuditLogger | None = None,
        client_ip: str = "",
        live_log: LiveLogger | None = None,
    ) -> None:
        self._guard = guard
        self._audit = audit
        self._live_log = live_log
        self._client_ip = client_ip
        self.blocked = 0
        self.allowed = 0

    async def __call__(self, route: Any) -> None:
        await self.handle(route)

    async def handle(self, route: Any) -> None:
        url = route.request.url

        # data:, blob: and friends never reach the network
        if not url.lower().startswith(_NETWORK_PREFIXES):
            await route.continue_()
            return

        try:
            outcome = await self._guard.validate(url)
        except Exception:
            logger.exception("Egress guard failed for sub-request %s -- blocking", url)
            self._block(url, "Egress guard unavailable")
            await route.abort(BLOCKED_ERROR_CODE)
            return

        if not outcome.ok:
            logger.warning("Blocking sub-request: %s", outcome.reason)
            self._block(url, outcome.reason)
            await route.abort(BLOCKED_ERROR_CODE)
            return

        self.allowed += 1
        await route.continue_()

    def _block(self, url: str, reason: str) -> None:
        self.blocked += 1
        if self._audit is not None:
            self._audit.log(AuditEntry.blocked(STAGE_SUBREQUEST, url, reason, self._client_ip))
        if self._live_log is not None:
            self._live_log.security(
                STAGE_SUBREQUEST, passed=False, url=url, reason=reason, client_ip=self._client_ip
            )
