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
"""Page fetcher -- render one URL in an isolated browser context.

Each fetch gets a fresh context (cookies, storage and cache) that is
closed whether the fetch succeeds or not. Every request the page makes
passes through the RequestGate, and the final URL after redirects is
checked again before any HTML is returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from linkpeek.core.logging import LiveLogger
from linkpeek.errors import LinkpeekError
from linkpeek.security.egress.audit import STAGE_FINAL_URL, AuditEntry, AuditLogger
from linkpeek.security.egress.guard import EgressGuard
from linkpeek.security.egress.request_gate import RequestGate

from .consent import ConsentCookies

logger = logging.getLogger("linkpeek.browser.fetcher")

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1440, "height": 900}
NETWORK_IDLE_TIMEOUT_MS = 5000


class FinalUrlBlockedError(LinkpeekError):
    """The page ended up on a URL the egress guard refuses."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(reason)
        self.url = url
        self.reason = reason


@dataclass
class FetchResult:
    """Rendered page content."""

    html: str
    final_url: str
    status_code: int | None


async def fetch_page(
    browser: Any,
    url: str,
    guard: EgressGuard,
    timeout_ms: int,
    consent: ConsentCookies | None = None,
    audit: AuditLogger | None = None,
    client_ip: str = "",
    live_log: LiveLogger | None = None,
) -> FetchResult:
    """Navigate to url and return the rendered HTML.

    Raises:
        playwright.async_api.TimeoutError: navigation exceeded timeout_ms.
        FinalUrlBlockedError: a redirect landed on a forbidden address.
    """
    context = await browser.new_context(user_agent=USER_AGENT, viewport=VIEWPORT)
    try:
        if consent is not None:
            cookies = consent.cookies_for(url)
            if cookies:
                await context.add_cookies(cookies)

        page = await context.new_page()
        gate = RequestGate(guard, audit=audit, client_ip=client_ip, live_log=live_log)
        await page.route("**/*", gate.handle)

        logger.info("Navigating to: %s", url)
        response = await page.goto(url, timeout=timeout_ms, wait_until="domcontentloaded")
        status_code = response.status if response is not None else None

        # Give late scripts a moment; a busy page is not a failure.
        try:
            await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            logger.debug("Network did not go idle for %s", url)

        final_url = page.url
        outcome = await guard.validate(final_url)
        if not outcome.ok:
            if audit is not None:
                audit.log(AuditEntry.blocked(STAGE_FINAL_URL, final_url, outcome.reason, client_ip))
            if live_log is not None:
                live_log.security(
                    STAGE_FINAL_URL,
                    passed=False,
                    url=final_url,
                    reason=outcome.reason,
                    client_ip=client_ip,
                )
            raise FinalUrlBlockedError(final_url, outcome.reason)

        html = await page.content()
        logger.info(
            "Page loaded, status: %s, content length: %d, blocked sub-requests: %d",
            status_code,
            len(html),
            gate.blocked,
        )
        return FetchResult(html=html, final_url=final_url, status_code=status_code)
    finally:
        await context.close()
