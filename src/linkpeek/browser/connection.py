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
"""Browser connection -- remote Chrome over CDP.

Chrome runs in its own container; Linkpeek attaches to it with
Playwright's connect_over_cdp. The connection is established once and
shared; concurrent callers that need it while a connection attempt is
in flight all await that same attempt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from linkpeek.errors import BrowserUnavailableError

logger = logging.getLogger("linkpeek.browser.connection")

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 2.0
CONNECT_TIMEOUT_MS = 5000


async def connect_browser(
    ws_url: str,
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY_SECONDS,
) -> tuple[Any, Any]:
    """Connect to Chrome via CDP, retrying on failure.

    Returns:
        (playwright, browser). The caller owns both and must stop them.

    Raises:
        BrowserUnavailableError: every attempt failed.
    """
    from playwright.async_api import async_playwright

    playwright = await async_playwright().start()
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        try:
            logger.info("Connecting to %s (attempt %d/%d)", ws_url, attempt, max_retries)
            browser = await playwright.chromium.connect_over_cdp(
                ws_url, timeout=CONNECT_TIMEOUT_MS
            )
            logger.info("Connected to browser at %s", ws_url)
            return playwright, browser
        except Exception as exc:
            last_error = exc
            logger.error("Connection attempt %d failed: %s", attempt, exc)
            if attempt < max_retries:
                await asyncio.sleep(retry_delay)

    await playwright.stop()
    raise BrowserUnavailableError(
        f"Failed to connect to browser after {max_retries} attempts: {last_error}"
    )


Connector = Callable[[str], Awaitable[tuple[Any, Any]]]


class BrowserManager:
    """Owns the shared browser connection.

    Usage:
        manager = BrowserManager("http://chrome.localhost:9222")
        browser = await manager.ensure()
        ...
        await manager.close()
    """

    def __init__(self, ws_url: str, connector: Connector | None = None) -> None:
        self._ws_url = ws_url
        self._connector = connector or connect_browser
        self._playwright: Any = None
        self._browser: Any = None
        self._connecting: asyncio.Task | None = None

    def current(self) -> Any:
        """The connected browser, or None."""
        if self._browser is not None and self._browser.is_connected():
            return self._browser
        return None

    def is_ready(self) -> bool:
        return self.current() is not None

    async def _release(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                logger.warning("Error closing browser: %s", exc)
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.warning("Error stopping Playwright: %s", exc)

    async def _connect(self) -> Any:
        if self._browser is not None or self._playwright is not None:
            logger.info("Browser disconnected; releasing stale connection before reconnecting")
            await self._release()
        playwright, browser = await self._connector(self._ws_url)
        self._playwright = playwright
        self._browser = browser
        return browser

    async def ensure(self) -> Any:
        """Return a connected browser, connecting once if needed.

        Raises:
            BrowserUnavailableError: the connection attempt failed.
        """
        browser = self.current()
        if browser is not None:
            return browser

        if self._connecting is None or self._connecting.done():
            self._connecting = asyncio.ensure_future(self._connect())
        try:
            # shield: one caller being cancelled must not cancel the shared attempt
            return await asyncio.shield(self._connecting)
        except BrowserUnavailableError:
            raise
        except Exception as exc:
            raise BrowserUnavailableError(str(exc)) from exc

    async def close(self) -> None:
        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()
        await self._release()
        logger.info("Browser connection closed")
