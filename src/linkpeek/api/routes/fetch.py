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
"""Linkpeek -- Page Fetch Route.

POST /fetch renders a caller-supplied URL. Admission control runs in
middleware before this handler; the handler itself validates the URL
through the egress guard before touching the browser.
"""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from linkpeek.api._shared import FetchRequest, client_ip, get_state
from linkpeek.browser import fetcher
from linkpeek.errors import BrowserUnavailableError
from linkpeek.security.egress.audit import STAGE_NAVIGATION, AuditEntry

logger = logging.getLogger("linkpeek.api.routes.fetch")

router = APIRouter(tags=["fetch"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/fetch")
async def fetch(body: FetchRequest, request: Request):
    """Render a URL and return its HTML."""
    state = get_state(request)
    caller = client_ip(request)

    try:
        outcome = await state.guard.validate(body.url)
    except Exception:
        logger.exception("Egress guard failed while validating %s", body.url)
        return _error(503, "Egress guard unavailable")

    if not outcome.ok:
        logger.warning("Blocked fetch of %s: %s", body.url, outcome.reason)
        if state.audit is not None:
            state.audit.log(AuditEntry.blocked(STAGE_NAVIGATION, body.url, outcome.reason, caller))
        if state.live_log is not None:
            state.live_log.security(
                STAGE_NAVIGATION, passed=False, url=body.url, reason=outcome.reason, client_ip=caller
            )
        return _error(400, outcome.reason)

    try:
        browser = await state.browser.ensure()
    except BrowserUnavailableError as exc:
        logger.error("Browser unavailable: %s", exc)
        if state.live_log is not None:
            state.live_log.error("Browser", "Browser unavailable", url=body.url, error=str(exc))
        return _error(503, "Browser not available")

    timeout_ms = state.config.clamp_fetch_timeout(body.timeout)
    start = time.monotonic()
    try:
        result = await fetcher.fetch_page(
            browser,
            body.url,
            state.guard,
            timeout_ms,
            consent=state.consent,
            audit=state.audit,
            client_ip=caller,
            live_log=state.live_log,
        )
    except fetcher.FinalUrlBlockedError as exc:
        logger.warning("Redirect from %s landed on blocked URL %s", body.url, exc.url)
        return _error(400, exc.reason)
    except PlaywrightTimeoutError:
        logger.warning("Navigation to %s timed out after %dms", body.url, timeout_ms)
        return _error(504, f"Navigation timed out after {timeout_ms}ms")
    except PlaywrightError as exc:
        logger.warning("Fetch of %s failed: %s", body.url, exc.message)
        if state.live_log is not None:
            state.live_log.error("Browser", "Fetch failed", url=body.url, error=exc.message)
        return _error(502, exc.message)
    except Exception:
        logger.exception("Unexpected error fetching %s", body.url)
        return _error(502, "Failed to fetch page")

    duration_ms = (time.monotonic() - start) * 1000
    if state.audit is not None:
        state.audit.log(AuditEntry.fetched(body.url, result.status_code, duration_ms, caller))
    if state.live_log is not None:
        state.live_log.fetch(
            body.url,
            status=result.status_code,
            latency_ms=int(duration_ms),
            final_url=result.final_url,
            client_ip=caller,
        )

    return {
        "url": body.url,
        "final_url": result.final_url,
        "status_code": result.status_code,
        "html": result.html,
    }
