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
"""
Linkpeek -- API Server

FastAPI application factory. Everything stateful (egress guard,
admission limiter, browser connection, audit log) is built once per
app and hung off app.state, so tests can hand in their own.

Run with: linkpeek --port 3000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from linkpeek import __version__
from linkpeek.api._shared import build_state
from linkpeek.api.middleware import (
    AdmissionMiddleware,
    OptionalAuthMiddleware,
    RequestLoggingMiddleware,
)
from linkpeek.api.routes.egress import router as egress_router
from linkpeek.api.routes.fetch import router as fetch_router
from linkpeek.api.routes.health import router as health_router
from linkpeek.browser.connection import BrowserManager
from linkpeek.browser.consent import ConsentCookies
from linkpeek.core.logging import LiveLogger
from linkpeek.errors import BrowserUnavailableError
from linkpeek.security.egress.audit import AuditLogger
from linkpeek.security.egress.config import EgressConfig
from linkpeek.security.egress.guard import EgressGuard
from linkpeek.security.egress.rate_limiter import AdmissionLimiter

logger = logging.getLogger("linkpeek.api.server")


def _validation_details(exc: RequestValidationError) -> list[dict]:
    details = []
    for error in exc.errors():
        # Drop the leading "body"/"query" marker from the location.
        loc = [str(part) for part in error.get("loc", ())][1:]
        details.append({"field": ".".join(loc), "message": error.get("msg", "")})
    return details


def create_app(
    config: Optional[EgressConfig] = None,
    *,
    guard: Optional[EgressGuard] = None,
    limiter: Optional[AdmissionLimiter] = None,
    browser: Optional[BrowserManager] = None,
    consent: Optional[ConsentCookies] = None,
    audit: Optional[AuditLogger] = None,
    live_log: Optional[LiveLogger] = None,
    connect_on_startup: bool = False,
) -> FastAPI:
    """Build the Linkpeek API.

    Args:
        config: Service configuration; defaults when omitted.
        guard, limiter, browser, consent, audit: Pre-built components.
            Anything omitted is constructed from config.
        live_log: Rotating service log for startup, shutdown and requests.
        connect_on_startup: Attach to the browser before serving. A failed
            attempt is logged and retried on the first fetch.
    """
    config = config or EgressConfig()
    state = build_state(
        config,
        guard=guard,
        limiter=limiter,
        browser=browser,
        consent=consent,
        audit=audit,
        live_log=live_log,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if connect_on_startup:
            try:
                await state.browser.ensure()
            except BrowserUnavailableError as exc:
                logger.warning("Browser not reachable at startup: %s", exc)
                if live_log is not None:
                    live_log.warn("Browser", "Not reachable at startup", error=str(exc))
        if live_log is not None:
            live_log.server_start(host=config.host, port=config.port, version=__version__)
        logger.info("Linkpeek %s ready", __version__)
        try:
            yield
        finally:
            await state.browser.close()
            if state.audit is not None:
                state.audit.close()
            if live_log is not None:
                live_log.server_stop()
            logger.info("Linkpeek stopped")

    app = FastAPI(
        title="Linkpeek API",
        description="Render untrusted URLs behind an SSRF egress guard",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.linkpeek = state

    @app.exception_handler(RequestValidationError)
    async def _on_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": _validation_details(exc)},
        )

    # Last added runs first: logging wraps auth, auth wraps admission.
    app.add_middleware(
        AdmissionMiddleware,
        limiter=state.limiter,
        paths=config.rate_limited_paths,
        audit=state.audit,
        live_log=live_log,
    )
    app.add_middleware(OptionalAuthMiddleware, api_key=config.api_key)
    app.add_middleware(RequestLoggingMiddleware, live_log=live_log)

    app.include_router(health_router)
    app.include_router(fetch_router)
    # /api/egress is only mounted behind an API key.
    if config.api_key:
        app.include_router(egress_router)
        logger.info("API key authentication enabled")
    else:
        logger.info("No API key configured; /api/egress routes disabled")

    return app
