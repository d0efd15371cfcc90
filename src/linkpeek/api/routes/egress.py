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
"""Egress guard management API routes.

Provides endpoints for:
  - Viewing guard status, store sizes and audit stats
  - Dry-run validation of a URL against the egress policy
  - Clearing the DNS resolution cache and admission windows
  - Viewing recent audit log entries
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from linkpeek.api._shared import ValidateRequest, get_state

logger = logging.getLogger("linkpeek.api.routes.egress")

router = APIRouter(prefix="/api/egress", tags=["egress"])


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/status")
async def get_egress_status(request: Request) -> dict:
    """Current egress configuration and store sizes."""
    state = get_state(request)
    config = state.config
    result = {
        "dns_cache": state.guard.cache_stats(),
        "rate_limit": {
            **state.limiter.stats(),
            "max_requests": state.limiter.max_requests,
            "window_ms": state.limiter.window_ms,
        },
        "dns_timeout_ms": config.dns_timeout_ms,
        "fetch_timeout_ms": config.fetch_timeout_ms,
        "max_fetch_timeout_ms": config.max_fetch_timeout_ms,
        "browser_connected": state.browser.is_ready(),
        "auth_enabled": bool(config.api_key),
        "consent_patterns": state.consent.pattern_count,
    }
    if state.audit is not None:
        result["audit"] = state.audit.get_stats()
    return result


@router.post("/validate")
async def validate_url(body: ValidateRequest, request: Request):
    """Run a URL through the egress guard without fetching it."""
    state = get_state(request)
    try:
        outcome = await state.guard.validate(body.url)
    except Exception:
        logger.exception("Egress guard failed while validating %s", body.url)
        return JSONResponse(status_code=503, content={"error": "Egress guard unavailable"})
    return {"url": body.url, **outcome.to_dict()}


@router.delete("/cache")
async def clear_dns_cache(request: Request) -> dict:
    """Drop every cached hostname resolution."""
    state = get_state(request)
    state.guard.clear_cache()
    logger.info("DNS resolution cache cleared")
    if state.live_log is not None:
        state.live_log.info("Egress", "DNS cache cleared")
    return {"status": "cleared", "dns_cache": state.guard.cache_stats()}


@router.delete("/rate-limit")
async def clear_rate_limit(
    request: Request,
    identity: Optional[str] = Query(default=None, max_length=256),
) -> dict:
    """Reset admission windows for one client, or for everyone."""
    state = get_state(request)
    state.limiter.reset(identity)
    if identity:
        logger.info("Admission window reset for %s", identity)
    else:
        logger.info("All admission windows reset")
    if state.live_log is not None:
        state.live_log.info("Egress", "Admission windows reset", identity=identity or "*")
    return {"status": "cleared", "identity": identity, "rate_limit": state.limiter.stats()}


@router.get("/audit")
async def get_audit_log(
    request: Request,
    limit: int = Query(default=50, ge=1, le=1000),
) -> dict:
    """Recent egress audit log entries."""
    state = get_state(request)
    if state.audit is None:
        return {"entries": [], "stats": {}, "count": 0}

    entries = state.audit.read_recent(limit)
    return {
        "entries": [asdict(e) for e in entries],
        "stats": state.audit.get_stats(),
        "count": len(entries),
    }
