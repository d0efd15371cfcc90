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
"""Linkpeek -- Health & Readiness Routes."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from linkpeek import __version__
from linkpeek.api._shared import get_state

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness check (K8s compatible)."""
    return {"status": "ok", "version": __version__}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness check: ready once the browser connection is up."""
    state = get_state(request)
    if not state.browser.is_ready():
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "browser not connected"},
        )
    return {"status": "ready", "version": __version__}
