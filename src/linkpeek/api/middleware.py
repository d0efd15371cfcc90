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
Linkpeek -- API Middleware (Admission Control + Optional Auth + Logging)

- Sliding-window admission limit per client IP on the fetch endpoints
- Optional Bearer token auth (disabled when no API key is configured)
- Request logging to the live service log

/health and /ready bypass all three.
"""

import hmac
import logging
import time
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from linkpeek.api._shared import client_ip
from linkpeek.core.logging import LiveLogger
from linkpeek.security.egress.audit import STAGE_ADMISSION, AuditEntry, AuditLogger
from linkpeek.security.egress.rate_limiter import AdmissionLimiter

logger = logging.getLogger("linkpeek.api.middleware")

_HEALTH_PATHS = frozenset({"/health", "/ready"})


# =============================================================================
# ADMISSION CONTROL (sliding window, per-IP)
# =============================================================================


class AdmissionMiddleware(BaseHTTPMiddleware):
    """
    Per-client sliding-window limiter in front of the expensive endpoints.

    Only paths listed in `paths` are counted; everything else passes.
    """

    def __init__(
        self,
        app,
        limiter: AdmissionLimiter,
        paths: list[str],
        audit: Optional[AuditLogger] = None,
        live_log: Optional[LiveLogger] = None,
    ):
        super().__init__(app)
        self._limiter = limiter
        self._paths = frozenset(paths)
        self._audit = audit
        self._live_log = live_log

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path not in self._paths:
            return await call_next(request)

        identity = client_ip(request)
        result = self._limiter.allow(identity)
        if not result.allowed:
            logger.warning("Rate limit exceeded for %s on %s", identity, path)
            if self._audit is not None:
                self._audit.log(
                    AuditEntry.rate_limited(path, identity, result.retry_after_seconds)
                )
            if self._live_log is not None:
                self._live_log.security(
                    STAGE_ADMISSION,
                    passed=False,
                    path=path,
                    client_ip=identity,
                    retry_after=result.retry_after_seconds,
                )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "retry_after": result.retry_after_seconds,
                },
                headers={"Retry-After": str(result.retry_after_seconds)},
            )

        return await call_next(request)


# =============================================================================
# OPTIONAL API KEY AUTH (Bearer token)
# =============================================================================


class OptionalAuthMiddleware(BaseHTTPMiddleware):
    """
    Optional Bearer token authentication.

    With an API key configured, every request except /health and /ready must send:
        Authorization: Bearer <key>
    Without one, all requests pass through.
    """

    def __init__(self, app, api_key: Optional[str] = None):
        super().__init__(app)
        self._api_key = api_key or None

    async def dispatch(self, request: Request, call_next):
        if not self._api_key or request.url.path in _HEALTH_PATHS:
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if not auth_header:
            return JSONResponse(status_code=401, content={"error": "Missing API key"})

        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return JSONResponse(
                status_code=401, content={"error": "Invalid Authorization header format"}
            )

        if not hmac.compare_digest(token.strip().encode(), self._api_key.encode()):
            logger.warning("Invalid API key for %s from %s", request.url.path, client_ip(request))
            return JSONResponse(status_code=401, content={"error": "Invalid API key"})

        return await call_next(request)


# =============================================================================
# HTTP REQUEST LOGGING
# =============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status, and latency."""

    def __init__(self, app, live_log: Optional[LiveLogger] = None):
        super().__init__(app)
        self._live_log = live_log

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = int((time.monotonic() - start) * 1000)
        path = request.url.path
        if path not in _HEALTH_PATHS:
            logger.info("%s %s -> %d (%dms)", request.method, path, response.status_code, latency_ms)
            if self._live_log is not None:
                self._live_log.http_request(
                    method=request.method,
                    path=path,
                    status=response.status_code,
                    latency_ms=latency_ms,
                )
        return response
