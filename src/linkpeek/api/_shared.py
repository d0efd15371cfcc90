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
Linkpeek -- Shared API Utilities

Application state (the egress guard, admission limiter, browser and
audit log built for one app instance) and the Pydantic request models
shared across route modules.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from pydantic import BaseModel, Field, field_validator

from linkpeek.browser.connection import BrowserManager
from linkpeek.browser.consent import ConsentCookies
from linkpeek.core.logging import LiveLogger
from linkpeek.security.egress.audit import AuditLogger
from linkpeek.security.egress.config import (
    MAX_FETCH_TIMEOUT_MS,
    MIN_FETCH_TIMEOUT_MS,
    EgressConfig,
)
from linkpeek.security.egress.guard import EgressGuard
from linkpeek.security.egress.rate_limiter import UNKNOWN_IDENTITY, AdmissionLimiter
from linkpeek.security.egress.resolution_cache import ResolutionCache
from linkpeek.security.egress.resolver import HostResolver

logger = logging.getLogger("linkpeek.api.server")

MAX_URL_LENGTH = 2048


# =============================================================================
# APPLICATION STATE
# =============================================================================


@dataclass
class AppState:
    """Everything a request handler needs, built once per app."""

    config: EgressConfig
    guard: EgressGuard
    limiter: AdmissionLimiter
    browser: BrowserManager
    consent: ConsentCookies
    audit: Optional[AuditLogger] = None
    live_log: Optional[LiveLogger] = None


def build_guard(config: EgressConfig) -> EgressGuard:
    cache = ResolutionCache(
        max_entries=config.dns_cache_max_entries,
        ttl_seconds=config.dns_cache_ttl_ms / 1000.0,
    )
    return EgressGuard(cache=cache, resolver=HostResolver(timeout_ms=config.dns_timeout_ms))


def build_limiter(config: EgressConfig) -> AdmissionLimiter:
    return AdmissionLimiter(
        max_requests=config.rate_limit_requests,
        window_ms=config.rate_limit_window_ms,
        max_identities=config.rate_limit_max_identities,
    )


def build_state(
    config: EgressConfig,
    guard: Optional[EgressGuard] = None,
    limiter: Optional[AdmissionLimiter] = None,
    browser: Optional[BrowserManager] = None,
    consent: Optional[ConsentCookies] = None,
    audit: Optional[AuditLogger] = None,
    live_log: Optional[LiveLogger] = None,
) -> AppState:
    """Assemble app state, constructing anything not supplied from config."""
    return AppState(
        config=config,
        guard=guard or build_guard(config),
        limiter=limiter or build_limiter(config),
        browser=browser or BrowserManager(config.browser_ws_url),
        consent=consent if consent is not None else ConsentCookies.load(config.consent_cookies_path),
        audit=audit,
        live_log=live_log,
    )


def get_state(request: Request) -> AppState:
    return request.app.state.linkpeek


def client_ip(request: Request) -> str:
    """Caller identity for admission control."""
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTITY


# =============================================================================
# PYDANTIC MODELS
# =============================================================================


class FetchRequest(BaseModel):
    url: str = Field(..., max_length=MAX_URL_LENGTH)
    timeout: Optional[int] = Field(default=None, ge=MIN_FETCH_TIMEOUT_MS, le=MAX_FETCH_TIMEOUT_MS)

    @field_validator("url")
    @classmethod
    def _http_only(cls, value: str) -> str:
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError("URL must use http or https protocol")
        return value


class ValidateRequest(BaseModel):
    url: str = Field(..., max_length=MAX_URL_LENGTH)
