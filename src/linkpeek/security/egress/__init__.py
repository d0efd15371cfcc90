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
"""Linkpeek egress control -- admission and SSRF protection.

Every URL Linkpeek fetches is attacker-influenced. This package decides,
before any browser work and again for every sub-request, whether the
target may be contacted and whether the caller still has budget.

Security properties:
  - Default DENY for internal space: loopback, private, link-local,
    CGNAT, unique-local, IPv6 tunnel/transition prefixes and friends
  - Any forbidden resolved address denies the whole hostname
  - DNS failures and timeouts deny, never allow
  - Sub-requests (redirects, iframes, XHR) checked individually
  - Per-caller sliding-window admission limit
  - Audit log of every block
"""

from .classifier import DISALLOWED_RANGES, AddressRange, classify, is_forbidden
from .guard import Allowed, Denied, EgressGuard, ValidationOutcome
from .rate_limiter import AdmissionLimiter, RateLimitResult
from .resolution_cache import ResolutionCache
from .resolver import HostResolver

__all__ = [
    "AddressRange",
    "AdmissionLimiter",
    "Allowed",
    "DISALLOWED_RANGES",
    "Denied",
    "EgressGuard",
    "HostResolver",
    "RateLimitResult",
    "ResolutionCache",
    "ValidationOutcome",
    "classify",
    "is_forbidden",
]
