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
"""Headless browser access: connection, consent cookies, page fetching."""

from .connection import BrowserManager, connect_browser
from .consent import ConsentCookies
from .fetcher import FetchResult, FinalUrlBlockedError, fetch_page

__all__ = [
    "BrowserManager",
    "ConsentCookies",
    "FetchResult",
    "FinalUrlBlockedError",
    "connect_browser",
    "fetch_page",
]
