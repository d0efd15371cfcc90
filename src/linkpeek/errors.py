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
"""Exception types shared across Linkpeek.

Expected denials (bad URL, forbidden address, rate limit) are returned
as values, not raised. These exceptions cover the remaining cases.
"""


class LinkpeekError(Exception):
    """Base class for Linkpeek errors."""


class ResolutionError(LinkpeekError):
    """DNS resolution produced no usable address.

    The egress guard converts this into a denial; it never escapes
    ``EgressGuard.validate``.
    """


class ConfigError(LinkpeekError):
    """A configuration file exists but cannot be used."""


class BrowserUnavailableError(LinkpeekError):
    """The remote browser could not be reached."""
