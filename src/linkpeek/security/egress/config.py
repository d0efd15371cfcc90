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
"""Linkpeek service configuration.

Settings come from three layers, later ones winning:
  1. Dataclass defaults
  2. YAML file (~/.linkpeek/config.yaml, or an explicit path)
  3. Environment variables (DNS_RESOLVER_TIMEOUT_MS, RATE_LIMIT_REQUESTS, ...)

A missing or unreadable config file is not an error: the defaults are
safe, and the egress checks themselves never depend on the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("linkpeek.security.egress.config")

# ---------------------------------------------------------------------------
# Default paths
# ---------------------------------------------------------------------------
_LINKPEEK_HOME = Path(os.environ.get("LINKPEEK_HOME", Path.home() / ".linkpeek"))
DEFAULT_CONFIG_PATH = _LINKPEEK_HOME / "config.yaml"

# Hard ceiling for a caller-supplied page timeout (ms).
MAX_FETCH_TIMEOUT_MS = 120_000
MIN_FETCH_TIMEOUT_MS = 1_000

# Integer settings that may be overridden from the environment.
_INT_ENV_OVERRIDES: dict[str, str] = {
    "dns_timeout_ms": "DNS_RESOLVER_TIMEOUT_MS",
    "dns_cache_ttl_ms": "DNS_CACHE_TTL_MS",
    "dns_cache_max_entries": "DNS_CACHE_MAX_ENTRIES",
    "rate_limit_requests": "RATE_LIMIT_REQUESTS",
    "rate_limit_window_ms": "RATE_LIMIT_WINDOW_MS",
    "rate_limit_max_identities": "RATE_LIMIT_MAX_IDENTITIES",
    "fetch_timeout_ms": "FETCH_TIMEOUT_MS",
    "port": "PORT",
}

_STR_ENV_OVERRIDES: dict[str, str] = {
    "browser_ws_url": "BROWSER_WEB_URL",
    "host": "HOST",
    "api_key": "API_KEY",
    "consent_cookies_path": "CONSENT_COOKIES_PATH",
    "audit_log_path": "LINKPEEK_AUDIT_LOG",
}


@dataclass
class EgressConfig:
    """Runtime settings for the egress guard, admission limiter and server."""

    # Egress guard
    dns_timeout_ms: int = 3000
    dns_cache_ttl_ms: int = 5 * 60 * 1000
    dns_cache_max_entries: int = 1000

    # Admission limiter
    rate_limit_requests: int = 5
    rate_limit_window_ms: int = 60_000
    rate_limit_max_identities: int = 10_000

    # Page fetching
    fetch_timeout_ms: int = 30_000
    max_fetch_timeout_ms: int = MAX_FETCH_TIMEOUT_MS
    browser_ws_url: str = "http://chrome.localhost:9222"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000
    api_key: str | None = None

    # Optional features (fail open when their files are absent)
    consent_cookies_path: str = str(_LINKPEEK_HOME / "consent-cookies.yaml")
    audit_log_path: str = str(_LINKPEEK_HOME / "egress_audit.log")

    # Paths that go through the admission limiter
    rate_limited_paths: list[str] = field(
        default_factory=lambda: ["/fetch", "/api/egress/validate"]
    )

    def clamp_fetch_timeout(self, requested_ms: int | None) -> int:
        """Resolve a per-request timeout, bounded to the enforced maximum."""
        if requested_ms is None:
            requested_ms = self.fetch_timeout_ms
        return max(MIN_FETCH_TIMEOUT_MS, min(int(requested_ms), self.max_fetch_timeout_ms))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["api_key"] = "***" if self.api_key else None
        return data


def load_config(path: Path | str | None = None, env: dict[str, str] | None = None) -> EgressConfig:
    """Load configuration from YAML, then apply environment overrides.

    If the file does not exist, returns the defaults (plus env overrides).
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    environ = os.environ if env is None else env

    config = EgressConfig()
    if not config_path.exists():
        logger.info("No config at %s -- using defaults", config_path)
    else:
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            if raw is None:
                raw = {}
            if not isinstance(raw, dict):
                logger.warning("Invalid config at %s (not a mapping) -- using defaults", config_path)
            else:
                config = _parse_config(raw)
        except (OSError, yaml.YAMLError, TypeError, ValueError) as exc:
            logger.error("Failed to load config %s: %s -- using defaults", config_path, exc)

    _apply_env(config, environ)
    return config


def save_config(config: EgressConfig, path: Path | str | None = None) -> None:
    """Save configuration to a YAML file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "server": {
            "host": config.host,
            "port": config.port,
        },
        "dns": {
            "timeout_ms": config.dns_timeout_ms,
            "cache_ttl_ms": config.dns_cache_ttl_ms,
            "cache_max_entries": config.dns_cache_max_entries,
        },
        "rate_limit": {
            "requests": config.rate_limit_requests,
            "window_ms": config.rate_limit_window_ms,
            "max_identities": config.rate_limit_max_identities,
            "paths": list(config.rate_limited_paths),
        },
        "fetch": {
            "timeout_ms": config.fetch_timeout_ms,
            "max_timeout_ms": config.max_fetch_timeout_ms,
            "browser_ws_url": config.browser_ws_url,
        },
        "consent_cookies_path": config.consent_cookies_path,
        "audit_log_path": config.audit_log_path,
    }
    config_path.write_text(
        yaml.dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8"
    )
    logger.info("Saved config to %s", config_path)


def _parse_config(raw: dict) -> EgressConfig:
    """Parse a raw YAML dict into EgressConfig."""
    defaults = EgressConfig()
    server = raw.get("server") or {}
    dns = raw.get("dns") or {}
    rate = raw.get("rate_limit") or {}
    fetch = raw.get("fetch") or {}

    paths = rate.get("paths", defaults.rate_limited_paths)
    if not isinstance(paths, list):
        paths = defaults.rate_limited_paths

    return EgressConfig(
        dns_timeout_ms=int(dns.get("timeout_ms", defaults.dns_timeout_ms)),
        dns_cache_ttl_ms=int(dns.get("cache_ttl_ms", defaults.dns_cache_ttl_ms)),
        dns_cache_max_entries=int(dns.get("cache_max_entries", defaults.dns_cache_max_entries)),
        rate_limit_requests=int(rate.get("requests", defaults.rate_limit_requests)),
        rate_limit_window_ms=int(rate.get("window_ms", defaults.rate_limit_window_ms)),
        rate_limit_max_identities=int(
            rate.get("max_identities", defaults.rate_limit_max_identities)
        ),
        fetch_timeout_ms=int(fetch.get("timeout_ms", defaults.fetch_timeout_ms)),
        max_fetch_timeout_ms=int(fetch.get("max_timeout_ms", defaults.max_fetch_timeout_ms)),
        browser_ws_url=fetch.get("browser_ws_url", defaults.browser_ws_url),
        host=server.get("host", defaults.host),
        port=int(server.get("port", defaults.port)),
        api_key=raw.get("api_key") or None,
        consent_cookies_path=raw.get("consent_cookies_path", defaults.consent_cookies_path),
        audit_log_path=raw.get("audit_log_path", defaults.audit_log_path),
        rate_limited_paths=[str(p) for p in paths],
    )


def _apply_env(config: EgressConfig, environ) -> None:
    for attr, var in _INT_ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        try:
            setattr(config, attr, int(value))
        except ValueError:
            logger.warning("Ignoring %s=%r (not an integer)", var, value)

    for attr, var in _STR_ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            setattr(config, attr, value)
