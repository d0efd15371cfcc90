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
"""Consent cookies -- pre-seed cookies that dismiss consent walls.

Config (YAML or JSON):

    patterns:
      - match: ["youtube.com"]
        cookies:
          - {name: CONSENT, value: "YES+1", domain: ".youtube.com", path: "/"}

A missing file means no cookies. A file that exists but does not match
the schema is a startup error.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ValidationError

from linkpeek.errors import ConfigError

logger = logging.getLogger("linkpeek.browser.consent")


class Cookie(BaseModel):
    name: str
    value: str
    domain: str
    path: str


class ConsentPattern(BaseModel):
    match: list[str]
    cookies: list[Cookie]


class ConsentConfig(BaseModel):
    patterns: list[ConsentPattern] = []


class ConsentCookies:
    """Cookie rules keyed by URL substring."""

    def __init__(self, config: ConsentConfig | None = None) -> None:
        self._config = config or ConsentConfig()

    @property
    def pattern_count(self) -> int:
        return len(self._config.patterns)

    @classmethod
    def load(cls, path: str | Path) -> ConsentCookies:
        """Load rules from a file.

        Raises:
            ConfigError: the file exists but is unreadable or invalid.
        """
        config_path = Path(path)
        logger.info("Loading consent cookies from %s", config_path)
        if not config_path.exists():
            logger.warning("Consent cookies file not found at %s, using empty config", config_path)
            return cls()

        try:
            # YAML is a superset of JSON, so one parser covers both formats.
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
            config = ConsentConfig.model_validate(raw)
        except ValidationError as exc:
            logger.error("Invalid consent cookies config: %s", exc)
            raise ConfigError(f"Invalid consent cookies config: {exc}") from exc
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Failed to load consent cookies: %s", exc)
            raise ConfigError(f"Failed to load consent cookies: {exc}") from exc

        logger.info("Loaded %d consent cookie pattern(s)", len(config.patterns))
        return cls(config)

    def cookies_for(self, url: str) -> list[dict[str, str]]:
        """Cookies to add to the browser context before visiting url."""
        cookies: list[dict[str, str]] = []
        for pattern in self._config.patterns:
            if any(m in url for m in pattern.match):
                cookies.extend(c.model_dump() for c in pattern.cookies)
        return cookies
