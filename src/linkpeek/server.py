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
"""Linkpeek CLI entry point.

Starts the fetch API in front of a remote headless Chrome.

Usage:
    linkpeek [--config PATH] [--host HOST] [--port PORT] [--log-level LEVEL]
"""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from linkpeek import __version__
from linkpeek.api.server import create_app
from linkpeek.core.logging import configure_logging, get_logger
from linkpeek.errors import ConfigError
from linkpeek.security.egress.audit import AuditLogger
from linkpeek.security.egress.config import load_config

logger = logging.getLogger("linkpeek.server")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linkpeek",
        description="Linkpeek -- render untrusted URLs without becoming an SSRF vector",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: ~/.linkpeek/config.yaml)",
    )
    parser.add_argument("--host", default=None, help="Listen address (overrides config)")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Listen port (overrides config, default: 3000)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the Linkpeek server."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    config = load_config(args.config)
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port

    try:
        app = create_app(
            config,
            audit=AuditLogger(config.audit_log_path),
            live_log=get_logger(),
            connect_on_startup=True,
        )
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Linkpeek %s", __version__)
    logger.info("=" * 60)
    logger.info("  Listen: %s:%d", config.host, config.port)
    logger.info("  Browser: %s", config.browser_ws_url)
    logger.info(
        "  Rate limit: %d requests / %dms",
        config.rate_limit_requests,
        config.rate_limit_window_ms,
    )
    logger.info("  DNS cache TTL: %dms, timeout: %dms", config.dns_cache_ttl_ms, config.dns_timeout_ms)
    logger.info("  Audit log: %s", config.audit_log_path)
    logger.info("=" * 60)

    uvicorn.run(app, host=config.host, port=config.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
