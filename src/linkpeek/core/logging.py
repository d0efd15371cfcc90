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
Linkpeek -- Live Service Logger

Every request the service handles and every egress decision it makes is
written to a rotating log file that operators can tail.

LOG LOCATION:
    ~/.linkpeek/logs/linkpeek.log        (current)
    ~/.linkpeek/logs/linkpeek.log.1      (previous rotation)

RULES:
    - Single log file, max 10 MB before rotation, 20 backups
    - Human-readable format with structured fields
    - WARNING and above mirrored to stderr

USAGE:
    from linkpeek.core.logging import get_logger
    log = get_logger()
    log.http_request("POST", "/fetch", status=200, latency_ms=812)
    log.security("subrequest", passed=False, url="http://10.0.0.1/")
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

# =============================================================================
# CONSTANTS
# =============================================================================

MAX_LOG_FILE_BYTES = 10 * 1024 * 1024  # 10 MB per file
LOG_BACKUP_COUNT = 20
LOG_DIR = Path(os.environ.get("LINKPEEK_HOME", Path.home() / ".linkpeek")) / "logs"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


# =============================================================================
# CUSTOM FORMATTER -- human-readable + structured
# =============================================================================


class LinkpeekLogFormatter(logging.Formatter):
    """
    Format: TIMESTAMP | LEVEL | COMPONENT | MESSAGE | {structured fields}

    Example:
    2026-02-09T17:30:45.123Z | HTTP  | Server       | POST /fetch -> 200 | method="POST" latency_ms=812
    2026-02-09T17:30:46.501Z | SEC   | Egress       | Blocked subrequest | url="http://10.0.0.1/"
    """

    LEVEL_WIDTH = 5
    COMPONENT_WIDTH = 12

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        ts = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

        level = getattr(record, "linkpeek_level", record.levelname)
        component = getattr(record, "component", "System")
        message = record.getMessage()

        fields = getattr(record, "fields", {})
        field_str = ""
        if fields:
            parts = []
            for k, v in fields.items():
                if isinstance(v, str):
                    parts.append(f'{k}="{v}"')
                elif isinstance(v, float):
                    parts.append(f"{k}={v:.3f}")
                else:
                    parts.append(f"{k}={v}")
            field_str = " | " + " ".join(parts)

        return (
            f"{ts} | {level:<{self.LEVEL_WIDTH}} | "
            f"{component:<{self.COMPONENT_WIDTH}} | {message}{field_str}"
        )


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


# =============================================================================
# LIVE LOGGER
# =============================================================================


class LiveLogger:
    """
    Rotating service log for Linkpeek.

    Writes to <log_dir>/linkpeek.log with 10 MB rotation and mirrors
    warnings to stderr. Entries are tagged with a component so the
    file can be filtered with grep.
    """

    def __init__(self, log_dir: str | Path | None = None):
        self._log_dir = Path(log_dir) if log_dir else LOG_DIR
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._log_file = self._log_dir / "linkpeek.log"

        self._logger = logging.getLogger("linkpeek.live")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        # Remove existing handlers to avoid duplicates
        for handler in list(self._logger.handlers):
            handler.close()
        self._logger.handlers.clear()

        file_handler = logging.handlers.RotatingFileHandler(
            str(self._log_file),
            maxBytes=MAX_LOG_FILE_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(LinkpeekLogFormatter())
        self._logger.addHandler(file_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(logging.WARNING)
        stderr_handler.setFormatter(LinkpeekLogFormatter())
        self._logger.addHandler(stderr_handler)

        self._session_id = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        self._request_count = 0

    def _log(self, level: int, linkpeek_level: str, component: str, message: str, **fields):
        """Core log method."""
        fields["session"] = self._session_id
        record = self._logger.makeRecord(
            name="linkpeek.live",
            level=level,
            fn="",
            lno=0,
            msg=message,
            args=(),
            exc_info=None,
        )
        record.component = component
        record.linkpeek_level = linkpeek_level
        record.fields = fields
        self._logger.handle(record)

    # =========================================================================
    # PUBLIC API -- Standard levels
    # =========================================================================

    def info(self, component: str, message: str, **fields):
        self._log(logging.INFO, "INFO", component, message, **fields)

    def warn(self, component: str, message: str, **fields):
        self._log(logging.WARNING, "WARN", component, message, **fields)

    def error(self, component: str, message: str, **fields):
        self._log(logging.ERROR, "ERROR", component, message, **fields)

    # =========================================================================
    # PUBLIC API -- Domain-specific log methods
    # =========================================================================

    def security(self, stage: str, passed: bool = True, **fields):
        """Log an egress or admission decision."""
        fields.update(stage=stage, passed=passed)
        level = logging.INFO if passed else logging.WARNING
        verdict = "Allowed" if passed else "Blocked"
        self._log(level, "SEC", "Egress", f"{verdict} {stage}", **fields)

    def fetch(self, url: str, status: int | None = None, latency_ms: int = 0, **fields):
        """Log a completed page fetch."""
        fields.update(url=url, status=status, latency_ms=latency_ms)
        self._log(logging.INFO, "FETCH", "Browser", "Page fetched", **fields)

    def server_start(self, host: str = "", port: int = 0, **fields):
        fields.update(host=host, port=port)
        self._log(logging.INFO, "BOOT", "Server", "API server started", **fields)

    def server_stop(self, **fields):
        fields.update(requests_served=self._request_count)
        self._log(logging.INFO, "HALT", "Server", "API server stopped", **fields)

    def http_request(
        self, method: str, path: str, status: int = 200, latency_ms: int = 0, **fields
    ):
        """Log an HTTP request."""
        fields.update(method=method, path=path, status=status, latency_ms=latency_ms)
        level = logging.INFO if status < 400 else logging.WARNING
        self._log(level, "HTTP", "Server", f"{method} {path} -> {status}", **fields)
        self._request_count += 1

    @property
    def log_file(self) -> str:
        return str(self._log_file)

    @property
    def request_count(self) -> int:
        return self._request_count


# =============================================================================
# SINGLETON
# =============================================================================

_logger_instance: LiveLogger | None = None


def get_logger(log_dir: str | Path | None = None) -> LiveLogger:
    """Get or create the process-wide LiveLogger."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = LiveLogger(log_dir=log_dir)
    return _logger_instance
