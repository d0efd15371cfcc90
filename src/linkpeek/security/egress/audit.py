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
"""Egress audit log.

Records every egress decision worth reviewing later: blocked
navigations, blocked sub-requests, blocked redirect targets and
admission rejections.

Log format: JSON Lines (one JSON object per line) for easy parsing.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TextIO
from urllib.parse import urlsplit

logger = logging.getLogger("linkpeek.security.egress.audit")

# Where in the fetch pipeline a decision was made
STAGE_ADMISSION = "admission"
STAGE_NAVIGATION = "navigation"
STAGE_SUBREQUEST = "subrequest"
STAGE_FINAL_URL = "final_url"


def _hostname_of(url: str) -> str:
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


@dataclass
class AuditEntry:
    """A single auditable egress event."""

    timestamp: float
    event_type: str  # "blocked", "rate_limited", "request"
    stage: str
    url: str
    hostname: str
    reason: str = ""
    client_ip: str = ""
    status_code: int = 0
    duration_ms: float = 0.0

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def blocked(cls, stage: str, url: str, reason: str, client_ip: str = "") -> AuditEntry:
        """Create an entry for a URL the egress guard refused."""
        return cls(
            timestamp=time.time(),
            event_type="blocked",
            stage=stage,
            url=url,
            hostname=_hostname_of(url),
            reason=reason,
            client_ip=client_ip,
        )

    @classmethod
    def rate_limited(cls, url: str, client_ip: str, retry_after_seconds: int | None) -> AuditEntry:
        """Create an entry for a caller turned away by the admission limiter."""
        return cls(
            timestamp=time.time(),
            event_type="rate_limited",
            stage=STAGE_ADMISSION,
            url=url,
            hostname="",
            reason=f"Rate limit exceeded (retry after {retry_after_seconds}s)",
            client_ip=client_ip,
        )

    @classmethod
    def fetched(
        cls,
        url: str,
        status_code: int | None,
        duration_ms: float,
        client_ip: str = "",
    ) -> AuditEntry:
        """Create an entry for a completed page fetch."""
        return cls(
            timestamp=time.time(),
            event_type="request",
            stage=STAGE_NAVIGATION,
            url=url,
            hostname=_hostname_of(url),
            status_code=status_code or 0,
            duration_ms=duration_ms,
            client_ip=client_ip,
        )


class AuditLogger:
    """Thread-safe audit logger that writes JSON Lines to a file."""

    def __init__(self, log_path: str | Path | None = None) -> None:
        if log_path is None:
            from .config import _LINKPEEK_HOME

            log_path = _LINKPEEK_HOME / "egress_audit.log"

        self._path = Path(log_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._file: TextIO | None = None
        self._entry_count = 0

    def _ensure_open(self) -> TextIO:
        """Lazily open the log file."""
        if self._file is None or self._file.closed:
            self._file = open(self._path, "a", encoding="utf-8")
        return self._file

    def log(self, entry: AuditEntry) -> None:
        """Write an audit entry to the log file (thread-safe)."""
        line = entry.to_json() + "\n"
        with self._lock:
            try:
                f = self._ensure_open()
                f.write(line)
                f.flush()
                self._entry_count += 1
            except OSError as exc:
                logger.error("Failed to write audit entry: %s", exc)

    def close(self) -> None:
        """Close the log file."""
        with self._lock:
            if self._file and not self._file.closed:
                self._file.close()
                self._file = None

    @property
    def entry_count(self) -> int:
        """Number of entries written in this session."""
        return self._entry_count

    @property
    def path(self) -> Path:
        return self._path

    def read_recent(self, n: int = 50) -> list[AuditEntry]:
        """Read the N most recent audit entries."""
        if not self._path.exists():
            return []

        entries: list[AuditEntry] = []
        try:
            lines = self._path.read_text(encoding="utf-8").strip().splitlines()
            for line in lines[-n:]:
                try:
                    data = json.loads(line)
                    entries.append(AuditEntry(**data))
                except (json.JSONDecodeError, TypeError):
                    continue
        except OSError as exc:
            logger.error("Failed to read audit log: %s", exc)

        return entries

    def get_stats(self) -> dict:
        """Summary counts over the most recent 1000 entries."""
        entries = self.read_recent(1000)
        blocked = [e for e in entries if e.event_type == "blocked"]
        return {
            "total": len(entries),
            "blocked": len(blocked),
            "blocked_subrequests": sum(1 for e in blocked if e.stage == STAGE_SUBREQUEST),
            "rate_limited": sum(1 for e in entries if e.event_type == "rate_limited"),
            "fetched": sum(1 for e in entries if e.event_type == "request"),
            "unique_blocked_hosts": len({e.hostname for e in blocked if e.hostname}),
        }

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
