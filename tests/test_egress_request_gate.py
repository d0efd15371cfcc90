# Linkpeek
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the per-request browser gate."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from linkpeek.security.egress.audit import STAGE_SUBREQUEST, AuditLogger
from linkpeek.security.egress.guard import EgressGuard
from linkpeek.security.egress.request_gate import BLOCKED_ERROR_CODE, RequestGate
from linkpeek.security.egress.resolution_cache import ResolutionCache


def _route(url):
    route = MagicMock()
    route.request.url = url
    route.continue_ = AsyncMock()
    route.abort = AsyncMock()
    return route


@pytest.fixture
def guard(resolver, clock):
    return EgressGuard(cache=ResolutionCache(timer=clock), resolver=resolver)


class TestRequestGate:
    """Tests for continue/abort decisions."""

    @pytest.mark.asyncio
    async def test_public_request_continues(self, guard):
        gate = RequestGate(guard)
        route = _route("https://example.com/app.js")
        await gate.handle(route)
        route.continue_.assert_awaited_once()
        route.abort.assert_not_awaited()
        assert gate.allowed == 1

    @pytest.mark.asyncio
    async def test_forbidden_request_aborted(self, guard):
        gate = RequestGate(guard)
        route = _route("http://169.254.169.254/latest/meta-data/")
        await gate.handle(route)
        route.abort.assert_awaited_once_with(BLOCKED_ERROR_CODE)
        route.continue_.assert_not_awaited()
        assert gate.blocked == 1

    @pytest.mark.asyncio
    async def test_resolved_private_aborted(self, guard):
        gate = RequestGate(guard)
        route = _route("http://internal.example/api")
        await gate.handle(route)
        route.abort.assert_awaited_once_with(BLOCKED_ERROR_CODE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url", ["data:text/plain,hello", "blob:https://example.com/1234", "about:blank"]
    )
    async def test_non_network_schemes_pass(self, guard, resolver, url):
        gate = RequestGate(guard)
        route = _route(url)
        await gate.handle(route)
        route.continue_.assert_awaited_once()
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_guard_error_fails_closed(self):
        guard = MagicMock()
        guard.validate = AsyncMock(side_effect=RuntimeError("cache exploded"))
        gate = RequestGate(guard)
        route = _route("https://example.com/")
        await gate.handle(route)
        route.abort.assert_awaited_once_with(BLOCKED_ERROR_CODE)
        route.continue_.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_callable(self, guard):
        gate = RequestGate(guard)
        route = _route("http://127.0.0.1:6379/")
        await gate(route)
        route.abort.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_blocked_requests_audited(self, guard, tmp_path):
        audit = AuditLogger(tmp_path / "audit.log")
        gate = RequestGate(guard, audit=audit, client_ip="1.2.3.4")
        await gate.handle(_route("http://10.1.2.3/"))
        await gate.handle(_route("https://example.com/"))
        entries = audit.read_recent()
        assert len(entries) == 1
        assert entries[0].stage == STAGE_SUBREQUEST
        assert entries[0].client_ip == "1.2.3.4"
        audit.close()

    @pytest.mark.asyncio
    async def test_blocked_requests_reach_live_log(self, guard):
        live_log = MagicMock()
        gate = RequestGate(guard, client_ip="1.2.3.4", live_log=live_log)
        await gate.handle(_route("https://example.com/"))
        await gate.handle(_route("http://10.1.2.3/"))
        live_log.security.assert_called_once()
        args, kwargs = live_log.security.call_args
        assert args == (STAGE_SUBREQUEST,)
        assert kwargs["passed"] is False
        assert kwargs["url"] == "http://10.1.2.3/"
        assert kwargs["client_ip"] == "1.2.3.4"
