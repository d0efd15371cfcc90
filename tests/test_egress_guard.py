# Linkpeek
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
"""Tests for the egress guard (URL validation)."""

import asyncio
import time

import pytest

from linkpeek.security.egress.guard import Allowed, Denied, EgressGuard, parse_url
from linkpeek.security.egress.resolution_cache import ResolutionCache
from linkpeek.security.egress.resolver import HostResolver


@pytest.fixture
def guard(resolver, clock):
    return EgressGuard(cache=ResolutionCache(ttl_seconds=300, timer=clock), resolver=resolver)


class TestParseUrl:
    def test_backslash_treated_as_path_separator(self):
        assert parse_url("http://127.0.0.1\\@example.com/").hostname == "127.0.0.1"

    def test_missing_scheme(self):
        with pytest.raises(ValueError):
            parse_url("not a url")

    def test_bad_port(self):
        with pytest.raises(ValueError):
            parse_url("http://example.com:99999/")


class TestMalformedInput:
    """Inputs rejected before any DNS work."""

    @pytest.mark.asyncio
    async def test_not_a_url(self, guard, resolver):
        outcome = await guard.validate("not a url")
        assert isinstance(outcome, Denied)
        assert outcome.reason.startswith('Invalid URL "not a url"')
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_protocol(self, guard):
        outcome = await guard.validate("ftp://host/x")
        assert outcome.ok is False
        assert outcome.reason.startswith("Unsupported protocol for URL")

    @pytest.mark.asyncio
    async def test_missing_hostname(self, guard):
        outcome = await guard.validate("http:///path")
        assert outcome.ok is False
        assert "must include a hostname" in outcome.reason

    @pytest.mark.asyncio
    async def test_reasons_are_distinct(self, guard):
        reasons = {
            (await guard.validate(u)).reason
            for u in ("not a url", "ftp://host/x", "http:///path")
        }
        assert len(reasons) == 3

    @pytest.mark.asyncio
    async def test_file_scheme_denied(self, guard):
        outcome = await guard.validate("file:///etc/passwd")
        assert outcome.ok is False


class TestIpLiterals:
    """Literal addresses skip DNS."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        [
            "http://127.0.0.1/",
            "http://10.0.0.1/",
            "http://169.254.0.1/latest/meta-data",
            "http://[::1]/",
            "http://[fc00::1]:8080/",
            "http://[::ffff:127.0.0.1]/",
            "http://127.0.0.1\\@example.com/",
        ],
    )
    async def test_forbidden_literal(self, guard, resolver, url):
        outcome = await guard.validate(url)
        assert outcome.ok is False
        assert "forbidden IP address" in outcome.reason
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_public_literal_allowed_without_dns(self, guard, resolver):
        outcome = await guard.validate("https://93.184.216.34/")
        assert isinstance(outcome, Allowed)
        assert outcome.to_dict() == {"ok": True}
        assert resolver.calls == []


class TestHostnames:
    """Hostnames are resolved and every address is checked."""

    @pytest.mark.asyncio
    async def test_public_host_allowed(self, guard):
        outcome = await guard.validate("https://example.com/page")
        assert outcome.ok is True
        assert outcome.url.hostname == "example.com"

    @pytest.mark.asyncio
    async def test_private_host_denied(self, guard):
        outcome = await guard.validate("http://internal.example/")
        assert outcome.ok is False
        assert outcome.reason == (
            "Refusing to access forbidden resolved address 10.0.0.5 for host internal.example"
        )

    @pytest.mark.asyncio
    async def test_any_forbidden_address_denies(self, guard):
        outcome = await guard.validate("http://mixed.example/")
        assert outcome.ok is False
        assert "127.0.0.1" in outcome.reason

    @pytest.mark.asyncio
    async def test_resolution_failure_denies(self, guard):
        outcome = await guard.validate("http://nxdomain.example/")
        assert outcome.ok is False
        assert outcome.reason.startswith("Failed to resolve hostname nxdomain.example")

    @pytest.mark.asyncio
    async def test_failure_not_cached(self, guard, resolver):
        await guard.validate("http://nxdomain.example/")
        await guard.validate("http://nxdomain.example/")
        assert resolver.calls == ["nxdomain.example", "nxdomain.example"]

    @pytest.mark.asyncio
    async def test_hostname_case_normalized(self, guard, resolver):
        outcome = await guard.validate("https://EXAMPLE.com./")
        assert outcome.ok is True
        assert resolver.calls == ["example.com"]


class TestCaching:
    """Resolutions are reused within the TTL."""

    @pytest.mark.asyncio
    async def test_second_validation_uses_cache(self, guard, resolver):
        await guard.validate("https://example.com/a")
        await guard.validate("https://example.com/b")
        assert resolver.calls == ["example.com"]

    @pytest.mark.asyncio
    async def test_resolves_again_after_ttl(self, guard, resolver, clock):
        await guard.validate("https://example.com/")
        clock.advance(301)
        await guard.validate("https://example.com/")
        assert resolver.calls == ["example.com", "example.com"]

    @pytest.mark.asyncio
    async def test_cached_forbidden_still_denied(self, guard, resolver):
        await guard.validate("http://internal.example/")
        outcome = await guard.validate("http://internal.example/")
        assert outcome.ok is False
        assert resolver.calls == ["internal.example"]

    @pytest.mark.asyncio
    async def test_clear_cache(self, guard, resolver):
        await guard.validate("https://example.com/")
        assert guard.cache_stats()["size"] == 1
        guard.clear_cache()
        assert guard.cache_stats()["size"] == 0
        await guard.validate("https://example.com/")
        assert len(resolver.calls) == 2


class TestResolverFailures:
    """Failures inside the real resolver still come back as denials."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["http://a..b/", "http://" + "a" * 64 + ".com/"])
    async def test_unencodable_hostname_denied(self, url):
        guard = EgressGuard(ResolutionCache(), HostResolver(timeout_ms=2000))
        outcome = await guard.validate(url)
        assert isinstance(outcome, Denied)
        assert outcome.reason.startswith("Failed to resolve hostname")

    @pytest.mark.asyncio
    async def test_dns_timeout_denied_within_bound(self):
        async def hanging_lookup(hostname, family):
            await asyncio.sleep(30)
            return ["93.184.216.34"]

        guard = EgressGuard(ResolutionCache(), HostResolver(timeout_ms=50, lookup=hanging_lookup))
        start = time.monotonic()
        outcome = await guard.validate("https://slow.example/")
        elapsed = time.monotonic() - start
        assert outcome.ok is False
        assert "timed out after 50ms" in outcome.reason
        assert elapsed < 1.0
        assert guard.cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_mapped_loopback_denied_like_loopback(self, guard):
        mapped = await guard.validate("http://[::ffff:127.0.0.1]/")
        plain = await guard.validate("http://127.0.0.1/")
        assert mapped.ok is False
        assert plain.ok is False
        assert "forbidden IP address" in mapped.reason
