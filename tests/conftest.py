"""Pytest configuration for linkpeek tests."""

import sys
from pathlib import Path

import pytest

# Ensure src/linkpeek is importable
src_path = str(Path(__file__).parent.parent / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from linkpeek.errors import ResolutionError  # noqa: E402


class FakeClock:
    """Manually advanced clock (seconds)."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResolver:
    """Resolver returning canned answers and counting calls."""

    def __init__(self, records=None, errors=None):
        self.records = dict(records or {})
        self.errors = dict(errors or {})
        self.calls: list[str] = []

    async def resolve(self, hostname: str) -> list[str]:
        self.calls.append(hostname)
        if hostname in self.errors:
            raise ResolutionError(self.errors[hostname])
        return list(self.records.get(hostname, []))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def resolver():
    return FakeResolver(
        records={
            "example.com": ["93.184.216.34", "2606:2800:220:1:248:1893:25c8:1946"],
            "internal.example": ["10.0.0.5"],
            "mixed.example": ["93.184.216.34", "127.0.0.1"],
        },
        errors={"nxdomain.example": "A lookup for nxdomain.example failed: Name or service not known"},
    )
