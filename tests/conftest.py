"""
Pytest fixtures for the site safety checker.

Every lookup is either a zero-latency simulation or an httpx.MockTransport,
so the suite never touches the network.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from sitecheck_agent.analyzer import SafetyChecker
from sitecheck_agent.lookups import (
    HttpContentLookup,
    SimulatedBlacklist,
    SimulatedDomainAge,
    SimulatedThreatDatabase,
    StaticRedirectLookup,
)


def html_transport() -> httpx.MockTransport:
    return httpx.MockTransport(
        lambda request: httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"})
    )


def slow_transport(delay_s: float = 1.0) -> httpx.MockTransport:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(delay_s)
        return httpx.Response(200, headers={"content-type": "text/html"})

    return httpx.MockTransport(handler)


def refusing_transport() -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


class FixedSignalLookup:
    """Returns the same prepared value for every target."""

    def __init__(self, value):
        self.value = value
        self.calls: list[str] = []

    async def lookup(self, target: str, credential: str | None = None):
        self.calls.append(target)
        return self.value


class FailingLookup:
    def __init__(self, exc: BaseException):
        self.exc = exc

    async def lookup(self, target: str, credential: str | None = None):
        raise self.exc


@pytest.fixture
def make_checker():
    """Build a SafetyChecker with offline defaults; keyword args replace individual lookups."""

    def _make(**overrides) -> SafetyChecker:
        lookups = {
            "threat_database": SimulatedThreatDatabase(latency_s=0),
            "domain_age": SimulatedDomainAge(latency_s=0),
            "blacklist": SimulatedBlacklist(latency_s=0),
            "content": HttpContentLookup(transport=html_transport()),
            "redirect": StaticRedirectLookup(),
        }
        lookups.update(overrides)
        return SafetyChecker(**lookups)

    return _make


@pytest.fixture
def checker(make_checker) -> SafetyChecker:
    return make_checker()
