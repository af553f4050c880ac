"""
External lookup signals.

Each capability takes a URL (or host) plus an optional credential and returns
a freshly built signal. The scoring contract lives in the ``*_signal``
helpers so simulated and live implementations score identically; swap one for
the other without touching the aggregator.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import httpx

from . import config
from .models import Signal
from .signals import BLACKLIST, CONTENT, DOMAIN_AGE, REDIRECT, THREAT_DATABASE, make_signal, unavailable_signal
from .urls import extract_host, is_private_address, registrable_domain

logger = logging.getLogger(__name__)


class LookupUnavailable(RuntimeError):
    """The upstream service could not give a usable answer."""


@dataclass(frozen=True)
class DomainAgeResult:
    signal: Signal
    age_years: float | None


@dataclass(frozen=True)
class ContentResult:
    signal: Signal
    degraded: bool


class ThreatDatabaseLookup(Protocol):
    async def lookup(self, url: str, credential: str | None = None) -> Signal: ...


class DomainAgeLookup(Protocol):
    async def lookup(self, host: str, credential: str | None = None) -> DomainAgeResult: ...


class BlacklistLookup(Protocol):
    async def lookup(self, url: str, credential: str | None = None) -> Signal: ...


class ContentLookup(Protocol):
    async def lookup(self, url: str, credential: str | None = None) -> ContentResult: ...


class RedirectLookup(Protocol):
    async def lookup(self, url: str, credential: str | None = None) -> Signal: ...


# ---------------------------------------------------------------------------
# Scoring contracts
# ---------------------------------------------------------------------------

TOTAL_ENGINES = 70


def threat_signal(threat_type: str | None) -> Signal:
    if threat_type:
        return make_signal(THREAT_DATABASE, "bad", 25, f"Flagged as {threat_type} by Google Safe Browsing")
    return make_signal(THREAT_DATABASE, "good", 0, "Not found in Google Safe Browsing threat database")


def domain_age_signal(age_years: float | None) -> Signal:
    if age_years is None:
        return unavailable_signal(DOMAIN_AGE, "Unable to determine domain age")

    explanation = f"Domain registered {age_years:.1f} years ago"
    if age_years < 0.5:
        return make_signal(DOMAIN_AGE, "bad", 15, explanation)
    if age_years < 1:
        return make_signal(DOMAIN_AGE, "warning", 10, explanation)
    if age_years < 2:
        return make_signal(DOMAIN_AGE, "warning", 5, explanation)
    return make_signal(DOMAIN_AGE, "good", 0, explanation)


def blacklist_signal(detections: int, total_engines: int = TOTAL_ENGINES) -> Signal:
    if detections <= 0:
        return make_signal(BLACKLIST, "good", 0, "Not found in any security blacklists")

    explanation = f"Flagged by {detections}/{total_engines} security vendors"
    if detections > 10:
        return make_signal(BLACKLIST, "bad", 25, explanation)
    if detections > 3:
        return make_signal(BLACKLIST, "warning", 15, explanation)
    return make_signal(BLACKLIST, "warning", 5, explanation)


def redirect_signal(initial_url: str, final_url: str, chain: list[str]) -> Signal:
    if not chain:
        return make_signal(REDIRECT, "good", 0, "Site loaded without redirecting")

    initial_host = extract_host(initial_url)
    final_host = extract_host(final_url)
    initial_reg = registrable_domain(initial_host)
    final_reg = registrable_domain(final_host)

    if initial_reg and final_reg and initial_reg != final_reg:
        return make_signal(
            REDIRECT, "bad", 15,
            f"Site redirected {len(chain)} time(s) and ended on a different domain ({final_host}). "
            "This is a common phishing/scam pattern.",
        )

    return make_signal(
        REDIRECT, "warning", 5,
        f"Site redirected {len(chain)} time(s) before loading. "
        "This can be normal, but increases risk if the destination is unexpected.",
    )


# ---------------------------------------------------------------------------
# Simulated lookups
# ---------------------------------------------------------------------------

_CREDENTIAL_TOKENS = ("secure", "login", "verify")

_KNOWN_DOMAIN_AGES = {
    "google.com": 26.0,
    "amazon.com": 28.0,
    "microsoft.com": 32.0,
    "facebook.com": 20.0,
}


def _seeded_random(salt: str, host: str) -> random.Random:
    # Same host, same answer: simulated lookups stay reproducible.
    digest = hashlib.sha256(f"{salt}:{host}".encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


class SimulatedThreatDatabase:
    def __init__(self, latency_s: float = 0.5):
        self.latency_s = latency_s

    async def lookup(self, url: str, credential: str | None = None) -> Signal:
        await asyncio.sleep(self.latency_s)
        host = extract_host(url)
        threat_type = None
        if "phishing" in host or "malware" in host:
            threat_type = "SOCIAL_ENGINEERING"
        logger.debug("Simulated threat lookup for %s: %s", host, threat_type or "clean")
        return threat_signal(threat_type)


class SimulatedDomainAge:
    """Stand-in for a WHOIS/RDAP query.

    Known hosts get a fixed age. Everything else gets an *estimate*, skewed
    younger when the host carries credential-phishing tokens. Callers that
    need ground truth must use :class:`RdapDomainAge` instead.
    """

    def __init__(self, latency_s: float = 0.6, known_ages: dict[str, float] | None = None):
        self.latency_s = latency_s
        self.known_ages = dict(_KNOWN_DOMAIN_AGES if known_ages is None else known_ages)

    def estimate_age(self, host: str) -> float:
        host = (host or "").lower()
        if host in self.known_ages:
            return self.known_ages[host]
        rng = _seeded_random("domain-age", host)
        if any(token in host for token in _CREDENTIAL_TOKENS):
            return rng.random() * 2
        return rng.random() * 10 + 1

    async def lookup(self, host: str, credential: str | None = None) -> DomainAgeResult:
        await asyncio.sleep(self.latency_s)
        age_years = self.estimate_age(host)
        logger.debug("Simulated domain age for %s: %.1f years", host, age_years)
        return DomainAgeResult(signal=domain_age_signal(age_years), age_years=age_years)


class SimulatedBlacklist:
    def __init__(self, latency_s: float = 0.7):
        self.latency_s = latency_s

    def count_detections(self, host: str) -> int:
        rng = _seeded_random("blacklist", host)
        if "malware" in host or "phishing" in host:
            return rng.randint(20, 49)
        if "suspicious" in host:
            return rng.randint(2, 11)
        return 0

    async def lookup(self, url: str, credential: str | None = None) -> Signal:
        await asyncio.sleep(self.latency_s)
        host = extract_host(url)
        detections = self.count_detections(host)
        logger.debug("Simulated blacklist for %s: %d detections", host, detections)
        return blacklist_signal(detections, TOTAL_ENGINES)


class StaticRedirectLookup:
    """Redirect tracking needs a server-side fetch; without one the answer is always unknown."""

    async def lookup(self, url: str, credential: str | None = None) -> Signal:
        return unavailable_signal(REDIRECT, "Redirect analysis requires server-side fetch")


# ---------------------------------------------------------------------------
# Live lookups (httpx)
# ---------------------------------------------------------------------------

SAFE_BROWSING_ENDPOINT = "https://safebrowsing.googleapis.com/v4/threatMatches:find"
RDAP_ENDPOINT = "https://rdap.org/domain/{domain}"
VIRUSTOTAL_ENDPOINT = "https://www.virustotal.com/api/v3/domains/{domain}"

_BROWSER_HEADERS = {
    "user-agent": config.USER_AGENT,
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.6",
}


class PrivateAddressRefused(LookupUnavailable):
    """The target (or a redirect hop) is an IP literal in a private or reserved range."""


async def _refuse_private_hosts(request: httpx.Request) -> None:
    # Runs for the first request and for every redirect hop.
    if is_private_address(request.url.host):
        raise PrivateAddressRefused(f"Refusing to fetch private or reserved address {request.url.host}.")


class _HttpLookup:
    def __init__(self, timeout_s: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout_s = timeout_s
        self._transport = transport

    def _client(self, *, follow_redirects: bool = True, guard_private: bool = False) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout_s,
            follow_redirects=follow_redirects,
            transport=self._transport,
            event_hooks={"request": [_refuse_private_hosts]} if guard_private else None,
        )


class SafeBrowsingThreatDatabase(_HttpLookup):
    threat_types = ["MALWARE", "SOCIAL_ENGINEERING", "UNWANTED_SOFTWARE"]

    def __init__(self, api_key: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def lookup(self, url: str, credential: str | None = None) -> Signal:
        key = credential or self.api_key
        if not key:
            raise LookupUnavailable("Safe Browsing API key is not configured.")

        payload = {
            "client": {"clientId": "site-safety-checker", "clientVersion": "1.0.0"},
            "threatInfo": {
                "threatTypes": self.threat_types,
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url}],
            },
        }
        async with self._client() as client:
            res = await client.post(SAFE_BROWSING_ENDPOINT, params={"key": key}, json=payload)
        if res.status_code != 200:
            raise LookupUnavailable(f"Safe Browsing returned HTTP {res.status_code}.")

        matches = res.json().get("matches") or []
        threat_type = str(matches[0].get("threatType") or "UNKNOWN_THREAT") if matches else None
        return threat_signal(threat_type)


class RdapDomainAge(_HttpLookup):
    async def lookup(self, host: str, credential: str | None = None) -> DomainAgeResult:
        domain = registrable_domain(host)
        async with self._client() as client:
            res = await client.get(
                RDAP_ENDPOINT.format(domain=domain),
                headers={"accept": "application/rdap+json, application/json"},
            )
        if res.status_code < 200 or res.status_code >= 300:
            raise LookupUnavailable(f"RDAP returned HTTP {res.status_code} for {domain}.")

        age_years = self.age_from_rdap(res.json())
        return DomainAgeResult(signal=domain_age_signal(age_years), age_years=age_years)

    @staticmethod
    def age_from_rdap(data: dict, now: datetime | None = None) -> float | None:
        reg_date = None
        for e in data.get("events") or []:
            action = str(e.get("eventAction") or "").lower()
            if "registration" in action:
                reg_date = e.get("eventDate")
                break
        if not reg_date:
            return None

        created = datetime.fromisoformat(str(reg_date).replace("Z", "+00:00"))
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        age = (now or datetime.now(timezone.utc)) - created
        days = age.total_seconds() / 86400
        return days / 365.25 if days >= 0 else None


class VirusTotalBlacklist(_HttpLookup):
    def __init__(self, api_key: str | None = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def lookup(self, url: str, credential: str | None = None) -> Signal:
        key = credential or self.api_key
        if not key:
            raise LookupUnavailable("VirusTotal API key is not configured.")

        host = extract_host(url)
        async with self._client() as client:
            res = await client.get(VIRUSTOTAL_ENDPOINT.format(domain=host), headers={"x-apikey": key})
        if res.status_code == 404:
            return blacklist_signal(0)
        if res.status_code != 200:
            raise LookupUnavailable(f"VirusTotal returned HTTP {res.status_code}.")

        stats = res.json().get("data", {}).get("attributes", {}).get("last_analysis_stats", {}) or {}
        detections = int(stats.get("malicious", 0)) + int(stats.get("suspicious", 0))
        total_engines = sum(int(v) for v in stats.values() if isinstance(v, int)) or TOTAL_ENGINES
        return blacklist_signal(detections, total_engines)


class HttpContentLookup(_HttpLookup):
    """HEAD-fetch the target and look at its content type.

    The timeout is enforced by cancelling the request. Timeouts, refusals and
    network errors all degrade to an ``unknown`` signal; nothing is raised.
    Private and reserved IP literals are never fetched, including as a
    redirect target.
    """

    def __init__(self, timeout_s: float | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(timeout_s=config.CONTENT_TIMEOUT_S if timeout_s is None else timeout_s, transport=transport)

    async def _head(self, url: str) -> httpx.Response:
        async with self._client(guard_private=True) as client:
            return await client.head(url, headers=_BROWSER_HEADERS)

    async def lookup(self, url: str, credential: str | None = None) -> ContentResult:
        try:
            res = await asyncio.wait_for(self._head(url), timeout=self.timeout_s)
        except PrivateAddressRefused as e:
            logger.info("Content fetch for %s skipped: %s", url, e)
            return ContentResult(
                signal=unavailable_signal(CONTENT, "Content analysis skipped for a private or reserved address"),
                degraded=True,
            )
        except (asyncio.TimeoutError, httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info("Content fetch for %s unavailable: %s", url, str(e) or type(e).__name__)
            return ContentResult(
                signal=unavailable_signal(
                    CONTENT,
                    "Content analysis unavailable (fetch was blocked, timed out, or failed)",
                    tooltip="A reachable server-side fetch is needed to analyze page content for credential forms and suspicious patterns.",
                ),
                degraded=True,
            )

        content_type = (res.headers.get("content-type") or "").lower()
        if "text/html" in content_type:
            explanation = "Site content appears to be standard HTML"
        else:
            explanation = "Unable to determine content type"
        return ContentResult(signal=make_signal(CONTENT, "good", 0, explanation), degraded=False)


class HttpRedirectLookup(_HttpLookup):
    def __init__(self, max_hops: int = 6, **kwargs):
        super().__init__(**kwargs)
        self.max_hops = max_hops

    async def lookup(self, url: str, credential: str | None = None) -> Signal:
        chain: list[str] = []
        current = url

        async with self._client(follow_redirects=False, guard_private=True) as client:
            for _ in range(self.max_hops):
                res = await client.get(current, headers=_BROWSER_HEADERS)
                location = res.headers.get("location")
                if 300 <= res.status_code < 400 and location:
                    chain.append(current)
                    current = str(httpx.URL(current).join(location))
                    continue
                return redirect_signal(url, current, chain)

        return make_signal(
            REDIRECT, "warning", 10,
            f"Site kept redirecting after {self.max_hops} hops without settling on a page.",
        )
