from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable

from . import config
from .lookups import (
    BlacklistLookup,
    ContentLookup,
    ContentResult,
    DomainAgeLookup,
    DomainAgeResult,
    HttpContentLookup,
    HttpRedirectLookup,
    RdapDomainAge,
    RedirectLookup,
    SafeBrowsingThreatDatabase,
    SimulatedBlacklist,
    SimulatedDomainAge,
    SimulatedThreatDatabase,
    StaticRedirectLookup,
    ThreatDatabaseLookup,
    VirusTotalBlacklist,
)
from .models import CheckResult, DemoCase, DemoResult, Signal, Verdict
from .signals import (
    BLACKLIST,
    CONTENT,
    DOMAIN_AGE,
    REDIRECT,
    SSL,
    THREAT_DATABASE,
    SignalKind,
    check_homograph,
    check_ssl,
    check_url_patterns,
    merge_homograph,
    unavailable_signal,
)
from .urls import extract_host, normalize_url

logger = logging.getLogger(__name__)


MAX_DISPLAY_SIGNALS = 6

VERDICT_TEXT: dict[str, str] = {
    "safe": "Safe",
    "likely-safe": "Likely Safe",
    "suspicious": "Suspicious",
    "scam": "Scam / Dangerous",
}

SUGGESTIONS: dict[str, tuple[str, ...]] = {
    "safe": (
        "This site appears safe to visit",
        "Always verify you're on the correct URL before entering sensitive information",
    ),
    "likely-safe": (
        "Proceed with normal caution",
        "Verify the URL matches what you expected",
        "Look for the padlock icon in your browser's address bar",
    ),
    "suspicious": (
        "Be cautious - avoid entering personal or financial information",
        "Verify this is the official site through a trusted source",
        "Consider using a password manager to avoid phishing",
        "Report this site if you believe it's fraudulent",
    ),
    "scam": (
        "Do NOT enter any personal information on this site",
        "Leave this site immediately",
        "If you entered credentials, change your passwords immediately",
        "Report this site to your bank if financial information was involved",
        "Report to Google Safe Browsing: safebrowsing.google.com/safebrowsing/report_phish/",
    ),
}

HTTPS_SUGGESTION = "Never enter passwords or credit card info on non-HTTPS sites"


def _clamp_score(score: int) -> int:
    return max(0, min(100, int(score)))


def verdict_for(total_score: int) -> Verdict:
    if total_score <= 10:
        return "safe"
    if total_score <= 30:
        return "likely-safe"
    if total_score <= 60:
        return "suspicious"
    return "scam"


def generate_suggestions(verdict: Verdict, signals: list[Signal]) -> list[str]:
    suggestions = list(SUGGESTIONS[verdict])
    ssl_signal = next((s for s in signals if s.id == SSL.id), None)
    if ssl_signal is not None and ssl_signal.status == "bad":
        suggestions.append(HTTPS_SUGGESTION)
    return suggestions


def format_result_summary(result: CheckResult) -> str:
    return f"URL: {result.normalized_url}\nScore: {result.total_score}\nVerdict: {result.verdict_text}"


class SafetyChecker:
    """Runs every applicable signal for a URL and folds them into a verdict.

    The external lookups are injected so that live services, simulations and
    test doubles are interchangeable. The checker keeps no state between
    calls; a single instance can serve concurrent assessments.
    """

    def __init__(
        self,
        threat_database: ThreatDatabaseLookup | None = None,
        domain_age: DomainAgeLookup | None = None,
        blacklist: BlacklistLookup | None = None,
        content: ContentLookup | None = None,
        redirect: RedirectLookup | None = None,
        credentials: dict[str, str | None] | None = None,
    ):
        self.threat_database = threat_database or SimulatedThreatDatabase()
        self.domain_age = domain_age or SimulatedDomainAge()
        self.blacklist = blacklist or SimulatedBlacklist()
        self.content = content or HttpContentLookup()
        self.redirect = redirect or StaticRedirectLookup()
        self.credentials = dict(credentials or {})

    async def assess(self, url: str, include_external_lookups: bool = False) -> CheckResult:
        """Assess ``url``. Callers validate it with ``is_valid_url`` first.

        Lookups are started before the lexical checks and joined afterwards;
        a lookup that fails yields its ``unknown`` signal and marks the result
        as degraded, it never aborts the assessment.
        """
        t0 = time.perf_counter()
        normalized_url = normalize_url(url)
        host = extract_host(url)

        timings: dict[str, int] = {}
        warnings: list[str] = []
        degraded = False

        logger.info("Assessment started: %s (external lookups: %s)", normalized_url, include_external_lookups)

        async def timed(name: str, coro: Awaitable[Any]) -> Any:
            start = time.perf_counter()
            try:
                return await coro
            finally:
                timings[name] = int((time.perf_counter() - start) * 1000)

        def dispatch(kind: SignalKind, coro: Awaitable[Any]) -> asyncio.Task:
            return asyncio.create_task(timed(kind.id, coro))

        # Fan out
        tasks: dict[str, asyncio.Task] = {
            CONTENT.id: dispatch(CONTENT, self.content.lookup(normalized_url, self.credentials.get(CONTENT.id))),
            REDIRECT.id: dispatch(REDIRECT, self.redirect.lookup(normalized_url, self.credentials.get(REDIRECT.id))),
        }
        if include_external_lookups:
            tasks[DOMAIN_AGE.id] = dispatch(DOMAIN_AGE, self.domain_age.lookup(host, self.credentials.get(DOMAIN_AGE.id)))
            tasks[THREAT_DATABASE.id] = dispatch(
                THREAT_DATABASE, self.threat_database.lookup(normalized_url, self.credentials.get(THREAT_DATABASE.id))
            )
            tasks[BLACKLIST.id] = dispatch(BLACKLIST, self.blacklist.lookup(normalized_url, self.credentials.get(BLACKLIST.id)))

        # Lexical batch and homograph merge complete before any lookup is joined.
        start = time.perf_counter()
        ssl_signal = check_ssl(url)
        url_patterns_signal = merge_homograph(check_url_patterns(url), check_homograph(url))
        timings["lexical"] = int((time.perf_counter() - start) * 1000)

        # Fan in
        outcomes = dict(zip(tasks.keys(), await asyncio.gather(*tasks.values(), return_exceptions=True)))

        def recover(kind: SignalKind) -> Any:
            nonlocal degraded
            outcome = outcomes.get(kind.id)
            if not isinstance(outcome, BaseException):
                return outcome
            reason = str(outcome) or type(outcome).__name__
            logger.warning("%s lookup failed for %s: %s", kind.name, host, reason)
            warnings.append(f"{kind.name}: unavailable ({reason})")
            degraded = True
            return None

        content_result: ContentResult | None = recover(CONTENT)
        if content_result is None:
            content_signal = unavailable_signal(CONTENT, "Content analysis unavailable")
        else:
            content_signal = content_result.signal
            if content_result.degraded:
                degraded = True
                warnings.append(f"{CONTENT.name}: fetch was blocked or timed out; this assessment is partial")

        redirect_signal = recover(REDIRECT) or unavailable_signal(REDIRECT, "Redirect analysis unavailable")

        signals: list[Signal] = [ssl_signal, url_patterns_signal]
        domain_age_years: float | None = None

        if include_external_lookups:
            age_result: DomainAgeResult | None = recover(DOMAIN_AGE)
            if age_result is None:
                signals.append(unavailable_signal(DOMAIN_AGE, "Unable to determine domain age"))
            else:
                signals.append(age_result.signal)
                domain_age_years = age_result.age_years

            signals.append(
                recover(THREAT_DATABASE)
                or unavailable_signal(THREAT_DATABASE, "Threat database lookup unavailable")
            )
            signals.append(
                recover(BLACKLIST)
                or unavailable_signal(BLACKLIST, "Blacklist lookup unavailable")
            )

        signals.append(content_signal)
        signals.append(redirect_signal)

        # Scored over every collected signal; truncation is for display only.
        total_score = _clamp_score(sum(s.score for s in signals))
        verdict = verdict_for(total_score)
        suggestions = generate_suggestions(verdict, signals)

        timings["total"] = int((time.perf_counter() - t0) * 1000)
        logger.info(
            "Assessment complete: %s score=%d verdict=%s degraded=%s",
            normalized_url, total_score, verdict, degraded,
        )

        return CheckResult(
            input_url=url,
            normalized_url=normalized_url,
            host=host,
            total_score=total_score,
            verdict=verdict,
            verdict_text=VERDICT_TEXT[verdict],
            signals=tuple(signals[:MAX_DISPLAY_SIGNALS]),
            suggestions=tuple(suggestions),
            timestamp=datetime.now(timezone.utc),
            degraded_analysis=degraded,
            domain_age_years=domain_age_years,
            warnings=tuple(warnings),
            timings_ms=timings,
        )


def build_checker(mode: str | None = None) -> SafetyChecker:
    mode = (mode or config.LOOKUP_MODE).strip().lower()
    if mode == "simulated":
        return SafetyChecker()
    if mode == "live":
        return SafetyChecker(
            threat_database=SafeBrowsingThreatDatabase(api_key=config.SAFE_BROWSING_API_KEY),
            domain_age=RdapDomainAge(),
            blacklist=VirusTotalBlacklist(api_key=config.VIRUSTOTAL_API_KEY),
            content=HttpContentLookup(),
            redirect=HttpRedirectLookup(),
        )
    raise ValueError(f"Unknown lookup mode: {mode!r} (expected 'simulated' or 'live').")


def assess(url: str, include_external_lookups: bool = False, checker: SafetyChecker | None = None) -> CheckResult:
    """Blocking wrapper around :meth:`SafetyChecker.assess` for scripts; not for use inside a running loop."""
    checker = checker or build_checker()
    return asyncio.run(checker.assess(url, include_external_lookups))


DEMO_URLS: list[DemoCase] = [
    DemoCase(url="https://google.com", expected_verdict="safe", description="Major trusted site"),
    DemoCase(url="https://amazon.com", expected_verdict="safe", description="Major e-commerce site"),
    DemoCase(url="http://192.168.1.1/login", expected_verdict="suspicious", description="IP address in URL"),
    DemoCase(url="https://g00gle-secure-login.tk", expected_verdict="scam", description="Brand impersonation + suspicious TLD"),
    DemoCase(url="https://paypal-verify-account.xyz/update", expected_verdict="scam", description="Phishing attempt pattern"),
    DemoCase(url="https://my-small-business.com", expected_verdict="likely-safe", description="Normal small business site"),
]


async def run_demo(checker: SafetyChecker, include_external_lookups: bool = False) -> list[DemoResult]:
    results = await asyncio.gather(*(checker.assess(c.url, include_external_lookups) for c in DEMO_URLS))
    return [
        DemoResult(
            url=case.url,
            description=case.description,
            expected_verdict=case.expected_verdict,
            verdict=result.verdict,
            total_score=result.total_score,
            matched=result.verdict == case.expected_verdict,
        )
        for case, result in zip(DEMO_URLS, results)
    ]
