from __future__ import annotations

import asyncio
import time

import pytest

from sitecheck_agent.analyzer import (
    DEMO_URLS,
    HTTPS_SUGGESTION,
    SUGGESTIONS,
    SafetyChecker,
    assess,
    build_checker,
    format_result_summary,
    generate_suggestions,
    run_demo,
    verdict_for,
)
from sitecheck_agent.lookups import (
    DomainAgeResult,
    HttpContentLookup,
    HttpRedirectLookup,
    LookupUnavailable,
    SimulatedBlacklist,
    SimulatedDomainAge,
    SimulatedThreatDatabase,
    blacklist_signal,
    domain_age_signal,
    threat_signal,
)
from sitecheck_agent.signals import REDIRECT, check_ssl, make_signal

from conftest import FailingLookup, FixedSignalLookup, slow_transport


def _ids(result):
    return [s.id for s in result.signals]


# --- Verdicts and suggestions ---


@pytest.mark.parametrize(
    "score, verdict",
    [(0, "safe"), (10, "safe"), (11, "likely-safe"), (30, "likely-safe"), (31, "suspicious"),
     (60, "suspicious"), (61, "scam"), (100, "scam")],
)
def test_verdict_thresholds(score, verdict):
    assert verdict_for(score) == verdict


def test_suggestions_follow_tier_and_add_https_advice():
    signals = [check_ssl("http://example.com")]
    suggestions = generate_suggestions("scam", signals)
    assert suggestions[:5] == list(SUGGESTIONS["scam"])
    assert suggestions[-1] == HTTPS_SUGGESTION


def test_suggestions_without_https_problem():
    assert generate_suggestions("likely-safe", [check_ssl("https://example.com")]) == list(SUGGESTIONS["likely-safe"])


# --- Scenarios ---


def test_trusted_site_without_lookups_is_safe(checker):
    result = asyncio.run(checker.assess("https://google.com"))
    assert _ids(result) == ["ssl", "url-patterns", "content", "redirect"]
    assert result.signals[0].status == "good" and result.signals[0].score == 0
    assert result.signals[1].status == "good" and result.signals[1].score == 0
    assert result.total_score == 0
    assert (result.verdict, result.verdict_text) == ("safe", "Safe")
    assert result.suggestions == SUGGESTIONS["safe"]
    assert result.degraded_analysis is False
    assert result.domain_age_years is None


def test_ip_literal_over_plain_http(checker):
    result = asyncio.run(checker.assess("http://192.168.1.1/login"))
    ssl, patterns = result.signals[0], result.signals[1]
    assert (ssl.status, ssl.score) == ("bad", 10)
    assert patterns.score >= 5 and patterns.status == "bad"
    # "1" doubles as a lookalike for "l", so the homograph penalty applies too.
    assert patterns.score == 13
    assert result.total_score == 23
    assert result.verdict != "safe"
    assert HTTPS_SUGGESTION in result.suggestions
    content = next(s for s in result.signals if s.id == "content")
    assert content.status == "unknown"
    assert "private" in content.explanation


def test_result_collections_are_immutable(checker):
    result = asyncio.run(checker.assess("http://example.com"))
    assert isinstance(result.signals, tuple)
    assert isinstance(result.suggestions, tuple)
    with pytest.raises(AttributeError):
        result.signals.append(result.signals[0])
    with pytest.raises(AttributeError):
        result.suggestions.clear()


def test_brand_impersonation_with_lookalikes(checker):
    result = asyncio.run(checker.assess("https://g00gle-secure-login.tk", include_external_lookups=True))
    patterns = result.signals[1]
    assert patterns.status == "bad"
    assert patterns.score == 17
    assert "spam" in patterns.explanation
    assert "impersonating" in patterns.explanation
    assert "lookalike" in patterns.explanation
    # Credential tokens push the estimated domain age under two years.
    assert result.signals[2].id == "domain-age" and result.signals[2].score >= 5
    assert result.total_score >= 22
    assert result.verdict in ("suspicious", "likely-safe")


def test_content_timeout_degrades_but_completes(make_checker):
    checker = make_checker(content=HttpContentLookup(timeout_s=0.05, transport=slow_transport(1.0)))
    result = asyncio.run(checker.assess("https://example.com"))
    content = next(s for s in result.signals if s.id == "content")
    assert (content.status, content.score) == ("unknown", 0)
    assert result.degraded_analysis is True
    assert result.verdict == "safe"
    assert any("partial" in w for w in result.warnings)


def test_disabled_lookups_never_include_api_signals(checker):
    result = asyncio.run(checker.assess("https://phishing-malware.example", include_external_lookups=False))
    assert _ids(result) == ["ssl", "url-patterns", "content", "redirect"]
    assert result.signals[3].status == "unknown"


def test_enabled_lookups_are_ordered_and_truncated_for_display(checker):
    result = asyncio.run(checker.assess("https://google.com", include_external_lookups=True))
    assert _ids(result) == ["ssl", "url-patterns", "domain-age", "safe-browsing", "blacklist", "content"]
    assert result.domain_age_years == 26


def test_hidden_signal_still_counts_towards_score(make_checker):
    redirect = FixedSignalLookup(make_signal(REDIRECT, "bad", 15, "Redirected to another domain"))
    checker = make_checker(domain_age=SimulatedDomainAge(latency_s=0, known_ages={"example.com": 10}), redirect=redirect)
    result = asyncio.run(checker.assess("https://example.com", include_external_lookups=True))
    assert "redirect" not in _ids(result)
    assert result.total_score == 15
    assert result.verdict == "likely-safe"


def test_total_score_is_clamped_to_100(make_checker):
    checker = make_checker(
        threat_database=FixedSignalLookup(threat_signal("MALWARE")),
        blacklist=FixedSignalLookup(blacklist_signal(40)),
        domain_age=FixedSignalLookup(DomainAgeResult(signal=domain_age_signal(0.1), age_years=0.1)),
        redirect=FixedSignalLookup(make_signal(REDIRECT, "bad", 15, "Redirected")),
    )
    result = asyncio.run(checker.assess("http://a.b.c.d.secure-pay-l0gin-now.tk", include_external_lookups=True))
    assert result.total_score == 100
    assert result.verdict == "scam"
    assert all(0 <= s.score <= s.max_score for s in result.signals)


def test_failed_lookup_does_not_block_the_others(make_checker):
    checker = make_checker(threat_database=FailingLookup(LookupUnavailable("quota exceeded")))
    result = asyncio.run(checker.assess("https://malware-host.com", include_external_lookups=True))
    by_id = {s.id: s for s in result.signals}
    assert (by_id["safe-browsing"].status, by_id["safe-browsing"].score) == ("unknown", 0)
    assert by_id["blacklist"].score == 25
    assert result.degraded_analysis is True
    assert result.warnings == ("Google Safe Browsing: unavailable (quota exceeded)",)


def test_unexpected_lookup_error_is_recovered(make_checker):
    checker = make_checker(redirect=FailingLookup(ValueError("boom")))
    result = asyncio.run(checker.assess("https://example.com"))
    assert result.signals[-1].id == "redirect"
    assert result.signals[-1].status == "unknown"
    assert result.degraded_analysis is True


def test_lookups_receive_url_or_host(make_checker):
    domain_age = FixedSignalLookup(DomainAgeResult(signal=domain_age_signal(5), age_years=5))
    threat = FixedSignalLookup(threat_signal(None))
    checker = make_checker(domain_age=domain_age, threat_database=threat)
    asyncio.run(checker.assess("Shop.Example.com/", include_external_lookups=True))
    assert domain_age.calls == ["shop.example.com"]
    assert threat.calls == ["https://shop.example.com"]


def test_lookups_run_concurrently(make_checker):
    checker = make_checker(
        threat_database=SimulatedThreatDatabase(latency_s=0.3),
        domain_age=SimulatedDomainAge(latency_s=0.3),
        blacklist=SimulatedBlacklist(latency_s=0.3),
    )
    start = time.perf_counter()
    asyncio.run(checker.assess("https://example.com", include_external_lookups=True))
    assert time.perf_counter() - start < 0.8


def test_assessments_are_independent(checker):
    async def both():
        return await asyncio.gather(
            checker.assess("https://google.com"),
            checker.assess("http://192.168.1.1/login"),
        )

    first, second = asyncio.run(both())
    assert first.verdict == "safe"
    assert second.total_score == 23
    assert first.signals[1] is not second.signals[1]


@pytest.mark.parametrize("url", [d.url for d in DEMO_URLS] + ["https://xn--80ak6aa92e.com", "https://example.gov"])
def test_score_bounds_and_verdict_consistency(checker, url):
    result = asyncio.run(checker.assess(url, include_external_lookups=True))
    assert 0 <= result.total_score <= 100
    assert result.verdict == verdict_for(result.total_score)
    assert all(0 <= s.score <= s.max_score for s in result.signals)


# --- Helpers ---


def test_sync_assess_wrapper(checker):
    result = assess("google.com", checker=checker)
    assert result.normalized_url == "https://google.com"
    assert result.input_url == "google.com"
    assert result.host == "google.com"


def test_result_summary(checker):
    result = asyncio.run(checker.assess("https://google.com"))
    assert format_result_summary(result) == "URL: https://google.com\nScore: 0\nVerdict: Safe"


def test_run_demo_reports_each_case(checker):
    results = asyncio.run(run_demo(checker))
    assert [r.url for r in results] == [d.url for d in DEMO_URLS]
    assert results[0].matched is True
    assert all(r.matched == (r.verdict == r.expected_verdict) for r in results)


def test_build_checker_modes():
    live = build_checker("live")
    assert isinstance(live.redirect, HttpRedirectLookup)
    assert isinstance(build_checker("simulated"), SafetyChecker)
    with pytest.raises(ValueError):
        build_checker("bogus")
