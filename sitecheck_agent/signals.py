from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit

from .models import Signal, SignalStatus
from .urls import extract_host, normalize_url


@dataclass(frozen=True)
class SignalKind:
    id: str
    name: str
    icon: str
    max_score: int
    tooltip: str
    requires_external_lookup: bool = False


SSL = SignalKind(
    "ssl", "SSL/TLS Certificate", "lock", 10,
    "HTTPS encrypts data between your browser and the website, protecting sensitive information.",
)
URL_PATTERNS = SignalKind(
    "url-patterns", "URL Patterns", "link", 20,
    "Checks for suspicious patterns in the URL like unusual TLDs, IP addresses, or brand impersonation attempts.",
)
DOMAIN_AGE = SignalKind(
    "domain-age", "Domain Age", "calendar", 15,
    "Newer domains are more likely to be used for scams. Established domains with years of history are generally more trustworthy.",
    requires_external_lookup=True,
)
THREAT_DATABASE = SignalKind(
    "safe-browsing", "Google Safe Browsing", "shield", 25,
    "Google Safe Browsing checks URLs against databases of known phishing, malware, and unwanted software.",
    requires_external_lookup=True,
)
BLACKLIST = SignalKind(
    "blacklist", "Blacklist Status", "database", 25,
    "Aggregated results from multiple security vendors including antivirus companies and threat intelligence feeds.",
    requires_external_lookup=True,
)
CONTENT = SignalKind(
    "content", "Content Analysis", "file-text", 15,
    "Analyzes page content for login forms, credential collection, and suspicious scripts.",
    requires_external_lookup=True,
)
REDIRECT = SignalKind(
    "redirect", "Redirect Behavior", "arrow-right", 15,
    "Checks if the site redirects to unexpected domains, which is common in phishing attacks.",
    requires_external_lookup=True,
)

SIGNAL_KINDS = {k.id: k for k in (SSL, URL_PATTERNS, DOMAIN_AGE, THREAT_DATABASE, BLACKLIST, CONTENT, REDIRECT)}


def make_signal(
    kind: SignalKind,
    status: SignalStatus,
    score: int,
    explanation: str,
    *,
    icon: str | None = None,
    tooltip: str | None = None,
) -> Signal:
    return Signal(
        id=kind.id,
        name=kind.name,
        icon=icon or kind.icon,
        status=status,
        score=score,
        max_score=kind.max_score,
        explanation=explanation,
        tooltip=tooltip or kind.tooltip,
        requires_external_lookup=kind.requires_external_lookup,
    )


def unavailable_signal(kind: SignalKind, explanation: str, *, tooltip: str | None = None) -> Signal:
    return make_signal(kind, "unknown", 0, explanation, tooltip=tooltip)


# Lexical reference data. Plain configuration: swap the tuples to retune.

SUSPICIOUS_TLDS = (".tk", ".ml", ".ga", ".cf", ".gq", ".xyz", ".top", ".work", ".click", ".link", ".zip", ".mov")

TRUSTED_TLDS = (".gov", ".edu", ".mil")

BRAND_PATTERNS = (
    "paypal", "apple", "google", "microsoft", "amazon", "facebook", "netflix",
    "bank", "secure", "login", "account", "verify", "update",
)

# Latin letter -> visually confusable substitutes (digits, Greek, Cyrillic, IPA).
LOOKALIKES: dict[str, tuple[str, ...]] = {
    "o": ("0", "ο", "о"),
    "l": ("1", "і", "ӏ"),
    "a": ("а", "ɑ"),
    "e": ("е", "ё"),
}

_IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")

_URL_PATTERNS_NORMAL = "URL structure appears normal"


def check_ssl(url: str) -> Signal:
    has_https = normalize_url(url).startswith("https://")
    if has_https:
        return make_signal(SSL, "good", 0, "Site uses HTTPS encryption", icon="lock")
    return make_signal(
        SSL, "bad", 10,
        "Site does not use HTTPS - your connection is not encrypted",
        icon="unlock",
    )


def _serialized_query(normalized: str) -> str:
    try:
        query = urlsplit(normalized).query
        return urlencode(parse_qsl(query, keep_blank_values=True))
    except ValueError:
        return ""


def check_url_patterns(url: str) -> Signal:
    """Score the lexical shape of the host and query string.

    Conditions are evaluated in a fixed order and each one that fires adds a
    sentence to the explanation. Status is decided on the raw total, the
    stored score is capped at the signal's maximum.
    """
    normalized = normalize_url(url)
    host = extract_host(url)
    score = 0
    issues: list[str] = []

    if _IPV4_RE.match(host):
        score += 5
        issues.append("Uses IP address instead of domain name")

    if any(host.endswith(tld) for tld in SUSPICIOUS_TLDS):
        score += 4
        issues.append("Uses a TLD commonly associated with spam")

    if any(host.endswith(tld) for tld in TRUSTED_TLDS):
        score = max(0, score - 5)

    if len(host.split(".")) - 2 > 3:
        score += 3
        issues.append("Unusually many subdomains")

    if len(host) > 50:
        score += 2
        issues.append("Unusually long domain name")

    if host.count("-") > 2:
        score += 3
        issues.append("Multiple hyphens in domain")

    if any(
        brand in host and host not in (f"{brand}.com", f"www.{brand}.com")
        for brand in BRAND_PATTERNS
    ):
        score += 5
        issues.append("May be impersonating a known brand")

    if len(_serialized_query(normalized)) > 200:
        score += 2
        issues.append("Unusually complex URL parameters")

    status: SignalStatus = "good" if score == 0 else "warning" if score < 5 else "bad"
    return make_signal(
        URL_PATTERNS, status, score,
        ". ".join(issues) if issues else _URL_PATTERNS_NORMAL,
    )


@dataclass(frozen=True)
class HomographResult:
    is_homograph: bool
    explanation: str


def check_homograph(url: str) -> HomographResult:
    host = extract_host(url)

    if "xn--" in host:
        return HomographResult(
            True,
            "Domain uses internationalized characters (punycode) which may be used to impersonate legitimate sites",
        )

    for fakes in LOOKALIKES.values():
        if any(fake in host for fake in fakes):
            return HomographResult(
                True,
                "Domain may contain lookalike characters designed to impersonate legitimate sites",
            )

    return HomographResult(False, "No homograph attack detected")


def merge_homograph(signal: Signal, homograph: HomographResult) -> Signal:
    """Fold a homograph finding into the URL-pattern signal.

    Returns a new signal; the input is left untouched. The merged score is
    never lower and the status never milder than the base signal's.
    """
    if not homograph.is_homograph:
        return signal

    if signal.explanation == _URL_PATTERNS_NORMAL:
        explanation = homograph.explanation
    else:
        explanation = f"{signal.explanation}. {homograph.explanation}"

    return Signal.model_validate({
        **signal.model_dump(),
        "score": min(signal.score + 8, signal.max_score),
        "status": "bad",
        "explanation": explanation,
    })
