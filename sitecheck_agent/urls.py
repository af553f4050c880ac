from __future__ import annotations

import ipaddress
import re
from urllib.parse import urlsplit

import idna

_SCHEME_RE = re.compile(r"^[a-z][a-z\d+.-]*://")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_url(raw: str) -> str:
    """Canonicalize user input into an absolute URL string.

    Never fails: malformed input normalizes to something that simply won't
    pass :func:`is_valid_url`. Applying it twice gives the same result.
    """
    value = _WHITESPACE_RE.sub("", (raw or "").strip().lower())

    m = _SCHEME_RE.match(value)
    if not m:
        value = "https://" + value
        m = _SCHEME_RE.match(value)

    # Only the part after "scheme://" loses trailing slashes.
    prefix, rest = value[: m.end()], value[m.end():]
    return prefix + rest.rstrip("/")


def is_valid_url(raw: str) -> bool:
    try:
        parsed = urlsplit(normalize_url(raw))
        parsed.port  # raises ValueError on a malformed port
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def to_ascii_host(hostname: str) -> str:
    """Internationalized hosts in their ``xn--`` form; anything idna rejects is returned as-is."""
    if not hostname or hostname.isascii():
        return hostname
    try:
        return idna.encode(hostname, uts46=True).decode("ascii")
    except UnicodeError:  # idna.IDNAError and friends
        return hostname


def extract_host(raw: str) -> str:
    try:
        hostname = urlsplit(normalize_url(raw)).hostname or ""
    except ValueError:
        return ""
    return to_ascii_host(hostname)


def registrable_domain(hostname: str) -> str:
    parts = [p for p in (hostname or "").strip().lower().split(".") if p]
    if len(parts) <= 2:
        return ".".join(parts)
    return ".".join(parts[-2:])


def is_private_address(hostname: str) -> bool:
    """True for IP literals in private, loopback, link-local or otherwise reserved ranges."""
    try:
        addr = ipaddress.ip_address((hostname or "").strip("[]"))
    except ValueError:
        return False
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_multicast
        or addr.is_unspecified
    )
