from __future__ import annotations

import re
from urllib.parse import urlsplit

WILDCARD = "*"

_NUMERIC_RE = re.compile(r"^\d+$")
_DATE_RE = re.compile(r"^(\d{4}-\d{1,2}-\d{1,2}|\d{8})$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
_HEX_RE = re.compile(r"^[0-9a-f]{8,}$", re.IGNORECASE)
_LONG_TOKEN_RE = re.compile(r"^[a-z0-9]{20,}$", re.IGNORECASE)


def strip_www(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def extract_domain(url: str) -> str:
    """Return the bare host of ``url`` (no ``www.``), or ``""`` if it has none."""
    try:
        host = urlsplit(url).hostname or ""
    except ValueError:
        return ""
    return strip_www(host)


def generalise_segment(segment: str) -> str:
    if not segment:
        return segment
    for pattern in (_NUMERIC_RE, _DATE_RE, _UUID_RE, _HEX_RE, _LONG_TOKEN_RE):
        if pattern.match(segment):
            return WILDCARD
    return segment


def url_pattern(url: str) -> str:
    """Generalise ``url`` into ``domain/path`` with id-like segments wildcarded.

    ``https://news.example/a/123456/`` becomes ``news.example/a/*/``.
    """
    domain = extract_domain(url)
    if not domain:
        return url
    path = urlsplit(url).path or "/"
    segments = [generalise_segment(segment) for segment in path.split("/")]
    return f"{domain}{'/'.join(segments)}"


def domain_pattern(domain: str) -> str:
    return f"{strip_www(domain)}/{WILDCARD}"
