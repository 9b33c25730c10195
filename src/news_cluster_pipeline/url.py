"""URL canonicalization and stable identity hashing.

Canonical URLs are the cross-source key for "the same article"; every item id
and cluster id in a dataset is derived from them through :func:`stable_id`.
"""

from __future__ import annotations

import hashlib
from typing import Iterable, Optional
from urllib.parse import parse_qs, unquote_plus, urlsplit, urlunsplit

TRACKING_PARAMS = frozenset(
    {
        "ref",
        "source",
        "feature",
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "utm_id",
        "utm_name",
        "utm_reader",
    }
)

STABLE_ID_LENGTH = 24

DEFAULT_PORTS = {"http": "80", "https": "443"}


def _is_tracking_param(name: str) -> bool:
    return name in TRACKING_PARAMS or name.startswith("utm_")


def _strip_tracking(query: str) -> str:
    kept = []
    for segment in query.split("&"):
        if not segment:
            continue
        name = unquote_plus(segment.split("=", 1)[0])
        if _is_tracking_param(name):
            continue
        kept.append(segment)
    return "&".join(kept)


def _normalize_netloc(scheme: str, netloc: str) -> str:
    userinfo, sep, host = netloc.rpartition("@")
    host = host.lower()
    default_port = DEFAULT_PORTS.get(scheme)
    if default_port and host.endswith(f":{default_port}"):
        host = host[: -len(default_port) - 1]
    return f"{userinfo}{sep}{host}"


def canonicalize_url(raw: str) -> str:
    """Normalize a raw URL; input that is not an absolute URL comes back unchanged.

    Drops the fragment, tracking query parameters and the scheme's default
    port, and strips trailing slashes from any path other than ``/``.
    Idempotent.
    """
    if not isinstance(raw, str):
        return raw
    try:
        parts = urlsplit(raw.strip())
    except ValueError:
        return raw
    if not parts.scheme or not parts.netloc:
        return raw

    scheme = parts.scheme.lower()
    path = parts.path.rstrip("/") or "/"

    return urlunsplit(
        (
            scheme,
            _normalize_netloc(scheme, parts.netloc),
            path,
            _strip_tracking(parts.query),
            "",
        )
    )


def domain_from_url(url: str) -> Optional[str]:
    """Hostname without a leading ``www.``; None when there is no host."""
    try:
        host = urlsplit(url).hostname
    except (ValueError, AttributeError, TypeError):
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def stable_id(parts: Iterable[str]) -> str:
    """Deterministic 24-hex-char identity for the joined parts."""
    joined = "|".join(parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:STABLE_ID_LENGTH]


def extract_hn_id_from_url(url: str) -> Optional[int]:
    """Item id from a ``news.ycombinator.com/item?id=...`` link."""
    try:
        parts = urlsplit(url)
    except (ValueError, AttributeError, TypeError):
        return None
    if parts.hostname != "news.ycombinator.com":
        return None
    values = parse_qs(parts.query).get("id")
    if not values:
        return None
    try:
        return int(values[0])
    except ValueError:
        return None


__all__ = [
    "TRACKING_PARAMS",
    "canonicalize_url",
    "domain_from_url",
    "stable_id",
    "extract_hn_id_from_url",
]
