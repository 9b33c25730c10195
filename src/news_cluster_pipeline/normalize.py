"""Convert raw feed records into canonical :class:`Item` objects.

Accepts both feedparser entries (``published_parsed``, ``media_content``,
``enclosures`` ...) and plain dicts shaped like rss-parser output
(``isoDate``, ``contentSnippet``, ``media:content`` ...). Unusable records
produce ``NormalizedItem(item=None, ...)`` rather than an exception.
"""

from __future__ import annotations

import calendar
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional

from bs4 import BeautifulSoup

from .models import Item, NormalizedItem, SourceType, _parse_dt
from .url import canonicalize_url, domain_from_url, stable_id

logger = logging.getLogger(__name__)

HN_SOURCE_ID = "hackernews"
HN_SUMMARY_CHARS = 240

_WS_RE = re.compile(r"\s+")


def _get(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def _text(value: Any) -> Optional[str]:
    """Flatten feedparser content lists / detail dicts into a string."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        parts = [_text(v) for v in value]
        joined = " ".join(p for p in parts if p)
        return joined or None
    if isinstance(value, Mapping):
        inner = value.get("value")
        return inner if isinstance(inner, str) else None
    return str(value)


def strip_html(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return _WS_RE.sub(" ", soup.get_text(" ", strip=True)).strip()


def first_image_from_html(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    img = BeautifulSoup(html, "html.parser").find("img", src=True)
    return img["src"] if img is not None else None


# ---------- field pickers ----------

def _pick_url(entry: Any) -> Optional[str]:
    for key in ("link", "guid", "id"):
        raw = _get(entry, key)
        if isinstance(raw, str) and raw:
            return canonicalize_url(raw)
    return None


def _pick_title(entry: Any) -> Optional[str]:
    title = _get(entry, "title")
    if not isinstance(title, str):
        return None
    trimmed = title.strip()
    return trimmed or None


def _pick_summary(entry: Any) -> str:
    for key in ("contentSnippet", "summary", "content"):
        raw = _text(_get(entry, key))
        if raw:
            return strip_html(raw)
    return ""


def _pick_author(entry: Any) -> Optional[str]:
    for key in ("author", "creator", "dc:creator"):
        author = _get(entry, key)
        if isinstance(author, str) and author.strip():
            return author.strip()
    return None


def _pick_published(entry: Any) -> datetime:
    for key in ("isoDate", "published", "updated"):
        raw = _get(entry, key)
        dt = _parse_dt(raw) if isinstance(raw, str) and raw else None
        if dt is not None:
            return dt.astimezone(timezone.utc)

    for key in ("pubDate", "published", "updated"):
        raw = _get(entry, key)
        if isinstance(raw, str) and raw:
            try:
                dt = parsedate_to_datetime(raw)
            except (TypeError, ValueError, IndexError):
                continue
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt.astimezone(timezone.utc)

    for key in ("published_parsed", "updated_parsed"):
        parsed = _get(entry, key)
        if parsed is not None:
            try:
                # feedparser struct_time values are UTC
                return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError):
                continue

    return datetime.now(timezone.utc)


def _media_url(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        for v in value:
            url = _media_url(v)
            if url:
                return url
        return None
    if not isinstance(value, Mapping):
        return None
    direct = value.get("url")
    if isinstance(direct, str) and direct:
        return direct
    nested = value.get("$")
    if isinstance(nested, Mapping):
        url = nested.get("url")
        if isinstance(url, str) and url:
            return url
    return None


def pick_rss_image_url(entry: Any) -> Optional[str]:
    """Best-effort lead image from enclosure, itunes, media RSS, or inline HTML."""
    enclosure = _get(entry, "enclosure")
    if isinstance(enclosure, Mapping):
        url = enclosure.get("url")
        if isinstance(url, str) and url:
            return url
    for enc in _get(entry, "enclosures") or []:
        if isinstance(enc, Mapping):
            href = enc.get("href") or enc.get("url")
            if isinstance(href, str) and href and str(enc.get("type", "image")).startswith("image"):
                return href

    itunes = _get(entry, "itunes")
    if isinstance(itunes, Mapping) and isinstance(itunes.get("image"), str) and itunes.get("image"):
        return itunes["image"]
    image = _get(entry, "image")
    if isinstance(image, Mapping) and isinstance(image.get("href"), str) and image.get("href"):
        return image["href"]

    for key in ("media:content", "media_content", "media:thumbnail", "media_thumbnail"):
        url = _media_url(_get(entry, key))
        if url:
            return url

    content = _text(_get(entry, "content"))
    summary = _get(entry, "summary")
    html = content if content else (summary if isinstance(summary, str) else None)
    return first_image_from_html(html)


def _safe_raw(entry: Any) -> Dict[str, Any]:
    if isinstance(entry, Mapping):
        return dict(entry)
    try:
        return {k: entry.get(k) for k in entry.keys()}  # type: ignore[attr-defined]
    except AttributeError:
        return {}


# ---------- public API ----------

def normalize_rss_entry(
    source_id: str,
    source_type: SourceType,
    entry: Any,
    default_url: Optional[str] = None,
) -> NormalizedItem:
    """Normalize one RSS/Atom entry.

    Returns ``item=None`` when no URL can be derived (then ``canonical_url``
    is None too) or when the title is missing.
    """
    url = _pick_url(entry) or (canonicalize_url(default_url) if default_url else None)
    if not url:
        return NormalizedItem(item=None, canonical_url=None)

    title = _pick_title(entry)
    if not title:
        return NormalizedItem(item=None, canonical_url=url)

    summary = _pick_summary(entry)
    item = Item(
        id=stable_id([source_id, url]),
        source_id=source_id,
        source_type=source_type,
        title=title,
        url=url,
        canonical_url=url,
        published_at=_pick_published(entry),
        summary=summary,
        description=summary,
        author=_pick_author(entry),
        domain=domain_from_url(url),
        raw=_safe_raw(entry),
    )
    try:
        item.validate()
    except ValueError as e:
        logger.debug("Dropping entry from %s: %s", source_id, e)
        return NormalizedItem(item=None, canonical_url=url)
    return NormalizedItem(item=item, canonical_url=url, rss_image_url=pick_rss_image_url(entry))


def normalize_hn_hit(hit: Mapping[str, Any]) -> NormalizedItem:
    """Normalize one Hacker News Algolia search hit."""
    raw_url = hit.get("url")
    url = canonicalize_url(raw_url) if isinstance(raw_url, str) and raw_url else None
    raw_title = hit.get("title")
    title = raw_title.strip() if isinstance(raw_title, str) else ""
    if not url or not title:
        return NormalizedItem(item=None, canonical_url=None)

    published = _parse_dt(hit.get("created_at")) if hit.get("created_at") else None
    if published is None:
        published = datetime.now(timezone.utc)

    try:
        hn_id = int(hit.get("objectID") or 0)
    except (TypeError, ValueError):
        hn_id = 0
    story_text = hit.get("story_text")

    item = Item(
        id=stable_id([HN_SOURCE_ID, url]),
        source_id=HN_SOURCE_ID,
        source_type=SourceType.COMMUNITY,
        title=title,
        url=url,
        canonical_url=url,
        published_at=published.astimezone(timezone.utc),
        author=hit.get("author") or None,
        summary=str(story_text)[:HN_SUMMARY_CHARS] if story_text else "",
        domain=domain_from_url(url),
        signals={
            "hn": {
                "id": hn_id,
                "score": hit.get("points"),
                "comments": hit.get("num_comments"),
            }
        },
        raw=dict(hit),
    )
    return NormalizedItem(item=item, canonical_url=url)


__all__ = [
    "strip_html",
    "first_image_from_html",
    "pick_rss_image_url",
    "normalize_rss_entry",
    "normalize_hn_hit",
]
