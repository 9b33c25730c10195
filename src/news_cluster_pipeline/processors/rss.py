from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import feedparser

from ..config import ConfigError
from ..models import DefaultsConfig, NormalizedItem, SourceFeed, SourceType
from ..normalize import normalize_rss_entry
from .base import HttpFetcher

logger = logging.getLogger(__name__)

RSS_KINDS = {"rss", "googlenews_rss"}


@dataclass
class FeedResult:
    """Outcome of fetching one feed URL."""

    feed: SourceFeed
    items: List[NormalizedItem] = field(default_factory=list)
    ok: bool = True
    duration_ms: int = 0


class RSSProcessor(HttpFetcher):
    """Fetch RSS/Atom feeds and normalize their entries.

    - Uses httpx with configured headers and timeouts
    - Parses with feedparser from bytes
    - Entries that cannot become an item are skipped
    - Concurrency across feeds is bounded by ``max_parallel_fetches``
    """

    accept = "application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.7"

    def __init__(
        self,
        defaults: DefaultsConfig,
        source_type_for: Optional[Callable[[str], SourceType]] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> None:
        super().__init__(defaults, max_retries=max_retries, base_delay=base_delay)
        self.source_type_for = source_type_for or (lambda _sid: SourceType.PRIMARY)

    # ---------- Public API (sync wrappers for convenience) ----------
    def fetch_feed(self, feed: SourceFeed) -> List[NormalizedItem]:
        return asyncio.run(self.fetch_feed_async(feed))

    def fetch_multiple(self, feeds: List[SourceFeed]) -> List[FeedResult]:
        return asyncio.run(self.fetch_multiple_async(feeds))

    # ---------- Async API ----------
    async def fetch_feed_async(self, feed: SourceFeed) -> List[NormalizedItem]:
        result = await self._fetch_one(feed)
        return result.items

    async def fetch_multiple_async(self, feeds: List[SourceFeed]) -> List[FeedResult]:
        sem = asyncio.Semaphore(max(1, self.defaults.max_parallel_fetches))

        async def _task(feed: SourceFeed) -> FeedResult:
            async with sem:
                return await self._fetch_one(feed)

        results = await asyncio.gather(*[_task(f) for f in feeds], return_exceptions=True)
        out: List[FeedResult] = []
        for feed, r in zip(feeds, results):
            if isinstance(r, Exception):
                logger.warning("RSS fetch error for %s: %s", feed.url, r)
                out.append(FeedResult(feed=feed, ok=False))
                continue
            out.append(r)
        return out

    # ---------- Internal helpers ----------
    async def _fetch_one(self, feed: SourceFeed) -> FeedResult:
        if feed.kind not in RSS_KINDS:
            raise ConfigError(f"RSSProcessor only supports {sorted(RSS_KINDS)}, got '{feed.kind}'")
        if not feed.url:
            raise ConfigError(f"RSS feed for '{feed.source_id}' missing 'url'")

        started = time.monotonic()
        resp = await self._http_get_with_retry(feed.url)
        if resp is None:
            logger.warning("RSS fetch failed for %s; returning empty list", feed.url)
            return FeedResult(feed=feed, ok=False, duration_ms=_elapsed_ms(started))

        parsed = feedparser.parse(resp.content)
        if getattr(parsed, "bozo", False) and not parsed.entries:
            logger.warning("Unparseable feed %s: %s", feed.url, getattr(parsed, "bozo_exception", None))

        source_type = self.source_type_for(feed.source_id)
        items: List[NormalizedItem] = []
        for entry in parsed.entries or []:
            normalized = normalize_rss_entry(feed.source_id, source_type, entry)
            if normalized.item is None or not normalized.canonical_url:
                logger.debug("Skipping unusable RSS entry from %s", feed.source_id)
                continue
            items.append(normalized)
        return FeedResult(feed=feed, items=items, duration_ms=_elapsed_ms(started))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
