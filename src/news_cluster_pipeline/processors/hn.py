from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config import HN_ALGOLIA_URL
from ..models import DefaultsConfig, NormalizedItem, SourceFeed
from ..normalize import HN_SOURCE_ID, normalize_hn_hit
from ..url import canonicalize_url, domain_from_url, extract_hn_id_from_url, stable_id
from .base import HttpFetcher
from .rss import FeedResult, _elapsed_ms

logger = logging.getLogger(__name__)

HN_ITEM_URL = "https://hacker-news.firebaseio.com/v0/item/{id}.json"
MAX_PAGES = 10
HITS_PER_PAGE = 100


class HNAlgoliaProcessor(HttpFetcher):
    """Fetch recent Hacker News stories from the Algolia search API.

    Pages are fetched sequentially; a failed page yields no hits rather than
    failing the whole source.
    """

    accept = "application/json"

    def __init__(
        self,
        defaults: DefaultsConfig,
        pages: int = 5,
        hits_per_page: int = HITS_PER_PAGE,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> None:
        super().__init__(defaults, max_retries=max_retries, base_delay=base_delay)
        self.pages = max(1, min(pages, MAX_PAGES))
        self.hits_per_page = hits_per_page

    def fetch(self, feed: Optional[SourceFeed] = None) -> FeedResult:
        return asyncio.run(self.fetch_async(feed))

    async def fetch_async(self, feed: Optional[SourceFeed] = None) -> FeedResult:
        feed = feed or SourceFeed(source_id=HN_SOURCE_ID, url=HN_ALGOLIA_URL, kind="hn_algolia")
        started = time.monotonic()
        hits: List[Dict[str, Any]] = []
        for page in range(self.pages):
            hits.extend(await self.fetch_page_async(feed.url, page))

        items: List[NormalizedItem] = []
        for hit in hits:
            normalized = normalize_hn_hit(hit)
            if normalized.item is None or not normalized.canonical_url:
                continue
            items.append(normalized)
        return FeedResult(feed=feed, items=items, ok=bool(hits), duration_ms=_elapsed_ms(started))

    async def fetch_page_async(self, base_url: str, page: int) -> List[Dict[str, Any]]:
        sep = "&" if "?" in base_url else "?"
        url = f"{base_url}{sep}page={page}&hitsPerPage={self.hits_per_page}"
        resp = await self._http_get_with_retry(url)
        if resp is None:
            return []
        try:
            payload = resp.json()
        except ValueError as e:
            logger.warning("Invalid JSON from %s: %s", url, e)
            return []
        hits = payload.get("hits") if isinstance(payload, dict) else None
        return [h for h in hits if isinstance(h, dict)] if isinstance(hits, list) else []

    async def fetch_item_async(self, hn_id: int) -> Optional[Dict[str, Any]]:
        resp = await self._http_get_with_retry(HN_ITEM_URL.format(id=hn_id))
        if resp is None:
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    async def enrich_async(self, normalized: NormalizedItem) -> NormalizedItem:
        """Pull score, comments, author and the linked article for HN discussion links.

        Applies to hackernews items whose URL is a ``news.ycombinator.com``
        item page. When the story links out, the item is re-keyed to the
        article URL.
        """
        item = normalized.item
        if item is None or item.source_id != HN_SOURCE_ID:
            return normalized
        hn_id = extract_hn_id_from_url(item.url)
        if not hn_id:
            return normalized

        data = await self.fetch_item_async(hn_id)
        if not data:
            return normalized

        item.signals = {"hn": {"id": hn_id, "score": data.get("score"), "comments": data.get("descendants")}}
        if data.get("by"):
            item.author = data["by"]
        if isinstance(data.get("time"), (int, float)):
            item.published_at = datetime.fromtimestamp(data["time"], tz=timezone.utc)
        if data.get("url"):
            canon = canonicalize_url(data["url"])
            item.url = canon
            item.canonical_url = canon
            item.id = stable_id([item.source_id, canon])
            item.domain = domain_from_url(canon)
            normalized.canonical_url = canon
        return normalized


__all__ = ["HNAlgoliaProcessor", "HN_ITEM_URL"]
