from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from .models import Item


def dedupe_by_canonical_url(pairs: Iterable[Tuple[Item, str]]) -> List[Item]:
    """Keep one item per canonical URL, newest first.

    A later ``published_at`` replaces the incumbent; equal timestamps keep the
    first one seen. Callers must drop pairs with an empty key beforehand.
    The descending order of the result is what clustering relies on for
    reproducible cluster seeds.
    """
    by_url: Dict[str, Item] = {}
    for item, canonical_url in pairs:
        existing = by_url.get(canonical_url)
        if existing is None:
            by_url[canonical_url] = item
            continue
        if item.published_at > existing.published_at:
            by_url[canonical_url] = item
    return sorted(by_url.values(), key=lambda it: it.published_at, reverse=True)


def dedupe_items(items: Iterable[Item]) -> List[Item]:
    """Dedupe items keyed by ``canonical_url`` (falling back to ``url``)."""
    pairs = [(item, item.canonical_url or item.url) for item in items]
    return dedupe_by_canonical_url((item, key) for item, key in pairs if key)


__all__ = ["dedupe_by_canonical_url", "dedupe_items"]
