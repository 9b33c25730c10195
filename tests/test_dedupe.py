from datetime import datetime, timedelta, timezone

from news_cluster_pipeline.dedupe import dedupe_by_canonical_url, dedupe_items
from news_cluster_pipeline.models import Item, SourceType


BASE = datetime(2025, 9, 11, 12, 0, tzinfo=timezone.utc)


def make_item(item_id: str, url: str, minutes: int, canonical_url=None) -> Item:
    return Item(
        id=item_id,
        source_id="src",
        source_type=SourceType.EDITORIAL,
        title=f"Title {item_id}",
        url=url,
        canonical_url=canonical_url,
        published_at=BASE + timedelta(minutes=minutes),
    )


def test_newer_copy_replaces_older():
    old = make_item("old", "https://a/1", 0)
    new = make_item("new", "https://a/1", 30)
    out = dedupe_by_canonical_url([(old, "https://a/1"), (new, "https://a/1")])
    assert [it.id for it in out] == ["new"]


def test_equal_timestamps_keep_first_seen():
    first = make_item("first", "https://a/1", 0)
    second = make_item("second", "https://a/1", 0)
    out = dedupe_by_canonical_url([(first, "https://a/1"), (second, "https://a/1")])
    assert [it.id for it in out] == ["first"]


def test_result_sorted_newest_first():
    items = [
        make_item("a", "https://a/1", 5),
        make_item("b", "https://a/2", 50),
        make_item("c", "https://a/3", 20),
    ]
    out = dedupe_by_canonical_url((it, it.url) for it in items)
    assert [it.id for it in out] == ["b", "c", "a"]


def test_dedupe_items_prefers_canonical_url():
    a = make_item("a", "https://a/1?utm_source=x", 0, canonical_url="https://a/1")
    b = make_item("b", "https://a/1", 10)
    c = make_item("c", "https://a/2", 5)
    out = dedupe_items([a, b, c])
    assert [it.id for it in out] == ["b", "c"]


def test_dedupe_empty():
    assert dedupe_by_canonical_url([]) == []
