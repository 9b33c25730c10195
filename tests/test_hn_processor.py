from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from news_cluster_pipeline.config import HN_ALGOLIA_URL
from news_cluster_pipeline.models import DefaultsConfig, Item, NormalizedItem, SourceType
from news_cluster_pipeline.normalize import HN_SOURCE_ID
from news_cluster_pipeline.processors.hn import HNAlgoliaProcessor
from news_cluster_pipeline.url import stable_id


HITS = [
    {
        "objectID": "101",
        "title": "A faster JSON parser",
        "url": "https://example.com/json?utm_source=hn",
        "created_at": "2025-09-11T10:00:00Z",
        "points": 250,
        "num_comments": 80,
        "author": "alice",
    },
    {"objectID": "102", "title": "Ask HN: What are you working on?", "url": None},
]


class FakeResponse:
    request = None

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def fake_client_factory(handler):
    class FakeClient:
        urls = []
        def __init__(self, *a, **k):
            pass
        async def __aenter__(self):
            return self
        async def __aexit__(self, *exc):
            return False
        async def get(self, url):
            FakeClient.urls.append(url)
            return handler(url)
    return FakeClient


def make_defaults() -> DefaultsConfig:
    return DefaultsConfig(user_agent="TestUA", timeout_seconds=5, max_parallel_fetches=2)


@pytest.mark.asyncio
async def test_fetch_pages_and_normalize(monkeypatch):
    def handler(url):
        page = parse_qs(urlsplit(url).query)["page"][0]
        return FakeResponse(payload={"hits": HITS if page == "0" else []})

    client = fake_client_factory(handler)
    monkeypatch.setattr("httpx.AsyncClient", client)

    hn = HNAlgoliaProcessor(make_defaults(), pages=2, hits_per_page=50)
    result = await hn.fetch_async()
    assert result.ok is True
    assert result.feed.source_id == HN_SOURCE_ID
    assert result.feed.url == HN_ALGOLIA_URL
    assert len(result.items) == 1
    item = result.items[0].item
    assert item.url == "https://example.com/json"
    assert item.source_type is SourceType.COMMUNITY
    assert item.signals["hn"]["score"] == 250

    assert len(client.urls) == 2
    assert client.urls[0].startswith(HN_ALGOLIA_URL + "&page=0&hitsPerPage=50")


def test_failed_pages_mark_source_not_ok(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_client_factory(lambda url: FakeResponse(status_code=500)))
    hn = HNAlgoliaProcessor(make_defaults(), pages=1, max_retries=1, base_delay=0)
    result = hn.fetch()
    assert result.ok is False
    assert result.items == []


@pytest.mark.asyncio
async def test_invalid_json_yields_no_hits(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_client_factory(lambda url: FakeResponse(payload=None)))
    hn = HNAlgoliaProcessor(make_defaults(), pages=1)
    assert await hn.fetch_page_async(HN_ALGOLIA_URL, 0) == []


def test_pages_are_clamped():
    assert HNAlgoliaProcessor(make_defaults(), pages=50).pages == 10
    assert HNAlgoliaProcessor(make_defaults(), pages=0).pages == 1


def _hn_discussion_item() -> NormalizedItem:
    url = "https://news.ycombinator.com/item?id=99"
    item = Item(
        id=stable_id([HN_SOURCE_ID, url]),
        source_id=HN_SOURCE_ID,
        source_type=SourceType.COMMUNITY,
        title="Show HN: Something",
        url=url,
        canonical_url=url,
        published_at=datetime(2025, 9, 1, tzinfo=timezone.utc),
    )
    return NormalizedItem(item=item, canonical_url=url)


@pytest.mark.asyncio
async def test_enrich_rekeys_to_linked_article(monkeypatch):
    payload = {"by": "dang", "time": 1757592000, "score": 10, "descendants": 3, "url": "https://example.com/story?utm_source=hn"}
    client = fake_client_factory(lambda url: FakeResponse(payload=payload))
    monkeypatch.setattr("httpx.AsyncClient", client)

    n = await HNAlgoliaProcessor(make_defaults()).enrich_async(_hn_discussion_item())
    assert client.urls == ["https://hacker-news.firebaseio.com/v0/item/99.json"]
    assert n.item.url == "https://example.com/story"
    assert n.canonical_url == "https://example.com/story"
    assert n.item.id == stable_id([HN_SOURCE_ID, "https://example.com/story"])
    assert n.item.domain == "example.com"
    assert n.item.author == "dang"
    assert n.item.signals == {"hn": {"id": 99, "score": 10, "comments": 3}}
    assert n.item.published_at == datetime.fromtimestamp(1757592000, tz=timezone.utc)


@pytest.mark.asyncio
async def test_enrich_keeps_text_posts_on_hn(monkeypatch):
    client = fake_client_factory(lambda url: FakeResponse(payload={"by": "pg", "score": 5}))
    monkeypatch.setattr("httpx.AsyncClient", client)

    n = await HNAlgoliaProcessor(make_defaults()).enrich_async(_hn_discussion_item())
    assert n.item.url == "https://news.ycombinator.com/item?id=99"
    assert n.item.author == "pg"


@pytest.mark.asyncio
async def test_enrich_ignores_non_hn_items(monkeypatch):
    client = fake_client_factory(lambda url: FakeResponse(payload={}))
    monkeypatch.setattr("httpx.AsyncClient", client)
    other = _hn_discussion_item()
    other.item.source_id = "techcrunch"
    await HNAlgoliaProcessor(make_defaults()).enrich_async(other)
    assert client.urls == []
