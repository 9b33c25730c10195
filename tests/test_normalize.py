from datetime import datetime, timezone

import feedparser

from news_cluster_pipeline.models import SourceType
from news_cluster_pipeline.normalize import (
    HN_SOURCE_ID,
    first_image_from_html,
    normalize_hn_hit,
    normalize_rss_entry,
    pick_rss_image_url,
    strip_html,
)
from news_cluster_pipeline.url import stable_id


def test_normalize_rss_dict_entry():
    entry = {
        "title": "  OpenAI ships a new model  ",
        "link": "https://Example.com/ai/model/?utm_source=rss",
        "contentSnippet": "<p>Faster &amp; cheaper</p>",
        "isoDate": "2025-09-11T12:00:00Z",
        "creator": "Jane Doe",
    }
    res = normalize_rss_entry("techcrunch", SourceType.EDITORIAL, entry)
    item = res.item
    assert item is not None
    assert res.canonical_url == "https://example.com/ai/model"
    assert item.url == item.canonical_url == "https://example.com/ai/model"
    assert item.id == stable_id(["techcrunch", "https://example.com/ai/model"])
    assert item.title == "OpenAI ships a new model"
    assert item.summary == "Faster & cheaper"
    assert item.author == "Jane Doe"
    assert item.domain == "example.com"
    assert item.source_type is SourceType.EDITORIAL
    assert item.published_at == datetime(2025, 9, 11, 12, 0, tzinfo=timezone.utc)


def test_normalize_rss_rfc822_date():
    entry = {"title": "T", "link": "https://example.com/x", "pubDate": "Thu, 11 Sep 2025 12:34:56 GMT"}
    item = normalize_rss_entry("s", SourceType.PRIMARY, entry).item
    assert item.published_at == datetime(2025, 9, 11, 12, 34, 56, tzinfo=timezone.utc)


def test_normalize_rss_missing_date_defaults_to_now():
    before = datetime.now(timezone.utc)
    item = normalize_rss_entry("s", SourceType.PRIMARY, {"title": "T", "link": "https://example.com/x"}).item
    assert item.published_at >= before
    assert item.published_at.tzinfo is not None


def test_normalize_rss_missing_link_or_title():
    no_link = normalize_rss_entry("s", SourceType.PRIMARY, {"title": "Hello"})
    assert no_link.item is None
    assert no_link.canonical_url is None

    no_title = normalize_rss_entry("s", SourceType.PRIMARY, {"link": "https://example.com/a/", "title": "   "})
    assert no_title.item is None
    assert no_title.canonical_url == "https://example.com/a"


def test_normalize_rss_uses_guid_when_no_link():
    entry = {"title": "T", "guid": "https://example.com/guid-story"}
    res = normalize_rss_entry("s", SourceType.PRIMARY, entry)
    assert res.canonical_url == "https://example.com/guid-story"


def test_normalize_feedparser_entry():
    xml = b"""<?xml version="1.0"?>
    <rss version="2.0"><channel><title>x</title>
      <item>
        <title>Chip shortage eases</title>
        <link>https://example.com/chips?utm_campaign=a</link>
        <description>&lt;p&gt;Supply is &lt;b&gt;back&lt;/b&gt;&lt;/p&gt;</description>
        <pubDate>Thu, 11 Sep 2025 09:00:00 GMT</pubDate>
        <enclosure url="https://img.example.com/chip.jpg" type="image/jpeg" length="1"/>
      </item>
    </channel></rss>"""
    entry = feedparser.parse(xml).entries[0]
    res = normalize_rss_entry("wired", SourceType.EDITORIAL, entry)
    assert res.item is not None
    assert res.canonical_url == "https://example.com/chips"
    assert res.item.summary == "Supply is back"
    assert res.item.published_at == datetime(2025, 9, 11, 9, 0, tzinfo=timezone.utc)
    assert res.rss_image_url == "https://img.example.com/chip.jpg"


def test_pick_rss_image_url_sources():
    assert pick_rss_image_url({"enclosure": {"url": "https://img/a.jpg"}}) == "https://img/a.jpg"
    assert pick_rss_image_url({"media:content": {"$": {"url": "https://img/b.jpg"}}}) == "https://img/b.jpg"
    assert pick_rss_image_url({"content": '<p><img src="https://img/c.png"></p>'}) == "https://img/c.png"
    assert pick_rss_image_url({"title": "no image"}) is None


def test_strip_html_removes_scripts_and_styles():
    html = "<style>p{}</style><p>Hello <script>alert(1)</script>world</p>"
    assert strip_html(html) == "Hello world"


def test_strip_html_decodes_entities():
    html = "<p>Apple&#8217;s M4&nbsp;chip &mdash; faster</p>"
    assert strip_html(html) == "Apple’s M4 chip — faster"


def test_first_image_from_html_reads_src_attribute():
    html = '<img data-src="x" alt="a>b" src="https://cdn/img.png"><img src="https://cdn/second.png">'
    assert first_image_from_html(html) == "https://cdn/img.png"
    assert first_image_from_html('<img data-src="lazy.png">') is None
    assert first_image_from_html("") is None


def test_normalize_hn_hit():
    hit = {
        "objectID": "42",
        "title": " Show HN: A tiny database ",
        "url": "https://example.com/db?utm_medium=hn",
        "created_at": "2025-09-11T10:00:00.000Z",
        "points": 120,
        "num_comments": 33,
        "author": "pg",
        "story_text": "x" * 500,
    }
    res = normalize_hn_hit(hit)
    item = res.item
    assert item is not None
    assert item.source_id == HN_SOURCE_ID
    assert item.source_type is SourceType.COMMUNITY
    assert item.url == "https://example.com/db"
    assert item.id == stable_id([HN_SOURCE_ID, "https://example.com/db"])
    assert item.title == "Show HN: A tiny database"
    assert item.author == "pg"
    assert len(item.summary) == 240
    assert item.signals == {"hn": {"id": 42, "score": 120, "comments": 33}}
    assert item.published_at == datetime(2025, 9, 11, 10, 0, tzinfo=timezone.utc)


def test_normalize_hn_hit_without_url_is_dropped():
    res = normalize_hn_hit({"objectID": "1", "title": "Ask HN: anything?"})
    assert res.item is None
    assert res.canonical_url is None
