from datetime import datetime, timedelta, timezone

import pytest

from news_cluster_pipeline.models import (
    Item,
    SourceConfig,
    SourceType,
    StoryCluster,
    empty_lenses,
    format_dt,
)


def make_item(**kw) -> Item:
    base = dict(
        id="abc",
        source_id="techcrunch",
        source_type=SourceType.EDITORIAL,
        title="Title",
        url="https://example.com/a",
        published_at=datetime(2025, 9, 11, 12, 0, tzinfo=timezone.utc),
    )
    base.update(kw)
    return Item(**base)


def test_source_type_from_str():
    assert SourceType.from_str(" VC_BLOG ") is SourceType.VC_BLOG
    with pytest.raises(ValueError):
        SourceType.from_str("blog")


def test_item_validate():
    make_item().validate()
    with pytest.raises(ValueError):
        make_item(title="  ").validate()
    with pytest.raises(ValueError):
        make_item(published_at=datetime(2025, 9, 11)).validate()
    with pytest.raises(ValueError):
        make_item(source_type="editorial").validate()


def test_item_dict_round_trip():
    item = make_item(
        canonical_url="https://example.com/a",
        tags=["ai"],
        embedding=[0.5, 0.25],
        image_url="https://img/x.jpg",
        signals={"hn": {"id": 1}},
    )
    d = item.to_dict()
    assert d["sourceType"] == "editorial"
    assert d["publishedAt"] == "2025-09-11T12:00:00Z"
    assert d["media"] == {"imageUrl": "https://img/x.jpg"}
    assert "embedding" not in item.to_dict(include_embedding=False)
    assert Item.from_dict(d) == item


def test_format_dt_converts_to_utc():
    cet = timezone(timedelta(hours=2))
    assert format_dt(datetime(2025, 9, 11, 14, 0, tzinfo=cet)) == "2025-09-11T12:00:00Z"
    assert format_dt(datetime(2025, 9, 11, 12, 0)) == "2025-09-11T12:00:00Z"


def test_story_cluster_to_dict():
    now = datetime(2025, 9, 11, tzinfo=timezone.utc)
    c = StoryCluster(
        id="c1",
        title="T",
        tags=["ai"],
        item_ids=["a", "b"],
        lenses=empty_lenses(),
        representative_item_id="a",
        created_at=now,
        updated_at=now,
    )
    d = c.to_dict()
    assert c.size == 2
    assert d["verify"] == {"claims": []}
    assert d["narrativeDiff"] is None and d["opposing"] is None
    assert len(d["lenses"]) == 6


def test_source_config_to_dict():
    rss = SourceConfig(id="a", name="A", type=SourceType.EDITORIAL, url="https://a/feed")
    gn = SourceConfig(id="g", name="G", type=SourceType.AGGREGATOR, kind="googlenews_rss", queries=["x"])
    assert rss.to_dict()["rss"] == "https://a/feed"
    assert gn.to_dict()["rss"] is None
