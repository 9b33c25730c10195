from datetime import datetime, timezone
from typing import List

import pytest

from news_cluster_pipeline.audit import AuditMetrics, compute_audit, is_title_only
from news_cluster_pipeline.models import Item, SourceType, StoryCluster, empty_lenses


NOW = datetime(2025, 9, 11, tzinfo=timezone.utc)
LONG_SUMMARY = "A detailed summary that goes well beyond the headline and explains what happened in depth."


def make_item(item_id: str, source_id: str, *, summary: str = "", text: str = "") -> Item:
    return Item(
        id=item_id,
        source_id=source_id,
        source_type=SourceType.EDITORIAL,
        title=f"Headline {item_id}",
        url=f"https://example.com/{item_id}",
        published_at=NOW,
        summary=summary,
        extracted_text=text or None,
    )


def make_story(story_id: str, item_ids: List[str]) -> StoryCluster:
    return StoryCluster(
        id=story_id,
        title=story_id,
        tags=[],
        item_ids=item_ids,
        lenses=empty_lenses(),
        representative_item_id=item_ids[0],
        created_at=NOW,
        updated_at=NOW,
    )


def test_compute_audit_percentages():
    items = [
        make_item("i1", "a", summary=LONG_SUMMARY, text="x" * 600),
        make_item("i2", "b", summary="Headline i2", text="x" * 600),
        make_item("i3", "a"),
        make_item("i4", "a", summary=LONG_SUMMARY),
    ]
    stories = [make_story("s1", ["i1", "i2"]), make_story("s2", ["i1", "i3", "i4"])]

    m = compute_audit(items, stories)
    assert m.items == 4
    assert m.stories == 2
    assert m.clusters_one_source == 1
    assert m.clusters_one_source_pct == pytest.approx(50.0)
    assert m.clusters_lt3 == 1
    assert m.clusters_lt3_pct == pytest.approx(50.0)
    assert m.short_text == 2
    assert m.short_text_pct == pytest.approx(50.0)
    assert m.title_only == 2
    assert m.title_only_pct == pytest.approx(50.0)
    assert m.is_invalid()
    assert not m.is_invalid(threshold_pct=60)


def test_empty_dataset_is_valid():
    m = compute_audit([], [])
    assert m == AuditMetrics()
    assert not m.is_invalid()


def test_is_title_only():
    assert is_title_only(make_item("a", "s"))
    assert is_title_only(make_item("a", "s", summary="headline A"))
    assert is_title_only(make_item("a", "s", summary="Short blurb."))
    assert not is_title_only(make_item("a", "s", summary=LONG_SUMMARY))


def test_to_dict_round_numbers():
    m = compute_audit([make_item("a", "s", summary=LONG_SUMMARY, text="y" * 800)], [])
    d = m.to_dict()
    assert d["short_text"] == 0
    assert d["title_only_pct"] == 0.0
    assert set(m.percentages()) == {
        "clusters_one_source_pct",
        "clusters_lt3_pct",
        "short_text_pct",
        "title_only_pct",
    }
