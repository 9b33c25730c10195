"""Quality metrics for a generated dataset.

A dataset is flagged invalid when any tracked share exceeds the threshold
(20% by default): single-source clusters, clusters with fewer than three
items, items with little extracted text, and items whose summary is
effectively just the title.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Sequence

from .models import Item, StoryCluster

logger = logging.getLogger(__name__)

SHORT_TEXT_CHARS = 500
TITLE_ONLY_SUMMARY_CHARS = 80
SMALL_CLUSTER_SIZE = 3
DEFAULT_THRESHOLD_PCT = 20.0


def _pct(n: int, d: int) -> float:
    return (n / d) * 100 if d else 0.0


@dataclass
class AuditMetrics:
    items: int = 0
    stories: int = 0
    clusters_one_source: int = 0
    clusters_one_source_pct: float = 0.0
    clusters_lt3: int = 0
    clusters_lt3_pct: float = 0.0
    short_text: int = 0
    short_text_pct: float = 0.0
    title_only: int = 0
    title_only_pct: float = 0.0

    def percentages(self) -> Dict[str, float]:
        return {
            "clusters_one_source_pct": self.clusters_one_source_pct,
            "clusters_lt3_pct": self.clusters_lt3_pct,
            "short_text_pct": self.short_text_pct,
            "title_only_pct": self.title_only_pct,
        }

    def is_invalid(self, threshold_pct: float = DEFAULT_THRESHOLD_PCT) -> bool:
        return any(v > threshold_pct for v in self.percentages().values())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_title_only(item: Item) -> bool:
    summary = (item.summary or "").strip()
    title = (item.title or "").strip()
    if not summary:
        return True
    if summary.lower() == title.lower():
        return True
    return len(summary) < TITLE_ONLY_SUMMARY_CHARS


def compute_audit(items: Sequence[Item], stories: Sequence[StoryCluster]) -> AuditMetrics:
    source_by_id = {it.id: it.source_id for it in items}

    clusters_one_source = 0
    for c in stories:
        sources = {source_by_id[i] for i in c.item_ids if i in source_by_id}
        if len(sources) <= 1:
            clusters_one_source += 1

    clusters_lt3 = sum(1 for c in stories if c.size < SMALL_CLUSTER_SIZE)
    short_text = sum(1 for it in items if len((it.extracted_text or "").strip()) < SHORT_TEXT_CHARS)
    title_only = sum(1 for it in items if is_title_only(it))

    return AuditMetrics(
        items=len(items),
        stories=len(stories),
        clusters_one_source=clusters_one_source,
        clusters_one_source_pct=_pct(clusters_one_source, len(stories)),
        clusters_lt3=clusters_lt3,
        clusters_lt3_pct=_pct(clusters_lt3, len(stories)),
        short_text=short_text,
        short_text_pct=_pct(short_text, len(items)),
        title_only=title_only,
        title_only_pct=_pct(title_only, len(items)),
    )


__all__ = ["AuditMetrics", "compute_audit", "is_title_only"]
