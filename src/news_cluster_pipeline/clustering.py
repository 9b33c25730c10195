"""
Incremental greedy story clustering.

Items are ingested one at a time, in the order the caller supplies them. Each
item is scored against every open cluster's representative; it joins the
best-scoring cluster if that score clears the threshold for the metric that
produced it, otherwise it seeds a new cluster. A cluster's representative
title and tokens are fixed by its seed item; only the embedding centroid,
tag set and timestamps evolve as members join.

Because seeding depends on arrival order, callers should always feed items in
a deterministic order (the deduplicator's newest-first output).

Two policies share the algorithm:

- ``NearDuplicatePolicy``: cosine over embeddings, else title Jaccard.
- ``TopicPolicy``: the same base score plus capped tag-overlap and domain
  bonuses, with generic "stop tags" excluded from the overlap.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from .models import Item, StoryCluster, empty_lenses
from .similarity import (
    SimilarityMetric,
    SimilarityScore,
    cosine_similarity,
    jaccard,
    running_average_embedding,
    tokenize_title,
)
from .url import stable_id


logger = logging.getLogger(__name__)

DEFAULT_STOP_TAGS: FrozenSet[str] = frozenset({"ai", "general", "frontend", "devtools", "data"})


@dataclass
class ClusterState:
    """A cluster under construction. Only ever touched by ``ClusterBuilder``."""

    id: str
    rep_title: str
    rep_tokens: Set[str]
    rep_embedding: Optional[List[float]]
    rep_domain: Optional[str]
    rep_item_id: str
    created_at: datetime
    updated_at: datetime
    count: int = 1
    item_ids: List[str] = field(default_factory=list)
    tags: Set[str] = field(default_factory=set)
    lenses: Dict[str, List[str]] = field(default_factory=empty_lenses)

    @property
    def size(self) -> int:
        return len(self.item_ids)

    def to_story_cluster(self) -> StoryCluster:
        return StoryCluster(
            id=self.id,
            title=self.rep_title,
            tags=sorted(self.tags),
            item_ids=list(self.item_ids),
            lenses={k: list(v) for k, v in self.lenses.items()},
            representative_item_id=self.rep_item_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class ItemFeatures:
    """Per-item values computed once before scoring against every cluster."""

    tokens: FrozenSet[str]
    embedding: Optional[Sequence[float]]
    tags: FrozenSet[str]
    domain: Optional[str]


@dataclass
class MergeOutcome:
    """Result of ingesting one item."""

    item_id: str
    cluster_id: str
    created: bool
    similarity: Optional[SimilarityScore] = None
    cluster_size: int = 1

    @property
    def score(self) -> float:
        return self.similarity.score if self.similarity is not None else 0.0

    @property
    def metric(self) -> Optional[SimilarityMetric]:
        return self.similarity.metric if self.similarity is not None else None


class ClusteringPolicy:
    """Scoring rules and thresholds for one clustering variant."""

    namespace: str = "cluster"

    def __init__(
        self,
        token_threshold: float,
        embedding_threshold: float,
        min_size: int = 1,
    ) -> None:
        if not (0.0 <= token_threshold <= 1.0):
            raise ValueError("token_threshold must be in range [0.0, 1.0]")
        if not (0.0 <= embedding_threshold <= 1.0):
            raise ValueError("embedding_threshold must be in range [0.0, 1.0]")
        if min_size < 1:
            raise ValueError("min_size must be >= 1")
        self.token_threshold = token_threshold
        self.embedding_threshold = embedding_threshold
        self.min_size = min_size

    def features(self, item: Item) -> ItemFeatures:
        return ItemFeatures(
            tokens=frozenset(tokenize_title(item.title)),
            embedding=item.embedding if item.embedding else None,
            tags=frozenset(item.tags or []),
            domain=item.domain or None,
        )

    def base_score(self, features: ItemFeatures, cluster: ClusterState) -> SimilarityScore:
        if features.embedding is not None and cluster.rep_embedding is not None:
            return SimilarityScore(
                score=cosine_similarity(features.embedding, cluster.rep_embedding),
                metric=SimilarityMetric.EMBEDDING_COSINE,
            )
        return SimilarityScore(
            score=jaccard(features.tokens, cluster.rep_tokens),
            metric=SimilarityMetric.TOKEN_JACCARD,
        )

    def score(self, features: ItemFeatures, cluster: ClusterState) -> SimilarityScore:
        return self.base_score(features, cluster)

    def threshold_for(self, score: SimilarityScore) -> float:
        return self.embedding_threshold if score.used_embedding else self.token_threshold

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(token_threshold={self.token_threshold}, "
            f"embedding_threshold={self.embedding_threshold}, min_size={self.min_size})"
        )


class NearDuplicatePolicy(ClusteringPolicy):
    """Tight thresholds: merge near-identical coverage of one event."""

    namespace = "cluster"

    def __init__(
        self,
        token_threshold: float = 0.5,
        embedding_threshold: float = 0.85,
        min_size: int = 1,
    ) -> None:
        super().__init__(token_threshold, embedding_threshold, min_size)


class TopicPolicy(ClusteringPolicy):
    """Looser thresholds plus tag and domain bonuses for related coverage.

    The tag bonus only counts informative tags (stop tags removed) and only
    applies once ``min_tag_overlap`` of them are shared, so one generic tag
    in common cannot pull unrelated stories into a mega-cluster.
    """

    namespace = "topic"

    def __init__(
        self,
        token_threshold: float = 0.25,
        embedding_threshold: float = 0.78,
        min_size: int = 2,
        *,
        tag_weight: float = 0.25,
        domain_bonus: float = 0.05,
        min_tag_overlap: int = 1,
        stop_tags: Optional[Iterable[str]] = None,
    ) -> None:
        super().__init__(token_threshold, embedding_threshold, min_size)
        self.tag_weight = max(0.0, min(1.0, tag_weight))
        self.domain_bonus = max(0.0, min(0.4, domain_bonus))
        self.min_tag_overlap = max(1, int(min_tag_overlap))
        if stop_tags is None:
            self.stop_tags = DEFAULT_STOP_TAGS
        else:
            self.stop_tags = frozenset(t.strip().lower() for t in stop_tags if t and t.strip())

    def informative(self, tags: Iterable[str]) -> Set[str]:
        return {t.lower() for t in tags} - self.stop_tags

    def tag_bonus(self, item_tags: Iterable[str], cluster_tags: Set[str]) -> float:
        informative_item = self.informative(item_tags)
        if not informative_item or not cluster_tags:
            return 0.0
        informative_cluster = self.informative(cluster_tags)
        overlap = len(informative_item & informative_cluster)
        if overlap < self.min_tag_overlap:
            return 0.0
        denom = max(1, min(len(informative_item), len(informative_cluster)))
        return (overlap / denom) * self.tag_weight

    def score(self, features: ItemFeatures, cluster: ClusterState) -> SimilarityScore:
        base = self.base_score(features, cluster)
        score = base.score

        bonus = self.tag_bonus(features.tags, cluster.tags)
        if bonus:
            score = min(1.0, score + bonus)

        if features.domain and cluster.rep_domain and features.domain == cluster.rep_domain:
            score = min(1.0, score + self.domain_bonus)

        return base.with_score(max(0.0, min(1.0, score)))

    def __repr__(self) -> str:
        return (
            f"TopicPolicy(token_threshold={self.token_threshold}, "
            f"embedding_threshold={self.embedding_threshold}, min_size={self.min_size}, "
            f"tag_weight={self.tag_weight}, domain_bonus={self.domain_bonus}, "
            f"min_tag_overlap={self.min_tag_overlap}, stop_tags={sorted(self.stop_tags)})"
        )


class ClusterBuilder:
    """Own the open clusters of a single clustering pass.

    Single-threaded by contract: ``ingest`` mutates builder state in place and
    the pass is finished with ``finalize``.
    """

    def __init__(self, policy: ClusteringPolicy, *, strict_dimensions: bool = False) -> None:
        self.policy = policy
        self.strict_dimensions = strict_dimensions
        self._clusters: List[ClusterState] = []

    @property
    def clusters(self) -> List[ClusterState]:
        return list(self._clusters)

    def __len__(self) -> int:
        return len(self._clusters)

    def ingest(self, item: Item) -> MergeOutcome:
        features = self.policy.features(item)

        best_idx = -1
        best: Optional[SimilarityScore] = None
        for idx, cluster in enumerate(self._clusters):
            candidate = self.policy.score(features, cluster)
            # strictly greater: ties keep the earlier cluster, zero never matches
            if candidate.score > (best.score if best is not None else 0.0):
                best = candidate
                best_idx = idx

        if best is not None and best.score >= self.policy.threshold_for(best):
            cluster = self._clusters[best_idx]
            self._merge(cluster, item, features)
            logger.debug(
                "Merged %s into %s (%s=%.3f)", item.id, cluster.id, best.metric.value, best.score
            )
            return MergeOutcome(
                item_id=item.id,
                cluster_id=cluster.id,
                created=False,
                similarity=best,
                cluster_size=cluster.size,
            )

        cluster = self._seed(item, features)
        return MergeOutcome(item_id=item.id, cluster_id=cluster.id, created=True, similarity=best)

    def ingest_all(self, items: Iterable[Item]) -> List[MergeOutcome]:
        return [self.ingest(item) for item in items]

    def finalize(self) -> List[StoryCluster]:
        """Project clusters to ``StoryCluster``; drop those below ``min_size``."""
        kept = [c.to_story_cluster() for c in self._clusters if c.size >= self.policy.min_size]
        logger.info(
            "%s produced %d clusters (%d kept, min_size=%d)",
            type(self.policy).__name__,
            len(self._clusters),
            len(kept),
            self.policy.min_size,
        )
        return kept

    # -------- internals --------
    def _merge(self, cluster: ClusterState, item: Item, features: ItemFeatures) -> None:
        cluster.item_ids.append(item.id)
        cluster.tags.update(item.tags or [])
        cluster.lenses[item.source_type.value].append(item.id)
        if features.embedding is not None:
            cluster.rep_embedding = running_average_embedding(
                cluster.rep_embedding,
                features.embedding,
                cluster.count,
                strict=self.strict_dimensions,
            )
        if item.published_at > cluster.updated_at:
            cluster.updated_at = item.published_at
        cluster.count += 1

    def _seed(self, item: Item, features: ItemFeatures) -> ClusterState:
        cluster = ClusterState(
            id=stable_id([self.policy.namespace, item.id]),
            rep_title=item.title,
            rep_tokens=set(features.tokens),
            rep_embedding=[float(x) for x in features.embedding] if features.embedding is not None else None,
            rep_domain=item.domain or None,
            rep_item_id=item.id,
            created_at=item.published_at,
            updated_at=item.published_at,
            item_ids=[item.id],
            tags=set(item.tags or []),
        )
        cluster.lenses[item.source_type.value].append(item.id)
        self._clusters.append(cluster)
        return cluster


def cluster_items(
    items: Iterable[Item],
    token_threshold: float = 0.5,
    embedding_threshold: float = 0.85,
    *,
    strict_dimensions: bool = False,
) -> List[StoryCluster]:
    """Near-duplicate clustering over ``items`` in the given order."""
    builder = ClusterBuilder(
        NearDuplicatePolicy(token_threshold, embedding_threshold),
        strict_dimensions=strict_dimensions,
    )
    builder.ingest_all(items)
    return builder.finalize()


def cluster_by_topic(
    items: Iterable[Item],
    token_threshold: float = 0.25,
    embedding_threshold: float = 0.78,
    min_size: int = 2,
    *,
    tag_weight: float = 0.25,
    domain_bonus: float = 0.05,
    min_tag_overlap: int = 1,
    stop_tags: Optional[Iterable[str]] = None,
    strict_dimensions: bool = False,
) -> List[StoryCluster]:
    """Topic clustering over ``items`` in the given order."""
    policy = TopicPolicy(
        token_threshold,
        embedding_threshold,
        min_size,
        tag_weight=tag_weight,
        domain_bonus=domain_bonus,
        min_tag_overlap=min_tag_overlap,
        stop_tags=stop_tags,
    )
    builder = ClusterBuilder(policy, strict_dimensions=strict_dimensions)
    builder.ingest_all(items)
    return builder.finalize()


__all__ = [
    "DEFAULT_STOP_TAGS",
    "ClusterState",
    "ItemFeatures",
    "MergeOutcome",
    "ClusteringPolicy",
    "NearDuplicatePolicy",
    "TopicPolicy",
    "ClusterBuilder",
    "cluster_items",
    "cluster_by_topic",
]
