"""
"Similar articles" adjacency over embedded items.

Every embedded item is compared against every other one (O(n^2), no index).
A candidate must share at least one tag with the subject and reach the cosine
threshold; the closest candidates are then picked greedily while capping how
many may come from any single source.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import Item
from .similarity import cosine_similarity

logger = logging.getLogger(__name__)

NeighborMap = Dict[str, List[str]]


def _similarity_matrix(vectors: Sequence[Sequence[float]]) -> Optional[np.ndarray]:
    """Pairwise cosine matrix when all vectors share one dimensionality."""
    if len({len(v) for v in vectors}) != 1:
        return None
    mat = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(mat, axis=1)
    safe = np.where(norms == 0, 1.0, norms)
    unit = mat / safe[:, None]
    unit[norms == 0] = 0.0
    return unit @ unit.T


class NeighborFinder:
    """Compute the neighbor map for one pipeline run."""

    def __init__(self, k: int = 8, min_sim: float = 0.78, max_per_source: int = 3):
        if k < 1:
            raise ValueError("k must be >= 1")
        if not (-1.0 <= min_sim <= 1.0):
            raise ValueError("min_sim must be in range [-1.0, 1.0]")
        if max_per_source < 1:
            raise ValueError("max_per_source must be >= 1")
        self.k = k
        self.min_sim = min_sim
        self.max_per_source = max_per_source

    @classmethod
    def from_config(cls, config) -> "NeighborFinder":
        return cls(k=config.k, min_sim=config.min_similarity, max_per_source=config.max_per_source)

    def find(self, items: Sequence[Item]) -> NeighborMap:
        embedded = [it for it in items if it.embedding]
        if len(embedded) < 2:
            return {}

        vectors = [it.embedding for it in embedded]
        matrix = _similarity_matrix(vectors)
        tag_sets = [set(it.tags or []) for it in embedded]

        result: NeighborMap = {}
        for i, subject in enumerate(embedded):
            if not tag_sets[i]:
                continue
            candidates: List[Tuple[float, Item]] = []
            for j, other in enumerate(embedded):
                if i == j or tag_sets[i].isdisjoint(tag_sets[j]):
                    continue
                if matrix is not None:
                    sim = float(matrix[i, j])
                else:
                    sim = cosine_similarity(vectors[i], vectors[j])
                if sim < self.min_sim:
                    continue
                candidates.append((sim, other))

            picked = self._select(candidates)
            if picked:
                result[subject.id] = picked

        logger.info("Neighbor map: %d of %d embedded items have neighbors", len(result), len(embedded))
        return result

    def _select(self, candidates: List[Tuple[float, Item]]) -> List[str]:
        candidates.sort(key=lambda c: c[0], reverse=True)
        per_source: Dict[str, int] = {}
        picked: List[str] = []
        for _, other in candidates:
            used = per_source.get(other.source_id, 0)
            if used >= self.max_per_source:
                continue
            per_source[other.source_id] = used + 1
            picked.append(other.id)
            if len(picked) >= self.k:
                break
        return picked


def find_neighbors(
    items: Sequence[Item],
    k: int = 8,
    min_sim: float = 0.78,
    max_per_source: int = 3,
) -> NeighborMap:
    return NeighborFinder(k=k, min_sim=min_sim, max_per_source=max_per_source).find(items)


__all__ = ["NeighborMap", "NeighborFinder", "find_neighbors"]
