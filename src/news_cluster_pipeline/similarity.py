"""
Similarity primitives for story clustering.

Title token sets are compared with Jaccard similarity, embeddings with cosine
similarity. Cluster representatives keep a running centroid of their
members' embeddings, updated online as items merge in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Set

import numpy as np


STOPWORDS: frozenset = frozenset(
    {
        # function words
        "the", "and", "for", "with", "from", "into", "onto", "over", "under",
        "about", "after", "before", "than", "then", "that", "this", "these",
        "those", "their", "there", "they", "them", "its", "his", "her", "hers",
        "our", "ours", "your", "yours", "you", "who", "whom", "whose", "what",
        "when", "where", "which", "while", "why", "how", "are", "was", "were",
        "been", "being", "has", "have", "had", "having", "does", "did", "doing",
        "will", "would", "could", "should", "can", "may", "might", "must",
        "not", "but", "nor", "yet", "all", "any", "both", "each", "few",
        "more", "most", "other", "some", "such", "only", "own", "same", "too",
        "very", "just", "also", "out", "off", "upon", "via", "per", "amid",
        "against", "between", "through", "during", "without", "within",
        "again", "once", "here", "now", "still", "ever", "even", "much",
        "many", "get", "gets", "got", "one", "two", "first", "last",
        # headline boilerplate
        "new", "says", "said", "say", "report", "reports", "reportedly",
        "announces", "announced", "announce", "launches", "launched", "launch",
        "releases", "released", "release", "unveils", "unveiled", "introduces",
        "introduced", "update", "updates", "today", "week", "year", "heres",
        "latest", "breaking", "exclusive",
    }
)

_APOSTROPHE_RE = re.compile(r"['’]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WS_RE = re.compile(r"\s+")

MIN_TOKEN_LENGTH = 3


class SimilarityMetric(Enum):
    """Which comparison produced a score."""
    TOKEN_JACCARD = "token_jaccard"
    EMBEDDING_COSINE = "embedding_cosine"


@dataclass(frozen=True)
class SimilarityScore:
    """A score together with the metric that produced it.

    The clustering threshold depends on the metric, so the two always travel
    together.
    """
    score: float
    metric: SimilarityMetric

    @property
    def used_embedding(self) -> bool:
        return self.metric is SimilarityMetric.EMBEDDING_COSINE

    def with_score(self, score: float) -> "SimilarityScore":
        return SimilarityScore(score=score, metric=self.metric)


def tokenize_title(title: str) -> Set[str]:
    """Lowercased title tokens of length >= 3, stopwords removed."""
    cleaned = _APOSTROPHE_RE.sub("", (title or "").lower())
    cleaned = _NON_ALNUM_RE.sub(" ", cleaned)
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    return {
        t for t in cleaned.split(" ")
        if len(t) >= MIN_TOKEN_LENGTH and t not in STOPWORDS
    }


def jaccard(a: Set[str], b: Set[str]) -> float:
    """Set similarity in [0, 1]; 0.0 if either set is empty."""
    if not a or not b:
        return 0.0
    inter = len(a & b)
    union = len(a) + len(b) - inter
    return inter / union if union else 0.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity over the first ``min(len(a), len(b))`` dimensions.

    Returns 0.0 when either vector is empty or has zero norm.
    """
    n = min(len(a), len(b))
    if n == 0:
        return 0.0
    vec1 = np.asarray(a[:n], dtype=np.float64)
    vec2 = np.asarray(b[:n], dtype=np.float64)
    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def running_average_embedding(
    prev: Optional[Sequence[float]],
    nxt: Sequence[float],
    prior_count: int,
    *,
    strict: bool = False,
) -> list:
    """Online mean update of a centroid with one more member.

    ``prior_count`` is the number of members already folded into ``prev``.
    The result always has ``len(nxt)`` dimensions: a longer ``prev`` is
    truncated, a shorter one is padded with ``nxt``'s values. With
    ``strict=True`` a dimensionality mismatch raises ``ValueError`` instead.
    """
    if prev is None:
        return [float(x) for x in nxt]
    if strict and len(prev) != len(nxt):
        raise ValueError(
            f"Embedding dimension mismatch: centroid has {len(prev)}, item has {len(nxt)}"
        )

    new = np.asarray(nxt, dtype=np.float64)
    old = np.asarray(prev[: len(new)], dtype=np.float64)
    if len(old) < len(new):
        old = np.concatenate([old, new[len(old):]])
    updated = (old * prior_count + new) / (prior_count + 1)
    return updated.tolist()


__all__ = [
    "STOPWORDS",
    "SimilarityMetric",
    "SimilarityScore",
    "tokenize_title",
    "jaccard",
    "cosine_similarity",
    "running_average_embedding",
]
