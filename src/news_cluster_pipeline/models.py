from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class SourceType(Enum):
    EDITORIAL = "editorial"
    COMMUNITY = "community"
    PRIMARY = "primary"
    VC_BLOG = "vc_blog"
    AGGREGATOR = "aggregator"
    SOCIAL = "social"

    @classmethod
    def from_str(cls, value: str) -> "SourceType":
        v = (value or "").strip().lower()
        for member in cls:
            if member.value == v:
                return member
        raise ValueError(f"Invalid SourceType: {value}")


def empty_lenses() -> Dict[str, List[str]]:
    """All six source-type buckets, each empty."""
    return {st.value: [] for st in SourceType}


@dataclass
class Item:
    """One normalized piece of content from one source.

    Created by the normalizer; later stages fill in ``tags``, ``embedding``
    and ``extracted_text`` in place.
    """

    id: str
    source_id: str
    source_type: SourceType
    title: str
    url: str
    published_at: datetime
    canonical_url: Optional[str] = None
    summary: str = ""
    description: Optional[str] = None
    author: Optional[str] = None
    extracted_text: Optional[str] = None
    domain: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    embedding: Optional[List[float]] = None
    image_candidates: List[str] = field(default_factory=list)
    image_url: Optional[str] = None
    signals: Optional[Dict[str, Any]] = None
    raw: Any = None

    def validate(self) -> None:
        if not self.id:
            raise ValueError("id is required")
        if not self.source_id:
            raise ValueError("source_id is required")
        if not isinstance(self.source_type, SourceType):
            raise ValueError("source_type must be a SourceType enum")
        if not isinstance(self.title, str) or not self.title.strip():
            raise ValueError("title is required")
        if not isinstance(self.url, str) or not self.url:
            raise ValueError("url is required")
        if not isinstance(self.published_at, datetime):
            raise ValueError("published_at must be a datetime")
        if self.published_at.tzinfo is None:
            raise ValueError("published_at must be timezone-aware")

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    @classmethod
    def from_dict(cls, row: Dict[str, Any]) -> "Item":
        """Build an item from the persisted dataset shape (camelCase keys)."""
        media = row.get("media") or {}
        published = _parse_dt(row.get("publishedAt"))
        if published is None:
            raise ValueError(f"item {row.get('id')!r} has no parseable publishedAt")
        embedding = row.get("embedding")
        return cls(
            id=row["id"],
            source_id=row["sourceId"],
            source_type=SourceType.from_str(row.get("sourceType", "")),
            title=row["title"],
            url=row["url"],
            canonical_url=row.get("canonicalUrl"),
            published_at=published,
            summary=row.get("summary") or "",
            description=row.get("description"),
            author=row.get("author"),
            extracted_text=row.get("extractedText"),
            domain=row.get("domain"),
            tags=list(row.get("tags") or []),
            embedding=[float(x) for x in embedding] if embedding else None,
            image_candidates=list(row.get("imageCandidates") or []),
            image_url=media.get("imageUrl"),
            signals=row.get("signals"),
            raw=row.get("raw"),
        )

    def to_dict(self, include_embedding: bool = True) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "sourceId": self.source_id,
            "sourceType": self.source_type.value,
            "title": self.title,
            "url": self.url,
            "canonicalUrl": self.canonical_url,
            "publishedAt": format_dt(self.published_at),
            "author": self.author,
            "summary": self.summary,
            "description": self.description,
            "extractedText": self.extracted_text,
            "domain": self.domain,
            "imageCandidates": list(self.image_candidates),
            "media": {"imageUrl": self.image_url},
            "tags": list(self.tags),
            "signals": self.signals,
            "raw": self.raw,
        }
        if include_embedding and self.embedding:
            out["embedding"] = list(self.embedding)
        return out


@dataclass
class NormalizedItem:
    """Normalizer result: ``item`` is None when the record was unusable."""

    item: Optional[Item]
    canonical_url: Optional[str]
    rss_image_url: Optional[str] = None


@dataclass(frozen=True)
class StoryCluster:
    """Read-only projection of a finished cluster.

    ``narrative_diff``, ``verify`` and ``opposing`` are filled by a later
    enrichment pass and stay empty here.
    """

    id: str
    title: str
    tags: List[str]
    item_ids: List[str]
    lenses: Dict[str, List[str]]
    representative_item_id: str
    created_at: datetime
    updated_at: datetime
    narrative_diff: Optional[Any] = None
    verify: Dict[str, Any] = field(default_factory=lambda: {"claims": []})
    opposing: Optional[Any] = None

    @property
    def size(self) -> int:
        return len(self.item_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "tags": list(self.tags),
            "itemIds": list(self.item_ids),
            "lenses": {k: list(v) for k, v in self.lenses.items()},
            "representativeItemId": self.representative_item_id,
            "createdAt": format_dt(self.created_at),
            "updatedAt": format_dt(self.updated_at),
            "narrativeDiff": self.narrative_diff,
            "verify": self.verify,
            "opposing": self.opposing,
        }


@dataclass
class Topic:
    id: str
    label: str
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "keywords": list(self.keywords)}


@dataclass
class SourceConfig:
    """One source defined in feeds.yaml."""

    id: str
    name: str
    type: SourceType
    kind: str = "rss"  # 'rss' | 'googlenews_rss' | 'hn_algolia'
    url: Optional[str] = None
    homepage: Optional[str] = None
    enabled: bool = True
    bias: Optional[str] = None
    queries: List[str] = field(default_factory=list)  # googlenews_rss search terms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "homepage": self.homepage,
            "type": self.type.value,
            "rss": self.url if self.kind == "rss" else None,
            "bias": self.bias,
        }


@dataclass
class DefaultsConfig:
    user_agent: str = "NewsClusterPipeline/1.0"
    timeout_seconds: int = 15
    max_parallel_fetches: int = 8
    retries: int = 2
    retry_base_delay_seconds: float = 0.5
    output_dir: str = "public/data"


@dataclass(frozen=True)
class SourceFeed:
    """One concrete URL to fetch for a source."""

    source_id: str
    url: str
    kind: str


@dataclass
class PipelineConfig:
    defaults: DefaultsConfig
    sources: List[SourceConfig]


def format_dt(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing ``Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: Any) -> Optional[datetime]:
    """Parse a datetime if value is a string; pass through datetime; else None.

    Naive values are assumed to be UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


__all__ = [
    "SourceType",
    "Item",
    "NormalizedItem",
    "StoryCluster",
    "Topic",
    "SourceConfig",
    "DefaultsConfig",
    "SourceFeed",
    "PipelineConfig",
    "empty_lenses",
    "format_dt",
]
