from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import Item, SourceConfig, StoryCluster, Topic, format_dt

logger = logging.getLogger(__name__)

DATASET_VERSION = "0.1"

FEED_FILE = "feed.json"
CLUSTERS_FILE = "clusters.json"
NEIGHBORS_FILE = "neighbors.json"
EMBEDDINGS_FILE = "embeddings.json"
NEAR_DUPLICATES_FILE = "near_duplicates.json"
SOURCES_FILE = "sources.json"
AUDIT_FILE = "audit_events.jsonl"


def atomic_write_json(target: Path, obj: Any) -> Path:
    """Write JSON through a temp file and rename so readers never see partial output."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(target.name + ".tmp")
    tmp.write_text(json.dumps(obj, indent=2, ensure_ascii=False, default=str), encoding="utf-8")
    os.replace(tmp, target)
    return target


class DatasetStore:
    """File-backed storage for the generated dataset.

    Mirrors the role of a database storage manager for a static site: the
    previous run's ``feed.json`` seeds deduplication, each run rewrites the
    JSON outputs, and audit events are appended to a JSONL log.
    """

    def __init__(self, output_dir: str | Path = "public/data") -> None:
        self.output_dir = Path(output_dir)
        self.audit_events: List[Dict[str, Any]] = []

    def path(self, name: str) -> Path:
        return self.output_dir / name

    # ------------- Existing dataset -------------
    def load_existing_items(self) -> List[Item]:
        """Items from the previous ``feed.json``; empty when absent or unreadable."""
        fp = self.path(FEED_FILE)
        if not fp.exists():
            return []
        try:
            parsed = json.loads(fp.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable dataset %s: %s", fp, e)
            return []

        rows = parsed.get("items") if isinstance(parsed, dict) else None
        items: List[Item] = []
        for row in rows if isinstance(rows, list) else []:
            if not isinstance(row, dict) or not (row.get("canonicalUrl") or row.get("url")):
                continue
            try:
                items.append(Item.from_dict(row))
            except (KeyError, ValueError) as e:
                logger.debug("Skipping persisted item %s: %s", row.get("id"), e)
        logger.info("Loaded %d existing items from %s", len(items), fp)
        return items

    # ------------- Writers -------------
    def write_dataset(
        self,
        items: Sequence[Item],
        stories: Sequence[StoryCluster],
        sources: Sequence[SourceConfig],
        topics: Sequence[Topic],
        generated_at: Optional[datetime] = None,
    ) -> Path:
        dataset = {
            "version": DATASET_VERSION,
            "generatedAt": format_dt(generated_at or datetime.now(timezone.utc)),
            "sources": [s.to_dict() for s in sources],
            "topics": [t.to_dict() for t in topics],
            "items": [it.to_dict() for it in items],
            "stories": [c.to_dict() for c in stories],
        }
        return atomic_write_json(self.path(FEED_FILE), dataset)

    def write_clusters(
        self,
        stories: Sequence[StoryCluster],
        items_by_id: Mapping[str, Item],
        source_names: Optional[Mapping[str, str]] = None,
    ) -> Path:
        """Story groups with their member items expanded as perspectives."""
        names = source_names or {}
        clusters = []
        for c in stories:
            members = [items_by_id[i] for i in c.item_ids if i in items_by_id]
            rep = items_by_id.get(c.representative_item_id)
            clusters.append(
                {
                    "id": c.id,
                    "canonicalTitle": c.title,
                    "canonicalUrl": (rep.canonical_url or rep.url) if rep else None,
                    "topicTags": list(c.tags),
                    "createdAt": format_dt(c.created_at),
                    "updatedAt": format_dt(c.updated_at),
                    "perspectives": [
                        {
                            "id": it.id,
                            "source": names.get(it.source_id, it.source_id),
                            "sourceType": it.source_type.value,
                            "url": it.url,
                            "canonicalUrl": it.canonical_url or it.url,
                            "title": it.title,
                            "summary": it.summary,
                            "publishedAt": format_dt(it.published_at),
                            "imageUrl": it.image_url,
                            "author": it.author,
                        }
                        for it in members
                    ],
                }
            )
        return atomic_write_json(self.path(CLUSTERS_FILE), {"clusters": clusters})

    def write_near_duplicates(self, clusters: Sequence[StoryCluster]) -> Path:
        groups = [c.to_dict() for c in clusters if c.size > 1]
        return atomic_write_json(self.path(NEAR_DUPLICATES_FILE), {"clusters": groups})

    def write_neighbors(self, neighbors: Mapping[str, List[str]]) -> Path:
        return atomic_write_json(self.path(NEIGHBORS_FILE), {"neighbors": dict(neighbors)})

    def write_embeddings(self, model: str, items: Iterable[Item]) -> Path:
        vectors = {it.id: list(it.embedding) for it in items if it.embedding}
        return atomic_write_json(self.path(EMBEDDINGS_FILE), {"model": model, "vectors": vectors})

    def write_sources(self, sources: Sequence[SourceConfig]) -> Path:
        return atomic_write_json(self.path(SOURCES_FILE), {"sources": [s.to_dict() for s in sources]})

    # ------------- Audit sink -------------
    def add_audit_event(
        self,
        event_type: str,
        *,
        pipeline_run_id: Optional[str] = None,
        source_name: Optional[str] = None,
        message: Optional[str] = None,
        event_data: Optional[Dict[str, Any]] = None,
    ) -> bool:
        self.audit_events.append(
            {
                "pipeline_run_id": pipeline_run_id,
                "source_name": source_name,
                "event_type": event_type,
                "message": message,
                "event_data": event_data or {},
            }
        )
        return True

    def flush_audit_events(self) -> int:
        """Append buffered audit events to the JSONL log; returns how many were written."""
        if not self.audit_events:
            return 0
        fp = self.path(AUDIT_FILE)
        try:
            fp.parent.mkdir(parents=True, exist_ok=True)
            with fp.open("a", encoding="utf-8") as fh:
                for event in self.audit_events:
                    fh.write(json.dumps(event, default=str) + "\n")
        except OSError as e:
            logger.warning("Could not write audit log %s: %s", fp, e)
            return 0
        written = len(self.audit_events)
        self.audit_events.clear()
        return written


__all__ = ["DATASET_VERSION", "DatasetStore", "atomic_write_json"]
