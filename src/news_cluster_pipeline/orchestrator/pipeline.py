from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from ..audit import AuditMetrics, compute_audit
from ..clustering import ClusterBuilder, NearDuplicatePolicy, TopicPolicy
from ..config import ConfigManager
from ..dedupe import dedupe_by_canonical_url
from ..embedding import EmbeddingError, EmbeddingGenerator
from ..logging.audit import AuditLogger
from ..models import Item, NormalizedItem, SourceFeed, StoryCluster
from ..neighbors import NeighborFinder, NeighborMap
from ..normalize import HN_SOURCE_ID
from ..pipeline_config import PipelineTuning
from ..processors.hn import HNAlgoliaProcessor
from ..processors.rss import FeedResult, RSSProcessor
from ..storage import DatasetStore
from ..tagging import TOPICS, filter_blocked, tag_items, top_tags

logger = logging.getLogger(__name__)


@dataclass
class PipelineSummary:
    sources: int
    sources_fetched: int
    fetched_items: int
    new_items: int
    total_items: int
    output_items: int
    stories: int
    near_duplicate_groups: int
    neighbors: int
    embedded: int
    errors: int
    duration_ms: int
    invalid: bool = False
    audit: Optional[AuditMetrics] = None
    top_tags: List[Tuple[str, int]] = field(default_factory=list)


class DatasetPipeline:
    """Batch job: fetch, normalize, dedupe, tag, embed, cluster and write the dataset.

    Every run recomputes clusters and neighbors from scratch over the
    previous dataset's items plus whatever was fetched now. Clustering always
    sees items in the deduplicator's newest-first order.
    """

    def __init__(
        self,
        config_path: str,
        *,
        tuning: PipelineTuning,
        store: DatasetStore,
        audit: Optional[AuditLogger] = None,
        embedder: Optional[EmbeddingGenerator] = None,
        rss: Optional[RSSProcessor] = None,
        hn: Optional[HNAlgoliaProcessor] = None,
    ) -> None:
        self.config_path = config_path
        self.tuning = tuning
        self.store = store
        self.audit = audit
        self.embedder = embedder
        self.rss = rss
        self.hn = hn
        self.cm: Optional[ConfigManager] = None
        self._errors = 0

    # -------- Public API --------
    def run(
        self,
        *,
        dry_run: bool = False,
        only_sources: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> PipelineSummary:
        t0 = time.time()
        now = now or datetime.now(timezone.utc)
        self._errors = 0
        ds = self.tuning.dataset

        self.cm = ConfigManager(self.config_path)
        self.cm.load_config()
        defaults = self.cm.get_defaults()
        feeds = self.cm.feeds_to_fetch()
        if only_sources:
            allowed = {s.strip().lower() for s in only_sources if s.strip()}
            feeds = [f for f in feeds if f.source_id.lower() in allowed]

        if self.rss is None:
            self.rss = RSSProcessor(defaults)
        self.rss.source_type_for = self.cm.get_source_type
        if self.hn is None:
            self.hn = HNAlgoliaProcessor(defaults, pages=ds.hn_algolia_pages)

        logger.info("Fetching %d feeds", len(feeds))
        existing = self.store.load_existing_items()
        existing_urls = {it.canonical_url or it.url for it in existing}

        results = asyncio.run(self._fetch_all(feeds))
        sources_fetched = sum(1 for r in results if r.ok)

        normalized: List[NormalizedItem] = []
        for r in results:
            for n in r.items:
                if n.canonical_url in existing_urls:
                    continue
                normalized.append(n)
        fetched_items = sum(len(r.items) for r in results)

        # Deduplication: new items first, then against the previous dataset
        deduped_new = dedupe_by_canonical_url((n.item, n.canonical_url) for n in normalized)
        pairs = [(it, it.canonical_url or it.url) for it in list(existing) + deduped_new]
        combined = dedupe_by_canonical_url((it, key) for it, key in pairs if key)
        if self.audit:
            self.audit.log_dedupe_summary(candidates=len(pairs), existing=len(existing), kept=len(combined))

        since = now - timedelta(days=ds.since_days)
        recent = [it for it in combined if it.published_at >= since]
        bounded = recent[: ds.max_items]

        tagged, tag_counts = tag_items(bounded, TOPICS)
        items = filter_blocked(tagged, ds.blocked_terms)
        logger.info("Items: %d fetched, %d new, %d total, %d output", fetched_items, len(deduped_new), len(combined), len(items))

        embedded = self._embed(items) if not ds.skip_embed else 0
        if ds.skip_embed:
            logger.info("Skipping embeddings and neighbors (skip_embed)")
            neighbors: NeighborMap = {}
        else:
            neighbors = NeighborFinder.from_config(self.tuning.neighbors).find(items)

        stories: List[StoryCluster] = []
        near_dups: List[StoryCluster] = []
        if ds.skip_cluster:
            logger.info("Skipping clustering (skip_cluster)")
        else:
            stories = self._cluster_topics(items)
            if self.tuning.near_duplicate.enabled:
                near_dups = [c for c in self._cluster_near_duplicates(items) if c.size > 1]
        if self.audit:
            self.audit.log_cluster_summary(stories=len(stories), near_duplicates=len(near_dups), neighbors=len(neighbors))

        metrics = compute_audit(items, stories)
        invalid = metrics.is_invalid(self.tuning.monitoring.audit_threshold_pct)
        logger.info("Audit: %s", metrics.to_dict())
        if invalid:
            logger.warning("Dataset marked INVALID by audit thresholds")

        if dry_run:
            logger.info("Dry run: not writing outputs")
        else:
            self._write_outputs(items, stories, near_dups, neighbors, now)

        duration_ms = int((time.time() - t0) * 1000)
        if self.audit:
            self.audit.log_pipeline_summary(
                sources=len(feeds),
                fetched_items=fetched_items,
                output_items=len(items),
                stories=len(stories),
                errors=self._errors,
                duration_ms=duration_ms,
            )
        if not dry_run:
            self.store.flush_audit_events()

        return PipelineSummary(
            sources=len(feeds),
            sources_fetched=sources_fetched,
            fetched_items=fetched_items,
            new_items=len(deduped_new),
            total_items=len(combined),
            output_items=len(items),
            stories=len(stories),
            near_duplicate_groups=len(near_dups),
            neighbors=len(neighbors),
            embedded=embedded,
            errors=self._errors,
            duration_ms=duration_ms,
            invalid=invalid,
            audit=metrics,
            top_tags=top_tags(tag_counts),
        )

    # -------- Stages --------
    async def _fetch_all(self, feeds: List[SourceFeed]) -> List[FeedResult]:
        rss_feeds = [f for f in feeds if f.kind != "hn_algolia"]
        hn_feeds = [f for f in feeds if f.kind == "hn_algolia"]

        for f in feeds:
            if self.audit:
                self.audit.log_fetch_start(f.source_id)

        results: List[FeedResult] = []
        if rss_feeds:
            results.extend(await self.rss.fetch_multiple_async(rss_feeds))
        for f in hn_feeds:
            try:
                results.append(await self.hn.fetch_async(f))
            except Exception as e:
                self._record_error(f"fetch {f.source_id}", e)
                results.append(FeedResult(feed=f, ok=False))

        await self._enrich_hn(results)

        for r in results:
            if not r.ok:
                self._errors += 1
            if self.audit:
                self.audit.log_fetch_end(r.feed.source_id, items=len(r.items), duration_ms=r.duration_ms, ok=r.ok)
        return results

    async def _enrich_hn(self, results: List[FeedResult]) -> None:
        targets = [
            n for r in results for n in r.items
            if n.item is not None and n.item.source_id == HN_SOURCE_ID and "news.ycombinator.com" in n.item.url
        ]
        if not targets:
            return
        sem = asyncio.Semaphore(max(1, self.hn.defaults.max_parallel_fetches))

        async def _one(n: NormalizedItem) -> None:
            async with sem:
                await self.hn.enrich_async(n)

        await asyncio.gather(*[_one(n) for n in targets])

    def _embed(self, items: List[Item]) -> int:
        pending = [it for it in items if not it.embedding]
        if not pending:
            return 0
        if self.embedder is None or not self.embedder.available:
            logger.warning("No embedding client configured; clustering falls back to title tokens")
            return 0
        logger.info("Embedding %d items", len(pending))
        try:
            return asyncio.run(self.embedder.embed_items(pending))
        except EmbeddingError as e:
            self._record_error("embed_items", e)
            return sum(1 for it in pending if it.embedding)

    def _cluster_topics(self, items: List[Item]) -> List[StoryCluster]:
        tc = self.tuning.topic
        policy = TopicPolicy(
            tc.token_threshold,
            tc.embedding_threshold,
            tc.min_size,
            tag_weight=tc.tag_weight,
            domain_bonus=tc.domain_bonus,
            min_tag_overlap=tc.min_tag_overlap,
            stop_tags=tc.stop_tags,
        )
        builder = ClusterBuilder(policy, strict_dimensions=tc.strict_dimensions)
        builder.ingest_all(items)
        return builder.finalize()

    def _cluster_near_duplicates(self, items: List[Item]) -> List[StoryCluster]:
        nd = self.tuning.near_duplicate
        builder = ClusterBuilder(
            NearDuplicatePolicy(nd.token_threshold, nd.embedding_threshold),
            strict_dimensions=nd.strict_dimensions,
        )
        builder.ingest_all(items)
        return builder.finalize()

    def _write_outputs(
        self,
        items: List[Item],
        stories: List[StoryCluster],
        near_dups: List[StoryCluster],
        neighbors: NeighborMap,
        now: datetime,
    ) -> None:
        sources = self.cm.get_enabled_sources() if self.cm else []
        names: Dict[str, str] = {s.id: s.name for s in sources}
        items_by_id = {it.id: it for it in items}
        try:
            self.store.write_clusters(stories, items_by_id, names)
            self.store.write_near_duplicates(near_dups)
            self.store.write_neighbors(neighbors)
            if any(it.embedding for it in items):
                model = self.embedder.model if self.embedder is not None else self.tuning.embedding.model_name
                self.store.write_embeddings(model, items)
            self.store.write_sources(sources)
            path = self.store.write_dataset(items, stories, sources, TOPICS, generated_at=now)
            logger.info("Wrote %s", path)
        except OSError as e:
            self._record_error("write_outputs", e)
            raise

    def _record_error(self, context: str, exc: BaseException) -> None:
        self._errors += 1
        logger.warning("%s failed: %s", context, exc)
        if self.audit:
            self.audit.log_error(context=context, exc=exc)
