"""News clustering pipeline core package."""

from .models import (
	SourceType,
	Item,
	NormalizedItem,
	StoryCluster,
	Topic,
	SourceConfig,
	SourceFeed,
	DefaultsConfig,
	PipelineConfig,
)
from .url import canonicalize_url, domain_from_url, stable_id
from .normalize import normalize_rss_entry, normalize_hn_hit
from .dedupe import dedupe_by_canonical_url, dedupe_items
from .similarity import SimilarityMetric, SimilarityScore, tokenize_title, jaccard, cosine_similarity
from .clustering import (
	ClusterBuilder,
	ClusteringPolicy,
	NearDuplicatePolicy,
	TopicPolicy,
	MergeOutcome,
	cluster_items,
	cluster_by_topic,
)
from .neighbors import NeighborFinder, find_neighbors
from .tagging import TOPICS, KeywordTagger, tag_items, filter_blocked
from .config import ConfigManager, ConfigError
from .pipeline_config import PipelineTuning, PipelineTuningManager, PipelineConfigError, get_pipeline_tuning
from .storage import DatasetStore
from .logging.audit import AuditLogger
from .orchestrator import DatasetPipeline, PipelineSummary

__all__ = [
	"SourceType",
	"Item",
	"NormalizedItem",
	"StoryCluster",
	"Topic",
	"SourceConfig",
	"SourceFeed",
	"DefaultsConfig",
	"PipelineConfig",
	"canonicalize_url",
	"domain_from_url",
	"stable_id",
	"normalize_rss_entry",
	"normalize_hn_hit",
	"dedupe_by_canonical_url",
	"dedupe_items",
	"SimilarityMetric",
	"SimilarityScore",
	"tokenize_title",
	"jaccard",
	"cosine_similarity",
	"ClusterBuilder",
	"ClusteringPolicy",
	"NearDuplicatePolicy",
	"TopicPolicy",
	"MergeOutcome",
	"cluster_items",
	"cluster_by_topic",
	"NeighborFinder",
	"find_neighbors",
	"TOPICS",
	"KeywordTagger",
	"tag_items",
	"filter_blocked",
	"ConfigManager",
	"ConfigError",
	"PipelineTuning",
	"PipelineTuningManager",
	"PipelineConfigError",
	"get_pipeline_tuning",
	"DatasetStore",
	"AuditLogger",
	"DatasetPipeline",
	"PipelineSummary",
]
