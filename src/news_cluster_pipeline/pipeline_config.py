"""Tunables for clustering, neighbors, embeddings and dataset building.

Values come from an optional YAML file (``pipeline.yaml``) and are then
overridden by environment variables, so a scheduled job can be retuned
without touching the checked-in config. Environment parsing is lenient: a
value that does not parse (or an int that is not positive) falls back to
the configured value rather than failing the run.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .clustering import DEFAULT_STOP_TAGS
from .tagging import DEFAULT_BLOCKED_TERMS


logger = logging.getLogger(__name__)

MAX_HN_ALGOLIA_PAGES = 10


class PipelineConfigError(Exception):
    """Raised when pipeline tuning values are invalid."""
    pass


# ---------- environment helpers ----------

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def env_int(name: str, fallback: int, environ: Optional[Mapping[str, str]] = None) -> int:
    raw = (environ if environ is not None else os.environ).get(name)
    if not raw:
        return fallback
    try:
        n = int(raw.strip())
    except ValueError:
        return fallback
    return n if n > 0 else fallback


def env_float(name: str, fallback: float, environ: Optional[Mapping[str, str]] = None) -> float:
    raw = (environ if environ is not None else os.environ).get(name)
    if not raw:
        return fallback
    try:
        n = float(raw.strip())
    except ValueError:
        return fallback
    return n if math.isfinite(n) else fallback


def env_bool(name: str, fallback: bool, environ: Optional[Mapping[str, str]] = None) -> bool:
    raw = (environ if environ is not None else os.environ).get(name)
    if not raw:
        return fallback
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    return fallback


def env_csv(name: str, fallback: List[str], environ: Optional[Mapping[str, str]] = None) -> List[str]:
    raw = (environ if environ is not None else os.environ).get(name)
    if not raw:
        return list(fallback)
    return [x.strip() for x in raw.split(",") if x.strip()]


# ---------- sections ----------

@dataclass
class NearDuplicateConfig:
    """Near-duplicate clustering (tight thresholds)."""

    enabled: bool = True
    token_threshold: float = 0.5
    embedding_threshold: float = 0.85
    strict_dimensions: bool = False

    def validate(self) -> None:
        if not (0.0 <= self.token_threshold <= 1.0):
            raise PipelineConfigError("near_duplicate.token_threshold must be between 0.0 and 1.0")
        if not (0.0 <= self.embedding_threshold <= 1.0):
            raise PipelineConfigError("near_duplicate.embedding_threshold must be between 0.0 and 1.0")


@dataclass
class TopicClusteringConfig:
    """Topic clustering; defaults are the ones the batch job runs with."""

    token_threshold: float = 0.22
    embedding_threshold: float = 0.78
    min_size: int = 2
    tag_weight: float = 0.25
    domain_bonus: float = 0.05
    min_tag_overlap: int = 2
    stop_tags: List[str] = field(default_factory=lambda: sorted(DEFAULT_STOP_TAGS))
    strict_dimensions: bool = False

    def validate(self) -> None:
        if not (0.0 <= self.token_threshold <= 1.0):
            raise PipelineConfigError("topic.token_threshold must be between 0.0 and 1.0")
        if not (0.0 <= self.embedding_threshold <= 1.0):
            raise PipelineConfigError("topic.embedding_threshold must be between 0.0 and 1.0")
        if self.min_size < 1:
            raise PipelineConfigError("topic.min_size must be positive")
        if self.min_tag_overlap < 1:
            raise PipelineConfigError("topic.min_tag_overlap must be positive")
        if self.tag_weight < 0 or self.domain_bonus < 0:
            raise PipelineConfigError("topic.tag_weight and topic.domain_bonus must be non-negative")


@dataclass
class NeighborConfig:
    k: int = 8
    min_similarity: float = 0.78
    max_per_source: int = 3

    def validate(self) -> None:
        if self.k <= 0:
            raise PipelineConfigError("neighbors.k must be positive")
        if not (-1.0 <= self.min_similarity <= 1.0):
            raise PipelineConfigError("neighbors.min_similarity must be between -1.0 and 1.0")
        if self.max_per_source <= 0:
            raise PipelineConfigError("neighbors.max_per_source must be positive")


@dataclass
class EmbeddingConfig:
    model_name: str = "text-embedding-3-small"
    api_key_env: str = "OPENAI_API_KEY"
    batch_size: int = 16
    max_retries: int = 3

    def validate(self) -> None:
        if not self.model_name:
            raise PipelineConfigError("embedding.model_name cannot be empty")
        if self.batch_size <= 0:
            raise PipelineConfigError("embedding.batch_size must be positive")
        if self.max_retries <= 0:
            raise PipelineConfigError("embedding.max_retries must be positive")

    def get_api_key(self) -> Optional[str]:
        return os.getenv(self.api_key_env)


@dataclass
class DatasetConfig:
    max_items: int = 500
    since_days: int = 7
    blocked_terms: List[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_TERMS))
    hn_algolia_pages: int = 5
    skip_embed: bool = False
    skip_cluster: bool = False

    def validate(self) -> None:
        if self.max_items <= 0:
            raise PipelineConfigError("dataset.max_items must be positive")
        if self.since_days <= 0:
            raise PipelineConfigError("dataset.since_days must be positive")
        if not (1 <= self.hn_algolia_pages <= MAX_HN_ALGOLIA_PAGES):
            raise PipelineConfigError(f"dataset.hn_algolia_pages must be between 1 and {MAX_HN_ALGOLIA_PAGES}")


@dataclass
class MonitoringConfig:
    log_level: str = "INFO"
    audit_enabled: bool = True
    audit_threshold_pct: float = 20.0

    def validate(self) -> None:
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level not in valid_log_levels:
            raise PipelineConfigError(f"monitoring.log_level must be one of: {valid_log_levels}")
        if self.audit_threshold_pct < 0:
            raise PipelineConfigError("monitoring.audit_threshold_pct must be non-negative")


@dataclass
class PipelineTuning:
    near_duplicate: NearDuplicateConfig = field(default_factory=NearDuplicateConfig)
    topic: TopicClusteringConfig = field(default_factory=TopicClusteringConfig)
    neighbors: NeighborConfig = field(default_factory=NeighborConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def validate(self) -> None:
        self.near_duplicate.validate()
        self.topic.validate()
        self.neighbors.validate()
        self.embedding.validate()
        self.dataset.validate()
        self.monitoring.validate()


class PipelineTuningManager:
    """Load ``PipelineTuning`` from YAML, then apply environment overrides."""

    def __init__(
        self,
        config_path: Union[str, Path] = "pipeline.yaml",
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.environ = environ
        self._config: Optional[PipelineTuning] = None
        self._warnings: List[str] = []

    def load_config(self) -> PipelineTuning:
        if not self.config_path.exists():
            logger.info("Pipeline config %s not found, using defaults", self.config_path)
            raw: Dict[str, Any] = {}
        else:
            try:
                raw = yaml.safe_load(self.config_path.read_text()) or {}
            except yaml.YAMLError as e:
                raise PipelineConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
            if not isinstance(raw, dict):
                raise PipelineConfigError(f"{self.config_path} must contain a mapping")

        try:
            cfg = PipelineTuning(
                near_duplicate=self._parse_near_duplicate(raw.get("near_duplicate") or {}),
                topic=self._parse_topic(raw.get("topic") or {}),
                neighbors=self._parse_neighbors(raw.get("neighbors") or {}),
                embedding=self._parse_embedding(raw.get("embedding") or {}),
                dataset=self._parse_dataset(raw.get("dataset") or {}),
                monitoring=self._parse_monitoring(raw.get("monitoring") or {}),
            )
        except (TypeError, ValueError) as e:
            raise PipelineConfigError(f"Invalid value in {self.config_path}: {e}") from e

        self.apply_env_overrides(cfg)
        cfg.validate()
        self._config = cfg
        return cfg

    def get_config(self) -> PipelineTuning:
        if self._config is None:
            return self.load_config()
        return self._config

    def get_warnings(self) -> List[str]:
        return self._warnings.copy()

    def apply_env_overrides(self, cfg: PipelineTuning) -> PipelineTuning:
        env = self.environ

        nd = cfg.near_duplicate
        nd.token_threshold = env_float("DEDUP_TOKEN_THRESHOLD", nd.token_threshold, env)
        nd.embedding_threshold = env_float("DEDUP_EMBED_THRESHOLD", nd.embedding_threshold, env)

        tc = cfg.topic
        tc.token_threshold = env_float("CLUSTER_TOKEN_THRESHOLD", tc.token_threshold, env)
        tc.embedding_threshold = env_float("CLUSTER_EMBED_THRESHOLD", tc.embedding_threshold, env)
        tc.tag_weight = env_float("CLUSTER_TAG_WEIGHT", tc.tag_weight, env)
        tc.domain_bonus = env_float("CLUSTER_DOMAIN_BONUS", tc.domain_bonus, env)
        tc.min_tag_overlap = env_int("CLUSTER_MIN_TAG_OVERLAP", tc.min_tag_overlap, env)
        tc.min_size = env_int("CLUSTER_MIN_SIZE", tc.min_size, env)
        tc.stop_tags = [t.lower() for t in env_csv("CLUSTER_STOP_TAGS", tc.stop_tags, env)]

        tc.strict_dimensions = env_bool("CLUSTER_STRICT_DIMENSIONS", tc.strict_dimensions, env)
        nd.strict_dimensions = env_bool("CLUSTER_STRICT_DIMENSIONS", nd.strict_dimensions, env)

        nb = cfg.neighbors
        nb.k = env_int("NEIGHBOR_K", nb.k, env)
        nb.min_similarity = env_float("NEIGHBOR_MIN_SIM", nb.min_similarity, env)
        nb.max_per_source = env_int("NEIGHBOR_MAX_PER_SOURCE", nb.max_per_source, env)

        em = cfg.embedding
        em.batch_size = env_int("EMBED_BATCH_SIZE", em.batch_size, env)
        em.model_name = (env if env is not None else os.environ).get("OPENAI_EMBEDDING_MODEL") or em.model_name

        ds = cfg.dataset
        ds.max_items = env_int("DATASET_MAX_ITEMS", ds.max_items, env)
        ds.since_days = env_int("DATASET_SINCE_DAYS", ds.since_days, env)
        ds.blocked_terms = env_csv("DATASET_BLOCKED_TERMS", ds.blocked_terms, env)
        pages = env_int("HN_ALGOLIA_PAGES", ds.hn_algolia_pages, env)
        if pages > MAX_HN_ALGOLIA_PAGES:
            self._warnings.append(f"HN_ALGOLIA_PAGES={pages} capped at {MAX_HN_ALGOLIA_PAGES}")
            pages = MAX_HN_ALGOLIA_PAGES
        ds.hn_algolia_pages = pages
        ds.skip_embed = env_bool("SKIP_EMBED", ds.skip_embed, env)
        ds.skip_cluster = env_bool("SKIP_CLUSTER", ds.skip_cluster, env)

        return cfg

    # ---------- section parsers ----------
    def _parse_near_duplicate(self, data: Dict[str, Any]) -> NearDuplicateConfig:
        return NearDuplicateConfig(
            enabled=bool(data.get("enabled", True)),
            token_threshold=float(data.get("token_threshold", 0.5)),
            embedding_threshold=float(data.get("embedding_threshold", 0.85)),
            strict_dimensions=bool(data.get("strict_dimensions", False)),
        )

    def _parse_topic(self, data: Dict[str, Any]) -> TopicClusteringConfig:
        stop_tags = data.get("stop_tags")
        if stop_tags is None:
            stop_tags = sorted(DEFAULT_STOP_TAGS)
        elif not isinstance(stop_tags, list):
            raise PipelineConfigError("topic.stop_tags must be a list")
        return TopicClusteringConfig(
            token_threshold=float(data.get("token_threshold", 0.22)),
            embedding_threshold=float(data.get("embedding_threshold", 0.78)),
            min_size=int(data.get("min_size", 2)),
            tag_weight=float(data.get("tag_weight", 0.25)),
            domain_bonus=float(data.get("domain_bonus", 0.05)),
            min_tag_overlap=int(data.get("min_tag_overlap", 2)),
            stop_tags=[str(t).strip().lower() for t in stop_tags if str(t).strip()],
            strict_dimensions=bool(data.get("strict_dimensions", False)),
        )

    def _parse_neighbors(self, data: Dict[str, Any]) -> NeighborConfig:
        return NeighborConfig(
            k=int(data.get("k", 8)),
            min_similarity=float(data.get("min_similarity", 0.78)),
            max_per_source=int(data.get("max_per_source", 3)),
        )

    def _parse_embedding(self, data: Dict[str, Any]) -> EmbeddingConfig:
        return EmbeddingConfig(
            model_name=data.get("model_name", "text-embedding-3-small"),
            api_key_env=data.get("api_key_env", "OPENAI_API_KEY"),
            batch_size=int(data.get("batch_size", 16)),
            max_retries=int(data.get("max_retries", 3)),
        )

    def _parse_dataset(self, data: Dict[str, Any]) -> DatasetConfig:
        blocked = data.get("blocked_terms")
        if blocked is None:
            blocked = list(DEFAULT_BLOCKED_TERMS)
        elif not isinstance(blocked, list):
            raise PipelineConfigError("dataset.blocked_terms must be a list")
        return DatasetConfig(
            max_items=int(data.get("max_items", 500)),
            since_days=int(data.get("since_days", 7)),
            blocked_terms=[str(t) for t in blocked],
            hn_algolia_pages=int(data.get("hn_algolia_pages", 5)),
            skip_embed=bool(data.get("skip_embed", False)),
            skip_cluster=bool(data.get("skip_cluster", False)),
        )

    def _parse_monitoring(self, data: Dict[str, Any]) -> MonitoringConfig:
        return MonitoringConfig(
            log_level=str(data.get("log_level", "INFO")).upper(),
            audit_enabled=bool(data.get("audit_enabled", True)),
            audit_threshold_pct=float(data.get("audit_threshold_pct", 20.0)),
        )


def get_pipeline_tuning(
    config_path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PipelineTuning:
    """Convenience function to load tuning with environment overrides."""
    return PipelineTuningManager(config_path or "pipeline.yaml", environ=environ).load_config()
