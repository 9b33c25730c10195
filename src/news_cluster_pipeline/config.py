from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import quote

import yaml

from .models import DefaultsConfig, PipelineConfig, SourceConfig, SourceFeed, SourceType


HN_ALGOLIA_URL = "https://hn.algolia.com/api/v1/search_by_date?tags=story"
GOOGLE_NEWS_RSS_URL = "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en"

SOURCE_KINDS = ("rss", "googlenews_rss", "hn_algolia")


class ConfigError(Exception):
    pass


def google_news_rss_url(query: str) -> str:
    return GOOGLE_NEWS_RSS_URL.format(query=quote(query, safe=""))


class ConfigManager:
    """Parse and validate feeds.yaml.

    Sources carry an id (the ``sourceId`` every item is keyed by), a
    ``SourceType`` and a fetch ``kind``. ``googlenews_rss`` sources list search
    ``queries`` and expand to one feed URL per query.
    """

    def __init__(self, config_path: str | Path = "feeds.yaml") -> None:
        self.config_path = Path(config_path)
        self._config: PipelineConfig | None = None
        self._warnings: List[str] = []

    def load_config(self) -> PipelineConfig:
        if not self.config_path.exists():
            raise ConfigError(f"Config file not found: {self.config_path}")

        try:
            raw = yaml.safe_load(self.config_path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        defaults = raw.get("defaults", {}) or {}
        sources = raw.get("sources", [])
        if not isinstance(defaults, dict):
            raise ConfigError("'defaults' must be a mapping in feeds.yaml")
        if not isinstance(sources, list):
            raise ConfigError("'sources' must be a list in feeds.yaml")

        try:
            defaults_cfg = DefaultsConfig(
                user_agent=str(defaults.get("user_agent", "NewsClusterPipeline/1.0")),
                timeout_seconds=int(defaults.get("timeout_seconds", 15)),
                max_parallel_fetches=int(defaults.get("max_parallel_fetches", 8)),
                retries=int(defaults.get("retries", 2)),
                retry_base_delay_seconds=float(defaults.get("retry_base_delay_seconds", 0.5)),
                output_dir=str(defaults.get("output_dir", "public/data")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in 'defaults': {e}") from e
        if defaults_cfg.timeout_seconds <= 0:
            raise ConfigError("'defaults.timeout_seconds' must be positive")
        if defaults_cfg.max_parallel_fetches <= 0:
            raise ConfigError("'defaults.max_parallel_fetches' must be positive")
        if defaults_cfg.retries < 0:
            raise ConfigError("'defaults.retries' must be non-negative")

        source_cfgs: List[SourceConfig] = []
        seen: set = set()
        for idx, s in enumerate(sources):
            if not isinstance(s, dict):
                raise ConfigError(f"source[{idx}] must be an object")
            try:
                cfg = self._validate_and_build_source_config(s, idx)
            except KeyError as e:
                raise ConfigError(f"Missing required field in source[{idx}]: {e}") from e
            if cfg.id in seen:
                raise ConfigError(f"source[{idx}] duplicate id '{cfg.id}'")
            seen.add(cfg.id)
            source_cfgs.append(cfg)

        self._config = PipelineConfig(defaults=defaults_cfg, sources=source_cfgs)
        return self._config

    def get_enabled_sources(self) -> List[SourceConfig]:
        cfg = self._ensure()
        return [s for s in cfg.sources if s.enabled]

    def get_defaults(self) -> DefaultsConfig:
        return self._ensure().defaults

    def get_source(self, source_id: str) -> SourceConfig | None:
        for s in self._ensure().sources:
            if s.id == source_id:
                return s
        return None

    def get_source_type(self, source_id: str) -> SourceType:
        """Configured type of a source; unknown sources count as primary."""
        s = self.get_source(source_id)
        return s.type if s is not None else SourceType.PRIMARY

    def feeds_to_fetch(self) -> List[SourceFeed]:
        feeds: List[SourceFeed] = []
        for s in self.get_enabled_sources():
            if s.kind == "rss":
                feeds.append(SourceFeed(source_id=s.id, url=s.url or "", kind=s.kind))
            elif s.kind == "hn_algolia":
                feeds.append(SourceFeed(source_id=s.id, url=s.url or HN_ALGOLIA_URL, kind=s.kind))
            elif s.kind == "googlenews_rss":
                for q in s.queries:
                    feeds.append(SourceFeed(source_id=s.id, url=google_news_rss_url(q), kind=s.kind))
        return feeds

    def to_dict(self) -> Dict[str, Any]:
        cfg = self._ensure()
        sources = []
        for s in cfg.sources:
            d = asdict(s)
            d["type"] = s.type.value
            sources.append(d)
        return {"defaults": asdict(cfg.defaults), "sources": sources}

    def get_warnings(self) -> List[str]:
        return list(self._warnings)

    # --- Validation and helpers ---
    def _validate_and_build_source_config(self, s: Dict[str, Any], idx: int) -> SourceConfig:
        source_id = str(s["id"]).strip()
        if not source_id:
            raise ConfigError(f"source[{idx}] 'id' cannot be empty")
        name = str(s.get("name") or source_id).strip()

        try:
            source_type = SourceType.from_str(str(s["type"]))
        except ValueError:
            allowed = [t.value for t in SourceType]
            raise ConfigError(f"source[{idx}] 'type' must be one of {allowed}, got '{s['type']}'")

        kind = str(s.get("kind", "rss")).lower().strip()
        if kind not in SOURCE_KINDS:
            raise ConfigError(f"source[{idx}] 'kind' must be one of {list(SOURCE_KINDS)}, got '{kind}'")

        url = s.get("url")
        queries = s.get("queries") or []
        if not isinstance(queries, list):
            raise ConfigError(f"source[{idx}] 'queries' must be a list")
        queries = [str(q).strip() for q in queries if str(q).strip()]

        if kind == "rss":
            if not url or not self._looks_like_url(url):
                raise ConfigError(f"source[{idx}] rss requires valid 'url' (http/https)")
            if queries:
                self._warnings.append(f"source[{idx}] rss ignores 'queries'")
                queries = []
        elif kind == "googlenews_rss":
            if not queries:
                raise ConfigError(f"source[{idx}] googlenews_rss requires a non-empty 'queries' list")
            if url:
                self._warnings.append(f"source[{idx}] googlenews_rss ignores 'url'; feeds are built from 'queries'")
                url = None
        elif kind == "hn_algolia":
            if url and not self._looks_like_url(url):
                raise ConfigError(f"source[{idx}] invalid 'url' format: {url}")

        homepage = s.get("homepage")
        if homepage is not None and not self._looks_like_url(homepage):
            self._warnings.append(f"source[{idx}] 'homepage' is not an http(s) URL: {homepage}")

        return SourceConfig(
            id=source_id,
            name=name,
            type=source_type,
            kind=kind,
            url=url,
            homepage=homepage,
            enabled=bool(s.get("enabled", True)),
            bias=s.get("bias"),
            queries=queries,
        )

    @staticmethod
    def _looks_like_url(u: str) -> bool:
        return isinstance(u, str) and (u.startswith("http://") or u.startswith("https://"))

    # internal
    def _ensure(self) -> PipelineConfig:
        if self._config is None:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config
