#!/usr/bin/env python3
"""
CLI for the news clustering pipeline

Commands:
  - run: Build the dataset (with --dry-run support)
  - validate: Validate feeds.yaml and pipeline tuning, show warnings
  - list-sources: Print enabled sources

Examples:
  python scripts/pipeline_cli.py run --config feeds.yaml --dry-run
  python scripts/pipeline_cli.py run --source techcrunch --skip-embed
  python scripts/pipeline_cli.py validate
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


# Ensure repo root on sys.path, regardless of nesting depth
def _repo_root() -> Path:
    start = Path(__file__).resolve()
    for p in [start] + list(start.parents):
        if (p / "src").exists() and (p / "README.md").exists():
            return p
    return start.parents[1]


ROOT = _repo_root()
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

# Lazy load env from .env at repo root if present
load_dotenv(str(ROOT / ".env"), override=False)

from news_cluster_pipeline.config import ConfigError, ConfigManager  # noqa: E402
from news_cluster_pipeline.embedding import EmbeddingGenerator  # noqa: E402
from news_cluster_pipeline.logging.audit import AuditLogger  # noqa: E402
from news_cluster_pipeline.logging.setup import setup_logging  # noqa: E402
from news_cluster_pipeline.orchestrator import DatasetPipeline, PipelineSummary  # noqa: E402
from news_cluster_pipeline.pipeline_config import (  # noqa: E402
    PipelineConfigError,
    PipelineTuning,
    PipelineTuningManager,
)
from news_cluster_pipeline.storage import DatasetStore  # noqa: E402


def _resolve_config_path(path_str: str) -> str:
    """Resolve config path relative to CWD or repo ROOT fallback."""
    p = Path(path_str)
    if p.exists():
        return str(p)
    rp = ROOT / path_str
    if rp.exists():
        return str(rp)
    return str(p)


def cmd_list_sources(cm: ConfigManager) -> int:
    sources = cm.get_enabled_sources()
    print(f"Enabled sources: {len(sources)}")
    for s in sources:
        extra = f" queries={len(s.queries)}" if s.queries else ""
        print(f" - {s.id} ({s.name}) [{s.type.value}/{s.kind}]{extra}")
    return 0


def cmd_validate(cm: ConfigManager, tuning_path: str) -> int:
    try:
        cfg = cm.to_dict()
        tm = PipelineTuningManager(tuning_path)
        tuning = tm.load_config()
    except (ConfigError, PipelineConfigError) as e:
        print(f"Config error: {e}")
        return 2

    print("feeds.yaml validation: OK")
    warnings = cm.get_warnings() + tm.get_warnings()
    if warnings:
        print("Warnings:")
        for w in warnings:
            print(f" - {w}")
    print(f"Defaults: {cfg['defaults']}")
    print(f"Sources: {len(cfg['sources'])} total, {len(cm.get_enabled_sources())} enabled")
    print(f"Feeds to fetch: {len(cm.feeds_to_fetch())}")
    print(f"Topic clustering: {tuning.topic}")
    print(f"Neighbors: {tuning.neighbors}")
    return 0


def _build_embedder(tuning: PipelineTuning) -> Optional[EmbeddingGenerator]:
    api_key = tuning.embedding.get_api_key()
    if not api_key:
        return None
    return EmbeddingGenerator(
        api_key=api_key,
        model=tuning.embedding.model_name,
        batch_size=tuning.embedding.batch_size,
        max_retries=tuning.embedding.max_retries,
    )


def _print_summary(summary: PipelineSummary, output_dir: Path, dry_run: bool) -> None:
    print("---- Dataset summary ----")
    print(f"Sources fetched: {summary.sources_fetched}/{summary.sources}")
    print(f"Items ingested: {summary.fetched_items}")
    print(f"Items deduped:  {summary.new_items} (new) / {summary.total_items} (total)")
    print(f"Items output:   {summary.output_items}")
    print(f"Embedded:       {summary.embedded}")
    print(f"Stories:        {summary.stories} (near-duplicate groups: {summary.near_duplicate_groups})")
    print(f"Neighbors:      {summary.neighbors}")
    print(f"Errors:         {summary.errors}")
    print(f"Top tags: {summary.top_tags}")
    if summary.audit is not None:
        print(f"Audit: {summary.audit.to_dict()}")
    if summary.invalid:
        print("Dataset marked INVALID by audit thresholds.")
    if not dry_run:
        print(f"Wrote: {output_dir}")


def cmd_run(
    cfg_path: str,
    *,
    tuning_path: str = "pipeline.yaml",
    output_dir: Optional[str] = None,
    source: Optional[str] = None,
    dry_run: bool = False,
    skip_embed: bool = False,
    skip_cluster: bool = False,
) -> int:
    cm = ConfigManager(cfg_path)
    cm.load_config()
    tuning = PipelineTuningManager(tuning_path).load_config()
    if skip_embed:
        tuning.dataset.skip_embed = True
    if skip_cluster:
        tuning.dataset.skip_cluster = True

    only: Optional[List[str]] = None
    if source:
        enabled = cm.get_enabled_sources()
        if not any(s.id.lower() == source.lower() for s in enabled):
            names = ", ".join(sorted(s.id for s in enabled))
            print(f"No enabled source matched '{source}'. Try one of: {names}")
            return 3
        only = [source]

    out = Path(output_dir or os.getenv("DATASET_OUTPUT_DIR") or cm.get_defaults().output_dir)
    store = DatasetStore(out)
    audit = AuditLogger(storage=store) if tuning.monitoring.audit_enabled else None
    pipeline = DatasetPipeline(
        cfg_path,
        tuning=tuning,
        store=store,
        audit=audit,
        embedder=None if tuning.dataset.skip_embed else _build_embedder(tuning),
    )
    summary = pipeline.run(dry_run=dry_run, only_sources=only)
    _print_summary(summary, out, dry_run)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="News clustering pipeline CLI")
    p.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"), help="Logging level (default: INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # run
    pr = sub.add_parser("run", help="Build the dataset")
    pr.add_argument("--config", default="feeds.yaml", help="Path to feeds.yaml (default: feeds.yaml)")
    pr.add_argument("--pipeline-config", default="pipeline.yaml", help="Path to tuning YAML (default: pipeline.yaml)")
    pr.add_argument("--output-dir", help="Output directory (default: defaults.output_dir in feeds.yaml)")
    pr.add_argument("--source", help="Only fetch a single enabled source by id")
    pr.add_argument("--dry-run", action="store_true", help="Do not write any output files")
    pr.add_argument("--skip-embed", action="store_true", help="Skip embeddings and neighbor computation")
    pr.add_argument("--skip-cluster", action="store_true", help="Skip story clustering")

    # validate
    pv = sub.add_parser("validate", help="Validate configuration and show warnings")
    pv.add_argument("--config", default="feeds.yaml")
    pv.add_argument("--pipeline-config", default="pipeline.yaml")

    # list-sources
    pl = sub.add_parser("list-sources", help="List enabled sources")
    pl.add_argument("--config", default="feeds.yaml")

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    cfg_path = _resolve_config_path(str(getattr(args, "config", "feeds.yaml")))
    tuning_path = _resolve_config_path(str(getattr(args, "pipeline_config", "pipeline.yaml")))
    try:
        if args.cmd in {"validate", "list-sources"}:
            cm = ConfigManager(cfg_path)
            cm.load_config()
            if args.cmd == "validate":
                return cmd_validate(cm, tuning_path)
            return cmd_list_sources(cm)

        if args.cmd == "run":
            return cmd_run(
                cfg_path,
                tuning_path=tuning_path,
                output_dir=getattr(args, "output_dir", None),
                source=getattr(args, "source", None),
                dry_run=bool(getattr(args, "dry_run", False)),
                skip_embed=bool(getattr(args, "skip_embed", False)),
                skip_cluster=bool(getattr(args, "skip_cluster", False)),
            )
    except (ConfigError, PipelineConfigError) as e:
        print(f"Config error: {e}")
        return 2

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
