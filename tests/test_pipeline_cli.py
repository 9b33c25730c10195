from pathlib import Path

import pytest

from scripts.pipeline_cli import build_parser, main


FEEDS_YAML = """
defaults:
  user_agent: TestUA
sources:
  - id: alpha
    name: Alpha News
    type: editorial
    url: https://alpha.example.com/feed
  - id: google
    name: Google News
    type: aggregator
    kind: googlenews_rss
    queries: [AI regulation]
  - id: off
    name: Disabled
    type: primary
    url: https://off.example.com/feed
    enabled: false
"""

RSS_XML = b"""<?xml version="1.0"?><rss version="2.0"><channel><title>x</title>
<item><title>Ransomware hits hospital network</title><link>https://alpha.example.com/r</link>
<pubDate>Thu, 11 Sep 2025 12:00:00 GMT</pubDate></item>
</channel></rss>"""


@pytest.fixture
def cfg(tmp_path: Path) -> str:
    p = tmp_path / "feeds.yaml"
    p.write_text(FEEDS_YAML)
    return str(p)


def test_parser_defaults():
    args = build_parser().parse_args(["run"])
    assert args.config == "feeds.yaml"
    assert args.pipeline_config == "pipeline.yaml"
    assert args.dry_run is False


def test_list_sources(cfg, capsys):
    assert main(["list-sources", "--config", cfg]) == 0
    out = capsys.readouterr().out
    assert "Enabled sources: 2" in out
    assert "alpha (Alpha News) [editorial/rss]" in out
    assert "google (Google News) [aggregator/googlenews_rss] queries=1" in out
    assert "Disabled" not in out


def test_validate_ok(cfg, tmp_path: Path, capsys):
    code = main(["validate", "--config", cfg, "--pipeline-config", str(tmp_path / "missing.yaml")])
    assert code == 0
    out = capsys.readouterr().out
    assert "validation: OK" in out
    assert "Feeds to fetch: 2" in out


def test_validate_reports_config_errors(tmp_path: Path, capsys):
    bad = tmp_path / "feeds.yaml"
    bad.write_text("sources:\n  - id: x\n    type: nope\n    url: https://x.com\n")
    assert main(["validate", "--config", str(bad)]) == 2
    assert "Config error" in capsys.readouterr().out

    bad_tuning = tmp_path / "pipeline.yaml"
    bad_tuning.write_text("neighbors:\n  k: 0\n")
    good = tmp_path / "good.yaml"
    good.write_text(FEEDS_YAML)
    assert main(["validate", "--config", str(good), "--pipeline-config", str(bad_tuning)]) == 2


def test_run_unknown_source(cfg, tmp_path: Path, capsys):
    code = main(["run", "--config", cfg, "--pipeline-config", str(tmp_path / "missing.yaml"), "--source", "nope"])
    assert code == 3
    assert "No enabled source matched 'nope'" in capsys.readouterr().out


def test_run_dry_run(cfg, tmp_path: Path, monkeypatch, capsys):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    class FakeResponse:
        request = None
        status_code = 200
        content = RSS_XML

    class FakeClient:
        def __init__(self, *a, **k):
            pass
        async def __aenter__(self):
            return self
        async def __aexit__(self, *exc):
            return False
        async def get(self, url):
            return FakeResponse()

    monkeypatch.setattr("httpx.AsyncClient", FakeClient)
    out_dir = tmp_path / "out"

    code = main([
        "run",
        "--config", cfg,
        "--pipeline-config", str(tmp_path / "missing.yaml"),
        "--output-dir", str(out_dir),
        "--source", "alpha",
        "--dry-run",
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "Dataset summary" in out
    assert "Sources fetched: 1/1" in out
    assert not out_dir.exists()
