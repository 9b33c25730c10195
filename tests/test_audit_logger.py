from __future__ import annotations

from typing import Any, Dict, List

import httpx

from news_cluster_pipeline.logging.audit import AuditLogger, categorize_error


class FakeStorage:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def add_audit_event(self, event_type: str, *, pipeline_run_id=None, source_name=None, message=None, event_data=None):
        self.events.append(
            {
                "type": event_type,
                "run": pipeline_run_id,
                "source": source_name,
                "message": message,
                "data": event_data,
            }
        )
        return True


def test_categorize_error():
    assert categorize_error(TimeoutError("timeout")) == "network_error"
    assert categorize_error(httpx.ConnectError("connection refused")) == "network_error"
    class ParseErr(Exception):
        pass
    assert categorize_error(ParseErr("parse")) == "parse_error"
    assert categorize_error(PermissionError("denied")) == "storage_error"
    class EmbedErr(Exception):
        pass
    assert categorize_error(EmbedErr("openai rate limit")) == "llm_error"
    assert categorize_error(RuntimeError("???")) == "unknown_error"


def test_audit_logger_events_and_error():
    fs = FakeStorage()
    al = AuditLogger(storage=fs)
    assert al.log_fetch_start("techcrunch")
    assert al.log_fetch_end("techcrunch", items=10, duration_ms=123)
    assert al.log_dedupe_summary(candidates=20, existing=5, kept=15)
    assert al.log_cluster_summary(stories=4, near_duplicates=2, neighbors=9)
    try:
        raise ValueError("xml parse boom")
    except Exception as e:
        assert al.log_error(context="parsing", exc=e, extra={"feed": "techcrunch"})

    assert len(fs.events) == 5
    # Ensure pipeline_run_id is set and consistent
    runs = {e["run"] for e in fs.events}
    assert len(runs) == 1

    assert fs.events[1]["data"]["ok"] is True
    assert fs.events[2]["data"]["kept"] == 15
    err = fs.events[-1]
    assert err["type"] == "error"
    assert err["data"]["category"] == "parse_error"
    assert err["data"]["feed"] == "techcrunch"
    assert "ValueError" in err["data"]["trace"]


def test_default_source_and_run_id():
    fs = FakeStorage()
    al = AuditLogger(storage=fs, pipeline_run_id="run-1", default_source="pipeline")
    al.log_event("custom", message="hello")
    assert fs.events[0]["run"] == "run-1"
    assert fs.events[0]["source"] == "pipeline"


def test_pipeline_summary():
    fs = FakeStorage()
    al = AuditLogger(storage=fs)
    assert al.log_pipeline_summary(sources=3, fetched_items=40, output_items=15, stories=4, errors=1, duration_ms=2222)
    assert fs.events[-1]["message"] == "pipeline_summary"
    assert fs.events[-1]["data"]["output_items"] == 15
