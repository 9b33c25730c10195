from __future__ import annotations

import re
from collections import Counter
from typing import Dict, Iterable, List, Sequence, Tuple

from .models import Item, Topic


GENERAL_TOPIC = "general"

TOPICS: List[Topic] = [
    Topic("general", "General", ["technology", "tech", "software", "hardware", "internet"]),
    Topic(
        "ai",
        "AI",
        ["ai", "artificial intelligence", "llm", "chatgpt", "openai", "anthropic", "gemini", "machine learning"],
    ),
    Topic(
        "startups_vc",
        "Startups & VC",
        ["startup", "seed", "series a", "series b", "funding", "venture", "vc", "valuation", "acquired"],
    ),
    Topic(
        "frontend",
        "Frontend",
        ["react", "next.js", "nextjs", "frontend", "ui", "css", "tailwind", "typescript", "javascript"],
    ),
    Topic(
        "backend",
        "Backend & Infra",
        ["kubernetes", "k8s", "postgres", "database", "backend", "infra", "devops", "docker", "microservices"],
    ),
    Topic(
        "devtools",
        "Developer Tools",
        ["devtools", "developer tools", "sdk", "cli", "open source", "github", "release", "launch"],
    ),
    Topic(
        "security",
        "Security",
        ["security", "breach", "vulnerability", "cve", "ransomware", "phishing", "zero-day", "exploit"],
    ),
    Topic(
        "hardware_gpu",
        "Hardware & GPUs",
        ["gpu", "nvidia", "amd", "intel", "semiconductor", "chip", "foundry", "euv", "supply chain"],
    ),
    Topic(
        "robotics",
        "Robotics",
        ["robot", "robotics", "humanoid", "automation", "warehouse robot", "drone", "autonomous"],
    ),
    Topic(
        "policy",
        "Policy",
        ["regulation", "policy", "law", "antitrust", "congress", "eu", "gdpr", "ai act"],
    ),
    Topic(
        "data",
        "Data",
        ["data", "privacy", "dataset", "analytics", "telemetry", "tracking", "observability", "logging"],
    ),
]

DEFAULT_BLOCKED_TERMS = ["deal", "discount", "coupon", "sale"]


def _compile_keywords(words: Iterable[str]) -> List[re.Pattern]:
    return [re.compile(rf"\b{re.escape(w)}\b", re.IGNORECASE) for w in words if w]


def _haystack(item: Item) -> str:
    return f"{item.title or ''} {item.summary or ''}"


class KeywordTagger:
    """Assign topic ids to items by keyword match over title and summary.

    The ``general`` topic is never matched directly; it is the fallback tag
    for items that match nothing else.
    """

    def __init__(self, topics: Sequence[Topic] = TOPICS):
        self.topics = list(topics)
        self._matchers: List[Tuple[str, List[re.Pattern]]] = [
            (t.id, _compile_keywords(t.keywords)) for t in self.topics if t.id != GENERAL_TOPIC
        ]

    def tags_for(self, item: Item) -> List[str]:
        text = _haystack(item)
        tags = [topic_id for topic_id, patterns in self._matchers if any(p.search(text) for p in patterns)]
        return tags or [GENERAL_TOPIC]

    def tag(self, items: Iterable[Item]) -> Counter:
        counts: Counter = Counter()
        for item in items:
            item.tags = list(dict.fromkeys(self.tags_for(item)))
            counts.update(item.tags)
        return counts


def tag_items(items: List[Item], topics: Sequence[Topic] = TOPICS) -> Tuple[List[Item], Counter]:
    """Tag ``items`` in place; returns the items and per-tag counts."""
    counts = KeywordTagger(topics).tag(items)
    return items, counts


def filter_blocked(items: Iterable[Item], blocked_terms: Sequence[str] = DEFAULT_BLOCKED_TERMS) -> List[Item]:
    """Drop promotional items whose title or summary mentions a blocked term."""
    patterns = _compile_keywords(t.strip() for t in blocked_terms)
    if not patterns:
        return list(items)
    return [it for it in items if not any(p.search(_haystack(it)) for p in patterns)]


def top_tags(counts: Dict[str, int], n: int = 12) -> List[Tuple[str, int]]:
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:n]


__all__ = [
    "GENERAL_TOPIC",
    "TOPICS",
    "DEFAULT_BLOCKED_TERMS",
    "KeywordTagger",
    "tag_items",
    "filter_blocked",
    "top_tags",
]
