"""Embedding generation for clustering and neighbor lookup."""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from typing import Any, List, Optional, Sequence

import openai

from ..models import Item

logger = logging.getLogger(__name__)

BODY_CHARS = 1200
MAX_INPUT_CHARS = 4000

_WS_RE = re.compile(r"\s+")


class EmbeddingError(Exception):
    """Raised when a batch cannot be embedded after all retries."""
    pass


def _clean(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def embedding_text_for_item(item: Item) -> str:
    """Title, description (or summary) and the start of the article body.

    Each part is whitespace-collapsed; parts are joined by newlines and the
    result is capped at 4000 characters.
    """
    body = (item.extracted_text or "")[:BODY_CHARS]
    parts = [item.title, item.description or item.summary, body]
    merged = "\n".join(_clean(str(p)) for p in parts if p)
    return merged[:MAX_INPUT_CHARS]


class EmbeddingGenerator:
    """Embed items with the OpenAI embeddings API, in batches.

    A failed batch is retried with a linear backoff (``backoff_seconds`` per
    attempt, capped at ``max_backoff_seconds``); after ``max_retries`` failed
    attempts an ``EmbeddingError`` is raised.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        batch_size: int = 16,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        max_backoff_seconds: float = 6.0,
        client: Any = None,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self.model = model
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

        if client is not None:
            self.client = client
        elif api_key:
            self.client = openai.OpenAI(api_key=api_key)
        else:
            self.client = None

        logger.info("EmbeddingGenerator initialized with model %s (batch_size=%d)", model, batch_size)

    @property
    def available(self) -> bool:
        return self.client is not None

    async def embed_items(self, items: Sequence[Item]) -> int:
        """Attach embeddings to ``items`` in place; returns how many were embedded."""
        if not self.client:
            raise EmbeddingError("OpenAI client not initialized (missing API key)")

        embedded = 0
        for start in range(0, len(items), self.batch_size):
            batch = list(items[start:start + self.batch_size])
            texts = [embedding_text_for_item(it) for it in batch]
            vectors = await self._embed_with_retry(texts, start // self.batch_size + 1)
            for item, vec in zip(batch, vectors):
                item.embedding = vec
                embedded += 1
        return embedded

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        if not self.client:
            raise EmbeddingError("OpenAI client not initialized (missing API key)")
        return await self._embed_with_retry(texts, 1)

    async def _embed_with_retry(self, texts: List[str], batch_no: int) -> List[List[float]]:
        attempt = 0
        while True:
            try:
                return await self._create(texts)
            except Exception as e:
                attempt += 1
                logger.warning("Embedding batch %d failed (attempt %d): %s", batch_no, attempt, e)
                if attempt >= self.max_retries:
                    raise EmbeddingError(f"Embedding batch {batch_no} failed after {attempt} attempts: {e}") from e
                await asyncio.sleep(min(self.backoff_seconds * attempt, self.max_backoff_seconds))

    async def _create(self, texts: List[str]) -> List[List[float]]:
        """Call embeddings.create for both sync and async clients."""
        create_fn = self.client.embeddings.create
        kwargs = {"model": self.model, "input": texts, "encoding_format": "float"}
        if inspect.iscoroutinefunction(create_fn):
            response = await create_fn(**kwargs)
        else:
            response = await asyncio.to_thread(create_fn, **kwargs)

        vectors = [[float(x) for x in d.embedding] for d in response.data]
        if len(vectors) != len(texts):
            raise ValueError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors


__all__ = ["EmbeddingError", "EmbeddingGenerator", "embedding_text_for_item"]
