"""Embedding generation for story clustering and neighbor lookup."""

from .generator import EmbeddingError, EmbeddingGenerator, embedding_text_for_item

__all__ = [
    "EmbeddingError",
    "EmbeddingGenerator",
    "embedding_text_for_item",
]
