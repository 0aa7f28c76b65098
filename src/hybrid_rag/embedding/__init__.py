"""Embedding adapters."""

from .embedder import Embedder, HashingEmbedder, tokenize

__all__ = ["Embedder", "HashingEmbedder", "tokenize"]
