"""Chunk storage: BM25 keyword index and versioned chunk store."""

from .bm25 import BM25Index
from .chunk_store import ChunkSet, ChunkStore

__all__ = ["BM25Index", "ChunkSet", "ChunkStore"]
