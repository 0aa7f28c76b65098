"""Content-type routing, chunking and ingestion."""

from .chunkers import (
    BaseChunker,
    FunctionChunker,
    KeyValueChunker,
    SectionChunker,
    SemanticSimilarityChunker,
    TextChunk,
    ThreadChunker,
)
from .features import tag_features
from .pipeline import ChunkIngestor, chunk_id_for
from .router import ContentTypeRouter

__all__ = [
    "BaseChunker",
    "ChunkIngestor",
    "ContentTypeRouter",
    "FunctionChunker",
    "KeyValueChunker",
    "SectionChunker",
    "SemanticSimilarityChunker",
    "TextChunk",
    "ThreadChunker",
    "chunk_id_for",
    "tag_features",
]
