"""
Versioned in-memory chunk store with vector and keyword search.

Every write builds a new immutable ChunkSet (chunk map, normalized embedding
matrix, BM25 index, per-type id sets) and publishes it with one reference
swap. Searches read a single snapshot, so a query never sees a half-applied
re-index.
"""

import asyncio
from dataclasses import dataclass, field
from threading import Lock
from types import MappingProxyType
from typing import Collection, Iterable, Mapping

import numpy as np
from loguru import logger

from ..embedding.embedder import Embedder, HashingEmbedder
from ..models import Chunk, ContentType
from .bm25 import BM25Index

ScoredChunk = tuple[Chunk, float]


@dataclass(frozen=True)
class ChunkSet:
    """One immutable version of the indexed corpus."""

    version: int
    chunks: Mapping[str, Chunk]
    vector_ids: tuple[str, ...]  # Row order of matrix
    matrix: np.ndarray  # (len(vector_ids), dimension), rows L2-normalized
    bm25: BM25Index
    ids_by_type: Mapping[ContentType, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def empty(cls, dimension: int) -> "ChunkSet":
        return cls(
            version=0,
            chunks=MappingProxyType({}),
            vector_ids=(),
            matrix=np.zeros((0, dimension), dtype=np.float32),
            bm25=BM25Index(),
            ids_by_type=MappingProxyType({}),
        )

    def __len__(self) -> int:
        return len(self.chunks)

    def allowed_ids(self, content_types: Collection[ContentType] | None) -> frozenset[str] | None:
        """Chunk ids of the given types (None = no restriction)."""
        if not content_types:
            return None
        allowed = frozenset()
        for content_type in content_types:
            allowed |= self.ids_by_type.get(content_type, frozenset())
        return allowed


class ChunkStore:
    """
    Thread-safe chunk store.

    Features:
    - Lock-free reads of the current snapshot
    - Writers serialized by a lock; each write publishes version + 1
    - Cosine vector search (scores clamped to [0, 1])
    - BM25 keyword search (scores normalized by the top hit into (0, 1])

    Example:
        store = ChunkStore()
        store.add(ingestor.ingest_file("README.md"))
        hits = await store.keyword_search("install", top_k=5)
    """

    def __init__(
        self,
        chunks: Iterable[Chunk] = (),
        embedder: Embedder | None = None,
    ):
        self.embedder = embedder or HashingEmbedder()
        self.dimension = self.embedder.dimension
        self._write_lock = Lock()
        self._snapshot = ChunkSet.empty(self.dimension)
        chunks = list(chunks)
        if chunks:
            self.add(chunks)

    @property
    def snapshot(self) -> ChunkSet:
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def __len__(self) -> int:
        return len(self._snapshot)

    def get(self, chunk_id: str) -> Chunk | None:
        return self._snapshot.chunks.get(chunk_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, chunks: Iterable[Chunk]) -> int:
        """
        Add chunks, superseding any existing chunk with the same id.

        Returns:
            New snapshot version
        """
        return self._write(added=list(chunks), removed_ids=())

    def replace(self, chunks: Iterable[Chunk], sources: Iterable[str] | None = None) -> int:
        """
        Re-index sources: drop every chunk from the given sources, then add.

        Args:
            chunks: New chunks
            sources: Sources to clear (defaults to the sources of `chunks`)

        Returns:
            New snapshot version
        """
        chunks = list(chunks)
        source_set = set(sources) if sources is not None else {c.source for c in chunks}
        return self._write(added=chunks, removed_ids=(), sources=source_set)

    def remove(self, chunk_ids: Iterable[str]) -> int:
        """
        Remove chunks by id (unknown ids are ignored).

        Returns:
            New snapshot version
        """
        return self._write(added=[], removed_ids=list(chunk_ids))

    def _write(
        self,
        added: list[Chunk],
        removed_ids: Iterable[str],
        sources: set[str] | None = None,
    ) -> int:
        with self._write_lock:
            current = self._snapshot
            chunks = dict(current.chunks)

            if sources is not None:
                removed_ids = [cid for cid, c in chunks.items() if c.source in sources]
            removed = [cid for cid in removed_ids if chunks.pop(cid, None) is not None]

            for chunk in added:
                chunks[chunk.chunk_id] = chunk

            bm25 = current.bm25.copy()
            bm25.apply(added=[(c.chunk_id, c.text) for c in added], removed=removed)

            snapshot = ChunkSet(
                version=current.version + 1,
                chunks=MappingProxyType(chunks),
                bm25=bm25,
                ids_by_type=self._index_types(chunks),
                **self._build_matrix(chunks),
            )
            self._snapshot = snapshot

        logger.info(
            f"Chunk store v{snapshot.version}: +{len(added)} -{len(removed)} "
            f"({len(snapshot)} chunks)"
        )
        return snapshot.version

    @staticmethod
    def _index_types(chunks: Mapping[str, Chunk]) -> Mapping[ContentType, frozenset[str]]:
        by_type: dict[ContentType, set[str]] = {}
        for chunk_id, chunk in chunks.items():
            by_type.setdefault(chunk.content_type, set()).add(chunk_id)
        return MappingProxyType({t: frozenset(ids) for t, ids in by_type.items()})

    def _build_matrix(self, chunks: Mapping[str, Chunk]) -> dict:
        vector_ids = []
        rows = []
        skipped = 0
        for chunk_id in sorted(chunks):
            embedding = chunks[chunk_id].embedding
            if len(embedding) != self.dimension:
                skipped += 1
                continue
            vector_ids.append(chunk_id)
            rows.append(embedding)

        if skipped:
            logger.warning(
                f"{skipped} chunks have no {self.dimension}-dim embedding; "
                "they are searchable by keyword only"
            )

        if not rows:
            return {
                "vector_ids": (),
                "matrix": np.zeros((0, self.dimension), dtype=np.float32),
            }

        matrix = np.asarray(rows, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        matrix = matrix / norms
        matrix.setflags(write=False)
        return {"vector_ids": tuple(vector_ids), "matrix": matrix}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def vector_search_sync(
        self,
        query_vector: np.ndarray,
        top_k: int,
        content_types: Collection[ContentType] | None = None,
        snapshot: ChunkSet | None = None,
    ) -> list[ScoredChunk]:
        """
        Cosine similarity search.

        Returns:
            Up to top_k (chunk, score) pairs with score in (0, 1], ordered by
            score descending then chunk id
        """
        snapshot = self._snapshot if snapshot is None else snapshot
        if top_k <= 0 or not snapshot.vector_ids:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        norm = float(np.linalg.norm(query))
        if norm == 0:
            return []

        scores = np.clip(snapshot.matrix @ (query / norm), 0.0, 1.0)

        allowed = snapshot.allowed_ids(content_types)
        if allowed is not None:
            mask = np.fromiter(
                (cid in allowed for cid in snapshot.vector_ids), dtype=bool, count=len(scores)
            )
            scores = np.where(mask, scores, 0.0)

        candidates = np.flatnonzero(scores > 0)
        if candidates.size > top_k:
            # Keep everything tied with the k-th score so the id tie-break stays exact
            kth = np.partition(scores[candidates], -top_k)[-top_k]
            candidates = candidates[scores[candidates] >= kth]

        hits = [(snapshot.vector_ids[i], float(scores[i])) for i in candidates]
        hits.sort(key=lambda x: (-x[1], x[0]))
        return [(snapshot.chunks[cid], score) for cid, score in hits[:top_k]]

    def keyword_search_sync(
        self,
        query: str,
        top_k: int,
        content_types: Collection[ContentType] | None = None,
        snapshot: ChunkSet | None = None,
    ) -> list[ScoredChunk]:
        """
        BM25 keyword search.

        Returns:
            Up to top_k (chunk, score) pairs; scores are divided by the best
            BM25 score so the top hit is 1.0
        """
        snapshot = self._snapshot if snapshot is None else snapshot
        hits = snapshot.bm25.search(
            query, top_k=top_k, allowed_ids=snapshot.allowed_ids(content_types)
        )
        if not hits:
            return []
        top_score = hits[0][1]
        return [(snapshot.chunks[cid], score / top_score) for cid, score in hits]

    async def vector_search(
        self,
        query: str,
        top_k: int,
        content_types: Collection[ContentType] | None = None,
        snapshot: ChunkSet | None = None,
    ) -> list[ScoredChunk]:
        """Embed the query text and run vector search off the event loop."""
        snapshot = self._snapshot if snapshot is None else snapshot
        query_vector = self.embedder.embed_query(query)
        return await asyncio.to_thread(
            self.vector_search_sync, query_vector, top_k, content_types, snapshot
        )

    async def keyword_search(
        self,
        query: str,
        top_k: int,
        content_types: Collection[ContentType] | None = None,
        snapshot: ChunkSet | None = None,
    ) -> list[ScoredChunk]:
        """Run BM25 search off the event loop."""
        snapshot = self._snapshot if snapshot is None else snapshot
        return await asyncio.to_thread(
            self.keyword_search_sync, query, top_k, content_types, snapshot
        )

    async def search(
        self,
        query: str,
        top_k: int,
        modality: str = "vector",
        content_types: Collection[ContentType] | None = None,
        snapshot: ChunkSet | None = None,
    ) -> list[ScoredChunk]:
        """Dispatch to vector_search or keyword_search by modality name."""
        if modality == "vector":
            return await self.vector_search(query, top_k, content_types, snapshot)
        if modality == "keyword":
            return await self.keyword_search(query, top_k, content_types, snapshot)
        raise ValueError(f"Unknown search modality: {modality}")

    def get_stats(self) -> dict:
        snapshot = self._snapshot
        return {
            "version": snapshot.version,
            "total_chunks": len(snapshot),
            "vector_indexed": len(snapshot.vector_ids),
            "by_content_type": {t.value: len(ids) for t, ids in snapshot.ids_by_type.items()},
            "bm25": snapshot.bm25.get_index_stats(),
        }
