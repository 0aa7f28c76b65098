"""
Ingestion pipeline: route, chunk and embed documents into immutable Chunks.
"""

import hashlib
from pathlib import Path
from typing import Iterable

from loguru import logger

from ..embedding.embedder import Embedder, HashingEmbedder
from ..models import Chunk, ContentType
from .router import ContentTypeRouter


def chunk_id_for(source: str, index: int, text: str) -> str:
    """Deterministic chunk id: SHA-256 of source, position and text."""
    digest = hashlib.sha256()
    digest.update(source.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(str(index).encode("ascii"))
    digest.update(b"\x00")
    digest.update(text.encode("utf-8"))
    return digest.hexdigest()


def _is_hidden(path: Path, root: Path) -> bool:
    return any(part.startswith(".") for part in path.relative_to(root).parts)


class ChunkIngestor:
    """
    Turns raw documents into embedded, typed, immutable Chunks.

    Re-ingesting an unchanged document yields identical chunk ids, so
    ChunkStore.replace() can swap a source's chunks without duplicates.
    """

    def __init__(
        self,
        router: ContentTypeRouter | None = None,
        embedder: Embedder | None = None,
    ):
        self.router = router or ContentTypeRouter()
        self.embedder = embedder or HashingEmbedder()

    def ingest_text(
        self,
        content: str,
        source: str,
        content_type: ContentType | str | None = None,
    ) -> list[Chunk]:
        """
        Chunk and embed one document.

        Args:
            content: Document text
            source: Source identifier (path, URL or thread id)
            content_type: Explicit content type (detected when omitted)

        Returns:
            Chunks in document order (empty for blank content)
        """
        detected, pieces = self.router.chunk(content, source=source, content_type=content_type)
        if not pieces:
            return []

        vectors = self.embedder.embed_batch([p.text for p in pieces])
        chunks = [
            Chunk(
                chunk_id=chunk_id_for(source, piece.index, piece.text),
                source=source,
                content_type=detected,
                text=piece.text,
                embedding=tuple(float(x) for x in vector),
                metadata=piece.metadata,
                token_count=piece.token_count,
            )
            for piece, vector in zip(pieces, vectors)
        ]
        logger.info(f"Ingested {len(chunks)} {detected.value} chunks from {source}")
        return chunks

    def ingest_file(self, path: str | Path, content_type: ContentType | str | None = None) -> list[Chunk]:
        file_path = Path(path)
        content = file_path.read_text(encoding="utf-8", errors="replace")
        return self.ingest_text(content, source=str(file_path), content_type=content_type)

    def ingest_paths(self, paths: Iterable[str | Path]) -> list[Chunk]:
        """
        Ingest files and directories (recursively, skipping hidden entries).

        Unreadable files are logged and skipped.
        """
        chunks = []
        for path in paths:
            root = Path(path)
            if root.is_dir():
                files = sorted(p for p in root.rglob("*") if p.is_file() and not _is_hidden(p, root))
            else:
                files = [root]
            for file_path in files:
                try:
                    chunks.extend(self.ingest_file(file_path))
                except (OSError, UnicodeError) as e:
                    logger.warning(f"Skipping {file_path}: {e}")
        return chunks
