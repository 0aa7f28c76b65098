"""
Content-type detection and chunking-strategy routing.

Detection order: explicit content type, then file suffix, then content
heuristics. Each content type maps to exactly one ChunkingStrategy, and each
strategy to exactly one chunker.
"""

import re
from pathlib import PurePath

from loguru import logger

from ..models import ChunkingStrategy, ContentType
from .chunkers import (
    LANGUAGE_BY_SUFFIX,
    BaseChunker,
    Encoding,
    FunctionChunker,
    KeyValueChunker,
    SectionChunker,
    SemanticSimilarityChunker,
    TextChunk,
    ThreadChunker,
    TURN_PATTERN,
)

DOC_SUFFIXES = frozenset({".md", ".markdown", ".rst", ".adoc", ".txt"})
CONFIG_SUFFIXES = frozenset(
    {".yaml", ".yml", ".json", ".toml", ".ini", ".cfg", ".conf", ".env", ".properties"}
)
CONVERSATION_SUFFIXES = frozenset({".chat", ".transcript", ".thread"})

_CODE_LINE = re.compile(
    r"^\s*(?:def |class |import |from \S+ import |func |package |function |fn |"
    r"pub fn |#include|return\b|const |let |var |if .*[:{]\s*$|for .*[:{]\s*$|\}\s*$)"
)
_CONFIG_LINE = re.compile(r"^\s*(?:[\w.-]+\s*[:=]\s*\S*|\[[^\]]+\]|-\s+\S.*)\s*$")
_MD_HEADING = re.compile(r"^#{1,6}\s+\S", re.MULTILINE)


class ContentTypeRouter:
    """
    Routes content to a chunking strategy and runs the matching chunker.

    Example:
        router = ContentTypeRouter()
        router.route("def main():\\n    pass\\n", source="app.py")
        # ChunkingStrategy.SEMANTIC_FUNCTION
        chunks = router.chunk(open("README.md").read(), source="README.md")
    """

    def __init__(
        self,
        chunkers: dict[ChunkingStrategy, BaseChunker] | None = None,
        encoding: Encoding | None = None,
        **chunker_kwargs,
    ):
        """
        Args:
            chunkers: Override the chunker used for one or more strategies
            encoding: Token encoding shared by the default chunkers
            chunker_kwargs: target_tokens / overlap_tokens / min_tokens / max_tokens
                for the default chunkers
        """
        defaults = {
            ChunkingStrategy.SEMANTIC_FUNCTION: FunctionChunker,
            ChunkingStrategy.HIERARCHICAL_SECTION: SectionChunker,
            ChunkingStrategy.THREAD: ThreadChunker,
            ChunkingStrategy.KEY_VALUE: KeyValueChunker,
            ChunkingStrategy.SEMANTIC_SIMILARITY: SemanticSimilarityChunker,
        }
        self._chunkers: dict[ChunkingStrategy, BaseChunker] = {
            strategy: cls(encoding=encoding, **chunker_kwargs)
            for strategy, cls in defaults.items()
        }
        self._chunkers.update(chunkers or {})

    def chunker_for(self, strategy: ChunkingStrategy) -> BaseChunker:
        return self._chunkers[strategy]

    def detect_content_type(
        self,
        content: str,
        source: str | None = None,
        content_type: ContentType | str | None = None,
    ) -> ContentType:
        """
        Detect the content type of a document.

        Args:
            content: Document text
            source: Optional source path or URL
            content_type: Explicit content type (wins when recognized)

        Returns:
            Detected ContentType (UNKNOWN when nothing matches)
        """
        explicit = ContentType.parse(content_type)
        if explicit is not ContentType.UNKNOWN:
            return explicit

        if source:
            detected = self._detect_from_source(source)
            if detected is not ContentType.UNKNOWN:
                return detected

        return self._detect_from_content(content or "")

    @staticmethod
    def _detect_from_source(source: str) -> ContentType:
        path = PurePath(source)
        suffix = path.suffix.lower()
        if path.name == ".env" or path.name.startswith(".env."):
            return ContentType.CONFIG
        if suffix in LANGUAGE_BY_SUFFIX:
            return ContentType.CODE
        if suffix in CONFIG_SUFFIXES:
            return ContentType.CONFIG
        if suffix in CONVERSATION_SUFFIXES:
            return ContentType.CONVERSATION
        if suffix in DOC_SUFFIXES:
            return ContentType.DOCUMENTATION
        return ContentType.UNKNOWN

    @staticmethod
    def _detect_from_content(content: str) -> ContentType:
        lines = [l for l in content.splitlines() if l.strip()]
        if not lines:
            return ContentType.UNKNOWN

        total = len(lines)
        matches = (TURN_PATTERN.match(l) for l in lines)
        speakers = [m.group("speaker").lower() for m in matches if m]
        code = sum(1 for l in lines if _CODE_LINE.match(l))
        config = sum(1 for l in lines if _CONFIG_LINE.match(l))

        # Speakers recur in a thread; config keys mostly don't
        if (
            len(speakers) >= 2
            and len(speakers) / total >= 0.3
            and len(set(speakers)) <= max(2, len(speakers) // 2)
        ):
            return ContentType.CONVERSATION
        if _MD_HEADING.search(content):
            return ContentType.DOCUMENTATION
        if code / total >= 0.2:
            return ContentType.CODE
        if config / total >= 0.6:
            return ContentType.CONFIG
        return ContentType.UNKNOWN

    def route(
        self,
        content: str,
        source: str | None = None,
        content_type: ContentType | str | None = None,
    ) -> ChunkingStrategy:
        """Pick the chunking strategy for a document."""
        return ChunkingStrategy.for_content_type(
            self.detect_content_type(content, source, content_type)
        )

    def chunk(
        self,
        content: str,
        source: str | None = None,
        content_type: ContentType | str | None = None,
        strategy: ChunkingStrategy | None = None,
    ) -> tuple[ContentType, list[TextChunk]]:
        """
        Detect, route and chunk a document.

        Args:
            content: Document text
            source: Optional source path or URL
            content_type: Explicit content type
            strategy: Force a chunking strategy instead of routing

        Returns:
            (content_type, chunks)
        """
        detected = self.detect_content_type(content, source, content_type)
        strategy = strategy or ChunkingStrategy.for_content_type(detected)
        logger.debug(f"Routing {source or '<inline>'} ({detected.value}) to {strategy.value}")
        return detected, self._chunkers[strategy].chunk(content, source, detected)
