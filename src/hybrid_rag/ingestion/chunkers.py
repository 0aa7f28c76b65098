"""
Content-aware chunkers with deterministic output.

One chunker per ChunkingStrategy. Each splits on the structure of its content
type first (functions, headings, turns, config entries) and only falls back to
token windows when a structural unit exceeds max_tokens.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import PurePath
from typing import Any, Protocol, Sequence

import tiktoken
from loguru import logger

from ..models import ChunkingStrategy, ContentType
from .features import tag_features


class Encoding(Protocol):
    """Token encoder used for counting and token-window splitting."""

    def encode(self, text: str) -> Sequence[Any]: ...

    def decode(self, tokens: Sequence[Any]) -> str: ...


class TiktokenEncoding:
    """cl100k_base tokenizer (same as GPT-4) with special tokens treated as text."""

    def __init__(self, name: str = "cl100k_base"):
        self.name = name
        self._encoding = tiktoken.get_encoding(name)

    def encode(self, text: str) -> list[int]:
        return self._encoding.encode(text, disallowed_special=())

    def decode(self, tokens: Sequence[int]) -> str:
        return self._encoding.decode(list(tokens))


@lru_cache(maxsize=1)
def default_encoding() -> TiktokenEncoding:
    return TiktokenEncoding()


@dataclass
class TextChunk:
    """A chunk of source text before embedding."""

    text: str
    index: int = -1  # Set after splitting
    token_count: int = 0
    metadata: dict = field(default_factory=dict)


class BaseChunker(ABC):
    """
    Shared chunking pipeline.

    1. Split by structure (_split, per strategy)
    2. Split any piece above max_tokens into overlapping token windows
    3. Assign indexes, token counts and feature tags
    """

    strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC_SIMILARITY
    content_type: ContentType = ContentType.UNKNOWN

    def __init__(
        self,
        target_tokens: int = 512,
        overlap_tokens: int = 50,
        min_tokens: int = 100,
        max_tokens: int = 2000,
        encoding: Encoding | None = None,
    ):
        if overlap_tokens >= target_tokens:
            raise ValueError(
                f"overlap_tokens ({overlap_tokens}) must be < target_tokens ({target_tokens})"
            )
        if target_tokens > max_tokens:
            raise ValueError(
                f"target_tokens ({target_tokens}) must be <= max_tokens ({max_tokens})"
            )
        self.target_tokens = target_tokens
        self.overlap_tokens = overlap_tokens
        self.min_tokens = min_tokens
        self.max_tokens = max_tokens
        self._encoding = encoding

    @property
    def encoder(self) -> Encoding:
        if self._encoding is None:
            self._encoding = default_encoding()
        return self._encoding

    def count_tokens(self, text: str) -> int:
        return len(self.encoder.encode(text))

    def chunk(
        self,
        text: str,
        source: str | None = None,
        content_type: ContentType | None = None,
    ) -> list[TextChunk]:
        """
        Chunk text.

        Args:
            text: Full document text
            source: Optional source path (used for format hints)
            content_type: Content type used for feature tagging
                (defaults to the chunker's own type)

        Returns:
            List of TextChunk objects in document order
        """
        if not text or not text.strip():
            return []

        content_type = content_type or self.content_type
        chunks = []
        for piece in self._split(text, source):
            if not piece.text.strip():
                continue
            piece.token_count = self.count_tokens(piece.text)
            if piece.token_count > self.max_tokens:
                chunks.extend(self._chunk_by_tokens(piece))
            else:
                chunks.append(piece)

        for i, chunk in enumerate(chunks):
            chunk.index = i
            chunk.metadata["strategy"] = self.strategy.value
            chunk.metadata["features"] = tag_features(
                chunk.text, content_type, chunk.metadata.get("features", ())
            )

        logger.debug(
            f"{self.strategy.value} chunker created {len(chunks)} chunks"
            + (f" from {source}" if source else "")
        )
        return chunks

    @abstractmethod
    def _split(self, text: str, source: str | None) -> list[TextChunk]:
        """Split text into structural pieces (before token-window fallback)."""

    def _chunk_by_tokens(self, piece: TextChunk) -> list[TextChunk]:
        """Split a piece into chunks of target_tokens with overlap."""
        tokens = self.encoder.encode(piece.text)

        if len(tokens) <= self.target_tokens:
            piece.token_count = len(tokens)
            return [piece]

        chunks = []
        step = max(self.target_tokens - self.overlap_tokens, 1)
        part = 0
        for start in range(0, len(tokens), step):
            window = tokens[start : start + self.target_tokens]
            metadata = dict(piece.metadata)
            metadata["part"] = part
            chunks.append(
                TextChunk(
                    text=self.encoder.decode(window),
                    token_count=len(window),
                    metadata=metadata,
                )
            )
            part += 1
            if start + self.target_tokens >= len(tokens):
                break
        return chunks

    def _merge_small_chunks(self, chunks: list[TextChunk]) -> list[TextChunk]:
        """Merge chunks that are too small into their successor."""
        merged = []
        current = None

        for chunk in chunks:
            if current is None:
                current = chunk
            elif current.token_count < self.min_tokens:
                current.text = current.text + "\n\n" + chunk.text
                current.token_count = self.count_tokens(current.text)
            else:
                merged.append(current)
                current = chunk

        if current is not None:
            merged.append(current)

        return merged


class SemanticSimilarityChunker(BaseChunker):
    """
    Fallback chunker for unstructured text.

    Splits on paragraph boundaries, windows long paragraphs by token count
    with overlap, then merges very small chunks.
    """

    strategy = ChunkingStrategy.SEMANTIC_SIMILARITY

    def _split(self, text: str, source: str | None) -> list[TextChunk]:
        sections = [s.strip() for s in re.split(r"\n\s*\n+", text) if s.strip()]

        chunks = []
        for section in sections:
            piece = TextChunk(text=section)
            chunks.extend(self._chunk_by_tokens(piece))

        return self._merge_small_chunks(chunks)

    def estimate_chunk_count(self, text: str) -> int:
        """Estimate number of chunks for a document (without actually chunking)."""
        tokens = self.count_tokens(text)
        if tokens <= self.target_tokens:
            return 1

        step = self.target_tokens - self.overlap_tokens
        return max(1, (tokens - self.overlap_tokens) // step + 1)


_CODE_BOUNDARY = re.compile(
    r"^(?:"
    r"(?:async\s+)?def\s+(?P<py_def>\w+)"
    r"|(?:(?:public|private|protected|internal|abstract|final|static|sealed|export)\s+)*"
    r"(?:class|interface)\s+(?P<class>\w+)"
    r"|func\s+(?:\([^)]*\)\s*)?(?P<go_func>\w+)"
    r"|type\s+(?P<go_type>\w+)\s+(?:struct|interface)\b"
    r"|(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*(?P<js_func>\w+)"
    r"|(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?fn\s+(?P<rs_fn>\w+)"
    r"|(?:pub(?:\([^)]*\))?\s+)?(?:struct|enum|trait)\s+(?P<rs_type>\w+)"
    r"|impl(?:<[^>]*>)?\s+(?P<rs_impl>[\w:]+)"
    r")"
)

_KIND_BY_GROUP = {
    "py_def": "function",
    "class": "class",
    "go_func": "function",
    "go_type": "type",
    "js_func": "function",
    "rs_fn": "function",
    "rs_type": "type",
    "rs_impl": "impl",
}

_LEAD_IN = re.compile(r"^\s*(?:@|//|#(?!include)|/\*|\*)")

LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".go": "go",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".cs": "csharp",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".scala": "scala",
    ".sh": "shell",
}


class FunctionChunker(BaseChunker):
    """
    Code chunker splitting on top-level function, class and type boundaries.

    Decorators and comments directly above a definition stay with it. Code
    before the first definition (imports, constants) becomes a "<module>" chunk.

    Metadata: symbol, kind, start_line, end_line (1-indexed, inclusive),
    language (when known from the source suffix).
    """

    strategy = ChunkingStrategy.SEMANTIC_FUNCTION
    content_type = ContentType.CODE

    def _split(self, text: str, source: str | None) -> list[TextChunk]:
        lines = text.splitlines()
        language = LANGUAGE_BY_SUFFIX.get(PurePath(source).suffix.lower()) if source else None

        boundaries = []  # (start_line_index, symbol, kind)
        for i, line in enumerate(lines):
            match = _CODE_BOUNDARY.match(line)
            if not match:
                continue
            group, symbol = next((g, v) for g, v in match.groupdict().items() if v)
            start = i
            floor = boundaries[-1][0] + 1 if boundaries else 0
            while start > floor and lines[start - 1].strip() and _LEAD_IN.match(lines[start - 1]):
                start -= 1
            boundaries.append((start, symbol, _KIND_BY_GROUP[group]))

        segments = []
        if not boundaries:
            segments.append((0, len(lines), "<module>", "module"))
        else:
            if boundaries[0][0] > 0:
                segments.append((0, boundaries[0][0], "<module>", "module"))
            for n, (start, symbol, kind) in enumerate(boundaries):
                end = boundaries[n + 1][0] if n + 1 < len(boundaries) else len(lines)
                segments.append((start, end, symbol, kind))

        chunks = []
        for start, end, symbol, kind in segments:
            # Trim trailing blank lines so end_line points at real code
            while end > start and not lines[end - 1].strip():
                end -= 1
            body = "\n".join(lines[start:end])
            if not body.strip():
                continue
            metadata = {
                "symbol": symbol,
                "kind": kind,
                "start_line": start + 1,
                "end_line": end,
            }
            if language:
                metadata["language"] = language
            chunks.append(TextChunk(text=body, metadata=metadata))
        return chunks


_HEADING = re.compile(r"^(?P<level>#{1,6})\s+(?P<title>.+?)\s*#*\s*$")
_FENCE = re.compile(r"^\s*(?:```|~~~)")


class SectionChunker(BaseChunker):
    """
    Documentation chunker splitting on markdown heading boundaries.

    Keeps the heading with its content and links each section to its parent.
    Headings inside fenced code blocks are ignored.

    Metadata: heading, heading_level, section_path (titles from the root),
    parent_section (title of the enclosing section, or None), start_line,
    end_line.
    """

    strategy = ChunkingStrategy.HIERARCHICAL_SECTION
    content_type = ContentType.DOCUMENTATION

    def _split(self, text: str, source: str | None) -> list[TextChunk]:
        lines = text.splitlines()
        stack: list[tuple[int, str]] = []  # (level, title) of open sections
        sections = []
        current = {"start": 0, "heading": None, "level": 0, "path": [], "parent": None}
        in_fence = False

        for i, line in enumerate(lines):
            if _FENCE.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            match = _HEADING.match(line)
            if not match:
                continue

            if i > current["start"] or current["heading"] is not None:
                current["end"] = i
                sections.append(current)

            level = len(match.group("level"))
            title = match.group("title")
            while stack and stack[-1][0] >= level:
                stack.pop()
            parent = stack[-1][1] if stack else None
            stack.append((level, title))
            current = {
                "start": i,
                "heading": title,
                "level": level,
                "path": [t for _, t in stack],
                "parent": parent,
            }

        current["end"] = len(lines)
        sections.append(current)

        chunks = []
        for section in sections:
            body = "\n".join(lines[section["start"] : section["end"]]).strip()
            if not body:
                continue
            chunks.append(
                TextChunk(
                    text=body,
                    metadata={
                        "heading": section["heading"],
                        "heading_level": section["level"],
                        "section_path": section["path"],
                        "parent_section": section["parent"],
                        "start_line": section["start"] + 1,
                        "end_line": section["end"],
                    },
                )
            )
        return chunks


TURN_PATTERN = re.compile(
    r"^\s*(?:\[[^\]\n]{1,40}\]\s*)?(?:\*\*)?(?P<speaker>[A-Za-z][\w.@ -]{0,31}?)(?:\*\*)?:\s+\S"
)


class ThreadChunker(BaseChunker):
    """
    Conversation chunker grouping speaker turns into sliding windows.

    A turn starts at a "speaker: message" line (optionally prefixed by a
    [timestamp]). Text without speaker markers is split into paragraph turns.

    Metadata: speakers, turn_start, turn_end (1-indexed, inclusive), thread.
    """

    strategy = ChunkingStrategy.THREAD
    content_type = ContentType.CONVERSATION

    def __init__(self, turns_per_chunk: int = 6, turn_overlap: int = 2, **kwargs):
        super().__init__(**kwargs)
        if turn_overlap >= turns_per_chunk:
            raise ValueError(
                f"turn_overlap ({turn_overlap}) must be < turns_per_chunk ({turns_per_chunk})"
            )
        self.turns_per_chunk = turns_per_chunk
        self.turn_overlap = turn_overlap

    def split_turns(self, text: str) -> list[tuple[str | None, str]]:
        """Split text into (speaker, turn_text) pairs."""
        turns: list[tuple[str | None, list[str]]] = []
        for line in text.splitlines():
            match = TURN_PATTERN.match(line)
            if match:
                turns.append((match.group("speaker").strip(), [line]))
            elif turns:
                turns[-1][1].append(line)
            elif line.strip():
                turns.append((None, [line]))

        if sum(1 for speaker, _ in turns if speaker) < 2:
            paragraphs = [p.strip() for p in re.split(r"\n\s*\n+", text) if p.strip()]
            return [(None, p) for p in paragraphs]
        return [(speaker, "\n".join(body).strip()) for speaker, body in turns]

    def _split(self, text: str, source: str | None) -> list[TextChunk]:
        turns = self.split_turns(text)
        step = self.turns_per_chunk - self.turn_overlap

        chunks = []
        for start in range(0, len(turns), step):
            window = turns[start : start + self.turns_per_chunk]
            metadata = {
                "speakers": sorted({s for s, _ in window if s}),
                "turn_start": start + 1,
                "turn_end": start + len(window),
            }
            if source:
                metadata["thread"] = source
            chunks.append(TextChunk(text="\n".join(t for _, t in window), metadata=metadata))
            if start + self.turns_per_chunk >= len(turns):
                break
        return chunks


_YAML_KEY = re.compile(r"^(?P<key>[^\s#:\-][^:]*?)\s*:(?:\s|$)")
_INI_SECTION = re.compile(r"^\s*\[\[?(?P<key>[^\]]+)\]\]?\s*$")
_DOTENV_ENTRY = re.compile(r"^\s*(?:export\s+)?(?P<key>[A-Za-z_][\w.]*)\s*=")

FORMAT_BY_SUFFIX = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".ini": "ini",
    ".cfg": "ini",
    ".conf": "ini",
    ".toml": "ini",
    ".env": "dotenv",
    ".properties": "dotenv",
}


class KeyValueChunker(BaseChunker):
    """
    Config chunker emitting one chunk per logical entry.

    Supported formats: JSON (top-level keys), YAML (top-level keys), INI/TOML
    (sections) and dotenv/properties (KEY=VALUE lines). Comments directly
    above an entry stay with it.

    Metadata: key, format, start_line, end_line (line range absent for JSON).
    """

    strategy = ChunkingStrategy.KEY_VALUE
    content_type = ContentType.CONFIG

    @staticmethod
    def detect_format(text: str, source: str | None = None) -> str:
        if source:
            path = PurePath(source)
            if path.name == ".env" or path.name.startswith(".env."):
                return "dotenv"
            fmt = FORMAT_BY_SUFFIX.get(path.suffix.lower())
            if fmt:
                return fmt

        stripped = text.lstrip()
        if stripped.startswith("{"):
            return "json"
        lines = [l for l in text.splitlines() if l.strip() and not l.lstrip().startswith("#")]
        if any(_INI_SECTION.match(l) for l in lines):
            return "ini"
        if lines and sum(1 for l in lines if _DOTENV_ENTRY.match(l)) > len(lines) / 2:
            return "dotenv"
        return "yaml"

    def _split(self, text: str, source: str | None) -> list[TextChunk]:
        fmt = self.detect_format(text, source)
        if fmt == "json":
            chunks = self._split_json(text)
            if chunks is not None:
                return chunks
            fmt = "yaml"  # JSON is a YAML subset, slice it line-wise instead

        pattern = {"yaml": _YAML_KEY, "ini": _INI_SECTION, "dotenv": _DOTENV_ENTRY}[fmt]
        return self._split_lines(text, pattern, fmt)

    @staticmethod
    def _split_json(text: str) -> list[TextChunk] | None:
        try:
            data = json.loads(text)
        except ValueError as e:
            logger.debug(f"Config is not valid JSON, slicing by lines: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return [
            TextChunk(
                text=json.dumps({key: value}, indent=2, ensure_ascii=False),
                metadata={"key": key, "format": "json"},
            )
            for key, value in data.items()
        ]

    @staticmethod
    def _split_lines(text: str, pattern: re.Pattern, fmt: str) -> list[TextChunk]:
        lines = text.splitlines()
        starts = []  # (line_index, key)
        for i, line in enumerate(lines):
            match = pattern.match(line)
            if match:
                starts.append((i, match.group("key").strip()))

        if not starts:
            return [
                TextChunk(
                    text=text.strip(),
                    metadata={"key": "<root>", "format": fmt, "start_line": 1, "end_line": len(lines)},
                )
            ]

        # Attach comment lines directly above an entry to that entry
        adjusted = []
        floor = 0
        for line_index, key in starts:
            start = line_index
            while start > floor and lines[start - 1].lstrip().startswith(("#", ";")):
                start -= 1
            adjusted.append((start, key))
            floor = line_index + 1

        segments = []
        if adjusted[0][0] > 0:
            segments.append((0, adjusted[0][0], "<root>"))
        for n, (start, key) in enumerate(adjusted):
            end = adjusted[n + 1][0] if n + 1 < len(adjusted) else len(lines)
            segments.append((start, end, key))

        chunks = []
        for start, end, key in segments:
            while end > start and not lines[end - 1].strip():
                end -= 1
            body = "\n".join(lines[start:end]).strip()
            if not body or body == "---":
                continue
            chunks.append(
                TextChunk(
                    text=body,
                    metadata={"key": key, "format": fmt, "start_line": start + 1, "end_line": end},
                )
            )
        return chunks
