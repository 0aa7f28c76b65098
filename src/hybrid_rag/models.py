"""
Core data models for the retrieval pipeline.

Defines Query, Chunk, CandidateResult, FeedbackEvent and RankingModelState.

All models are frozen dataclasses. Chunks are superseded on re-indexing rather
than mutated, and a RankingModelState is replaced wholesale on every publish.
"""

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(value or {}))


class ContentType(str, Enum):
    """Content-type tag attached to every chunk at ingestion time."""

    CODE = "code"
    DOCUMENTATION = "documentation"
    CONVERSATION = "conversation"
    CONFIG = "config"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "str | ContentType | None") -> "ContentType":
        """Parse a content-type tag, mapping anything unrecognized to UNKNOWN."""
        if isinstance(value, ContentType):
            return value
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


class ChunkingStrategy(str, Enum):
    """Closed set of chunking strategies, dispatched by content type."""

    SEMANTIC_FUNCTION = "semantic_function"  # code: function/class boundaries
    HIERARCHICAL_SECTION = "hierarchical_section"  # docs: heading boundaries
    THREAD = "thread"  # conversation: turn boundaries, sliding window
    KEY_VALUE = "key_value"  # config: one chunk per logical entry
    SEMANTIC_SIMILARITY = "semantic_similarity"  # fallback token windows

    @classmethod
    def for_content_type(cls, content_type: ContentType) -> "ChunkingStrategy":
        return _STRATEGY_BY_CONTENT_TYPE.get(content_type, cls.SEMANTIC_SIMILARITY)


_STRATEGY_BY_CONTENT_TYPE = {
    ContentType.CODE: ChunkingStrategy.SEMANTIC_FUNCTION,
    ContentType.DOCUMENTATION: ChunkingStrategy.HIERARCHICAL_SECTION,
    ContentType.CONVERSATION: ChunkingStrategy.THREAD,
    ContentType.CONFIG: ChunkingStrategy.KEY_VALUE,
}


@dataclass(frozen=True)
class Query:
    """
    A single retrieval request.

    Immutable once received; lives for the duration of one request.
    """

    text: str
    agent_hint: str | None = None
    work_context: Mapping[str, Any] = field(default_factory=dict)
    query_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    received_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        object.__setattr__(self, "work_context", _frozen_mapping(self.work_context))


@dataclass(frozen=True)
class Chunk:
    """
    A bounded unit of source content indexed and retrieved as one candidate.

    Invariants:
    - chunk_id is unique within a chunk set
    - embedding and metadata are stored read-only (tuple / mapping proxy)
    """

    chunk_id: str
    source: str  # File path, URL or thread id the chunk was cut from
    content_type: ContentType
    text: str
    embedding: tuple[float, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)  # symbol, section_path, features...
    token_count: int = 0
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        object.__setattr__(self, "content_type", ContentType.parse(self.content_type))
        object.__setattr__(self, "embedding", tuple(float(x) for x in self.embedding))
        object.__setattr__(self, "metadata", _frozen_mapping(self.metadata))

    @property
    def features(self) -> frozenset[str]:
        """Structural features tagged on this chunk by its chunker."""
        return frozenset(self.metadata.get("features", ()))

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "chunk_id": self.chunk_id,
            "source": self.source,
            "content_type": self.content_type.value,
            "text": self.text,
            "embedding": list(self.embedding),
            "metadata": _plain(self.metadata),
            "token_count": self.token_count,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Chunk":
        """Rebuild a chunk from its to_dict() form."""
        created_at = data.get("created_at")
        return cls(
            chunk_id=data["chunk_id"],
            source=data.get("source", ""),
            content_type=ContentType.parse(data.get("content_type")),
            text=data.get("text", ""),
            embedding=tuple(data.get("embedding", ())),
            metadata=data.get("metadata", {}),
            token_count=int(data.get("token_count", 0)),
            created_at=datetime.fromisoformat(created_at) if created_at else _utcnow(),
        )


@dataclass(frozen=True)
class CandidateResult:
    """
    A chunk scored for one query.

    Created per query by the retrieval engine (merged_score) and re-scored by
    the ranker (final_score, rank, features, model_version). Discarded after the
    response unless sampled for feedback.
    """

    chunk: Chunk
    vector_score: float | None  # Cosine similarity (None if not in vector results)
    keyword_score: float | None  # Normalized BM25 (None if not in keyword results)
    merged_score: float  # Hybrid merge score from the retrieval engine
    final_score: float = 0.0  # Post-ranking score
    rank: int = 0  # 1-indexed position after ranking, 0 before
    features: Mapping[str, float] = field(default_factory=dict)
    model_version: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "features", _frozen_mapping(self.features))

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    def sort_key(self, score: float) -> tuple[float, float, str]:
        """Deterministic ordering: score desc, vector score desc, chunk id asc."""
        vector = self.vector_score if self.vector_score is not None else -math.inf
        return (-score, -vector, self.chunk.chunk_id)

    def with_ranking(
        self,
        final_score: float,
        rank: int,
        features: Mapping[str, float],
        model_version: int,
    ) -> "CandidateResult":
        return replace(
            self,
            final_score=final_score,
            rank=rank,
            features=features,
            model_version=model_version,
        )

    def to_dict(self, include_text: bool = True) -> dict:
        """Convert to dictionary for serialization."""
        data = {
            "chunk_id": self.chunk.chunk_id,
            "source": self.chunk.source,
            "content_type": self.chunk.content_type.value,
            "vector_score": self.vector_score,
            "keyword_score": self.keyword_score,
            "merged_score": self.merged_score,
            "final_score": self.final_score,
            "rank": self.rank,
            "model_version": self.model_version,
            "metadata": _plain(self.chunk.metadata),
        }
        if include_text:
            data["text"] = self.chunk.text
        return data


@dataclass(frozen=True)
class FeedbackEvent:
    """
    Outcome signal for one answered query.

    Append-only; consumed in batches by the adaptation loop and never mutated.
    signal is in [-1, 1]: positive reinforces the selected chunks, negative
    means the selection itself was unhelpful.
    """

    query_id: str
    selected: tuple[str, ...] = ()
    rejected: tuple[str, ...] = ()
    signal: float = 1.0
    explicit: bool = False  # True for user ratings, False for implicit signals
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if not self.query_id:
            raise ValueError("query_id must not be empty")
        if not math.isfinite(self.signal) or not (-1.0 <= self.signal <= 1.0):
            raise ValueError(f"signal must be within [-1, 1], got {self.signal}")
        object.__setattr__(self, "selected", tuple(self.selected))
        object.__setattr__(self, "rejected", tuple(self.rejected))


# Feature names understood by the contextual ranker.
RANKING_FEATURES = (
    "retrieval_score",
    "vector_score",
    "keyword_score",
    "content_affinity",
    "priority_match",
)

DEFAULT_MODEL_WEIGHTS = {
    "retrieval_score": 1.0,
    "vector_score": 0.0,
    "keyword_score": 0.0,
    "content_affinity": 0.3,
    "priority_match": 0.2,
}


@dataclass(frozen=True)
class RankingModelState:
    """
    One published version of the ranking model.

    Exactly one version is active at a time; a new version is built off the
    query path and published as a whole.
    """

    weights: Mapping[str, float]
    version: int = 1
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        object.__setattr__(
            self, "weights", _frozen_mapping({k: float(v) for k, v in self.weights.items()})
        )

    @classmethod
    def initial(cls) -> "RankingModelState":
        return cls(weights=DEFAULT_MODEL_WEIGHTS, version=1)

    def to_dict(self) -> dict:
        return {
            "weights": dict(self.weights),
            "version": self.version,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RankingModelState":
        updated_at = data.get("updated_at")
        return cls(
            weights=data["weights"],
            version=int(data["version"]),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else _utcnow(),
        )


def _plain(value: Any) -> Any:
    """Turn read-only mappings and tuples back into JSON-friendly types."""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, frozenset, set)):
        items = sorted(value) if isinstance(value, (frozenset, set)) else value
        return [_plain(v) for v in items]
    return value
