"""
Agent profile data models.

An AgentProfile is a named configuration bundle controlling context sizing,
chunking and ranking weights for a class of caller. Profiles are created at
configuration time, read-only while serving, and replaced wholesale on update.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from ..errors import InvalidProfileError
from ..models import ChunkingStrategy, ContentType


@dataclass(frozen=True)
class ContextWindow:
    """Budget of chunks returned to a caller."""

    max_chunks: int  # Ceiling on candidate count
    max_tokens: int  # Ceiling on summed chunk token counts (0 = unlimited)


@dataclass(frozen=True)
class RetrievalWeights:
    """Weights for the hybrid merge of vector and keyword scores."""

    vector: float = 0.6
    keyword: float = 0.4


@dataclass(frozen=True)
class AgentProfile:
    """
    Context optimization profile for one agent type.

    Invariants:
    - profile_id must not be empty
    - context_window.max_chunks must be > 0, max_tokens >= 0
    - retrieval weights must be finite, >= 0 and not both zero
    - content weights must be finite and >= 0
    """

    profile_id: str
    name: str
    context_window: ContextWindow
    chunking_strategy: ChunkingStrategy = ChunkingStrategy.SEMANTIC_SIMILARITY
    priority_features: tuple[str, ...] = ()  # Ordered, most important first
    weights: RetrievalWeights = field(default_factory=RetrievalWeights)
    content_weights: Mapping[ContentType, float] = field(default_factory=dict)
    content_types: frozenset[ContentType] = frozenset()  # Empty = all types
    description: str = ""
    capabilities: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "priority_features", tuple(self.priority_features))
        object.__setattr__(self, "capabilities", tuple(self.capabilities))
        object.__setattr__(
            self,
            "content_types",
            frozenset(ContentType.parse(t) for t in self.content_types),
        )
        object.__setattr__(
            self,
            "content_weights",
            MappingProxyType(
                {ContentType.parse(k): float(v) for k, v in self.content_weights.items()}
            ),
        )

    def content_weight(self, content_type: ContentType) -> float:
        """Affinity of this profile for a content type (1.0 when unspecified)."""
        return self.content_weights.get(content_type, 1.0)

    def allows(self, content_type: ContentType) -> bool:
        return not self.content_types or content_type in self.content_types

    def validate(self) -> "AgentProfile":
        """
        Validate profile invariants.

        Returns:
            The profile itself, for chaining

        Raises:
            InvalidProfileError: If any invariant is violated
        """
        errors = []
        if not self.profile_id or not self.profile_id.strip():
            errors.append("profile_id must not be empty")
        if self.context_window.max_chunks <= 0:
            errors.append(
                f"context_window.max_chunks must be > 0, got {self.context_window.max_chunks}"
            )
        if self.context_window.max_tokens < 0:
            errors.append(
                f"context_window.max_tokens must be >= 0, got {self.context_window.max_tokens}"
            )

        vector, keyword = self.weights.vector, self.weights.keyword
        if not all(math.isfinite(w) and w >= 0 for w in (vector, keyword)):
            errors.append(f"retrieval weights must be finite and >= 0, got {self.weights}")
        elif vector == 0 and keyword == 0:
            errors.append("retrieval weights must not both be zero")

        for content_type, weight in self.content_weights.items():
            if not math.isfinite(weight) or weight < 0:
                errors.append(f"content weight for {content_type.value} must be >= 0, got {weight}")

        if errors:
            raise InvalidProfileError(
                f"Invalid profile '{self.profile_id}': {'; '.join(errors)}"
            )
        return self

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AgentProfile":
        """
        Build a profile from its YAML/JSON form.

        Example:
            AgentProfile.from_dict({
                "profile_id": "reviewer",
                "name": "Code Review Agent",
                "context_window": {"max_chunks": 8, "max_tokens": 6000},
                "weights": {"vector": 0.5, "keyword": 0.5},
                "content_weights": {"code": 1.0, "documentation": 0.4},
            })
        """
        if not isinstance(data, Mapping):
            raise InvalidProfileError(
                f"Invalid profile entry: expected mapping, got {type(data).__name__}"
            )
        try:
            window = data.get("context_window") or {}
            weights = data.get("weights") or {}
            return cls(
                profile_id=str(data["profile_id"]),
                name=str(data.get("name") or data["profile_id"]),
                description=str(data.get("description", "")),
                context_window=ContextWindow(
                    max_chunks=int(window.get("max_chunks", 10)),
                    max_tokens=int(window.get("max_tokens", 0)),
                ),
                chunking_strategy=ChunkingStrategy(
                    data.get("chunking_strategy", ChunkingStrategy.SEMANTIC_SIMILARITY.value)
                ),
                priority_features=tuple(data.get("priority_features", ())),
                weights=RetrievalWeights(
                    vector=float(weights.get("vector", 0.6)),
                    keyword=float(weights.get("keyword", 0.4)),
                ),
                content_weights=dict(data.get("content_weights") or {}),
                content_types=frozenset(data.get("content_types") or ()),
                capabilities=tuple(data.get("capabilities", ())),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidProfileError(f"Invalid profile entry {dict(data)!r}: {e}") from e

    def to_dict(self) -> dict:
        return {
            "profile_id": self.profile_id,
            "name": self.name,
            "description": self.description,
            "context_window": {
                "max_chunks": self.context_window.max_chunks,
                "max_tokens": self.context_window.max_tokens,
            },
            "chunking_strategy": self.chunking_strategy.value,
            "priority_features": list(self.priority_features),
            "weights": {"vector": self.weights.vector, "keyword": self.weights.keyword},
            "content_weights": {k.value: v for k, v in self.content_weights.items()},
            "content_types": sorted(t.value for t in self.content_types),
            "capabilities": list(self.capabilities),
        }
