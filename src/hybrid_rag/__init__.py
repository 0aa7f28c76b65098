"""
hybrid_rag: agent-aware hybrid retrieval core.

Classifies a query to an agent profile, runs vector and keyword search
concurrently over a versioned chunk store, re-ranks with an adaptive model
and learns from feedback in the background.
"""

from .classifier import AgentClassifier, ClassificationResult
from .config import Config
from .errors import (
    HybridRAGError,
    InvalidProfileError,
    InvalidQueryError,
    RetrievalUnavailable,
)
from .models import (
    CandidateResult,
    Chunk,
    ChunkingStrategy,
    ContentType,
    FeedbackEvent,
    Query,
    RankingModelState,
)
from .profiles import AgentProfile, ContextWindow, ProfileRegistry, RetrievalWeights
from .service import RetrievalResponse, RetrievalService

__version__ = "0.1.0"

__all__ = [
    "AgentClassifier",
    "AgentProfile",
    "CandidateResult",
    "Chunk",
    "ChunkingStrategy",
    "ClassificationResult",
    "Config",
    "ContentType",
    "ContextWindow",
    "FeedbackEvent",
    "HybridRAGError",
    "InvalidProfileError",
    "InvalidQueryError",
    "ProfileRegistry",
    "Query",
    "RankingModelState",
    "RetrievalResponse",
    "RetrievalService",
    "RetrievalUnavailable",
    "RetrievalWeights",
]
