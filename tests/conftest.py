"""Pytest fixtures and test utilities for the hybrid retrieval test suite."""

import asyncio
from typing import Any, Optional

import pytest

from hybrid_rag.embedding.embedder import HashingEmbedder
from hybrid_rag.ingestion.pipeline import ChunkIngestor
from hybrid_rag.ingestion.router import ContentTypeRouter
from hybrid_rag.metrics import InMemoryMetrics
from hybrid_rag.models import Chunk, ContentType
from hybrid_rag.profiles.models import AgentProfile, ContextWindow, RetrievalWeights
from hybrid_rag.profiles.registry import ProfileRegistry
from hybrid_rag.store.chunk_store import ChunkStore


# ============================================================================
# TOKENIZATION / EMBEDDING FIXTURES
# ============================================================================


class WhitespaceEncoding:
    """Whitespace tokenizer so chunker tests need no tiktoken download."""

    def encode(self, text: str) -> list[str]:
        return text.split()

    def decode(self, tokens) -> str:
        return " ".join(tokens)


@pytest.fixture
def encoding():
    return WhitespaceEncoding()


@pytest.fixture
def router(encoding):
    """Router with small token budgets and the whitespace encoding."""
    return ContentTypeRouter(
        encoding=encoding,
        target_tokens=64,
        overlap_tokens=8,
        min_tokens=4,
        max_tokens=128,
    )


@pytest.fixture
def embedder():
    return HashingEmbedder(dimension=64)


@pytest.fixture
def ingestor(router, embedder):
    return ChunkIngestor(router=router, embedder=embedder)


@pytest.fixture
def metrics():
    return InMemoryMetrics()


# ============================================================================
# CHUNK / STORE FIXTURES
# ============================================================================


@pytest.fixture
def make_chunk(embedder):
    """
    Factory for chunks with real embeddings.

    Usage:
        chunk = make_chunk("c1", "def parse(): ...", content_type="code")
    """

    def _make(
        chunk_id: str,
        text: str,
        content_type: str = "code",
        features: tuple = (),
        token_count: Optional[int] = None,
        source: Optional[str] = None,
    ) -> Chunk:
        return Chunk(
            chunk_id=chunk_id,
            source=source or f"{chunk_id}.src",
            content_type=ContentType.parse(content_type),
            text=text,
            embedding=tuple(float(x) for x in embedder.embed_query(text)),
            metadata={"features": list(features)},
            token_count=len(text.split()) if token_count is None else token_count,
        )

    return _make


@pytest.fixture
def sample_chunks(make_chunk):
    """Small mixed corpus covering every content type."""
    return [
        make_chunk(
            "code-parse",
            "def parse_config(path):\n    try:\n        return load_yaml(path)\n"
            "    except KeyError as e:\n        raise ConfigError(e)",
            features=("function_signatures", "error_handling"),
        ),
        make_chunk(
            "code-auth",
            "def verify_token(token):\n    if not validate_signature(token):\n"
            "        raise AuthError('invalid token')",
            features=("function_signatures", "security_functions", "input_validation"),
        ),
        make_chunk(
            "code-test",
            "def test_parse_config_missing_key():\n    assert parse_config('x.yaml') is None",
            features=("function_signatures", "test_coverage"),
        ),
        make_chunk(
            "doc-install",
            "# Installation\nRun pip install to set up the project. See the guide.",
            content_type="documentation",
            features=("section_structure", "tutorials"),
        ),
        make_chunk(
            "doc-config",
            "## Configuration\nThe parse_config function reads YAML configuration files.",
            content_type="documentation",
            features=("section_structure", "api_references"),
        ),
        make_chunk(
            "conv-bug",
            "alice: parse_config raises KeyError on startup\nbob: stack trace please",
            content_type="conversation",
            features=("discussion_thread", "error_messages"),
        ),
        make_chunk(
            "cfg-db",
            "database:\n  host: localhost\n  password: secret",
            content_type="config",
            features=("configuration_entries", "security_config"),
        ),
    ]


@pytest.fixture
def store(sample_chunks, embedder):
    return ChunkStore(sample_chunks, embedder=embedder)


# ============================================================================
# PROFILE FIXTURES
# ============================================================================


@pytest.fixture
def registry():
    return ProfileRegistry()


@pytest.fixture
def make_profile():
    """Factory for ad-hoc profiles."""

    def _make(
        profile_id: str = "test",
        max_chunks: int = 5,
        max_tokens: int = 0,
        vector: float = 0.6,
        keyword: float = 0.4,
        **kwargs: Any,
    ) -> AgentProfile:
        return AgentProfile(
            profile_id=profile_id,
            name=profile_id.title(),
            context_window=ContextWindow(max_chunks=max_chunks, max_tokens=max_tokens),
            weights=RetrievalWeights(vector=vector, keyword=keyword),
            **kwargs,
        )

    return _make


# ============================================================================
# FAKE SEARCH BACKEND
# ============================================================================


class FakeSearchBackend:
    """
    Scripted search backend for engine tests.

    Each modality returns fixed (chunk, score) hits after an optional delay,
    or raises the configured exception.
    """

    snapshot = None

    def __init__(
        self,
        vector_hits=(),
        keyword_hits=(),
        vector_delay: float = 0.0,
        keyword_delay: float = 0.0,
        vector_error: Optional[Exception] = None,
        keyword_error: Optional[Exception] = None,
    ):
        self.vector_hits = list(vector_hits)
        self.keyword_hits = list(keyword_hits)
        self.vector_delay = vector_delay
        self.keyword_delay = keyword_delay
        self.vector_error = vector_error
        self.keyword_error = keyword_error
        self.calls: list[tuple[str, int]] = []

    async def _respond(self, modality, hits, delay, error, top_k):
        self.calls.append((modality, top_k))
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return hits[:top_k]

    async def vector_search(self, query, top_k, content_types=None, snapshot=None):
        return await self._respond(
            "vector", self.vector_hits, self.vector_delay, self.vector_error, top_k
        )

    async def keyword_search(self, query, top_k, content_types=None, snapshot=None):
        return await self._respond(
            "keyword", self.keyword_hits, self.keyword_delay, self.keyword_error, top_k
        )


@pytest.fixture
def fake_backend_cls():
    return FakeSearchBackend
