"""End-to-end tests: classify -> resolve profile -> retrieve -> rank -> feedback."""

from unittest.mock import AsyncMock

import pytest

from hybrid_rag.config import Config
from hybrid_rag.errors import InvalidQueryError, RetrievalUnavailable
from hybrid_rag.models import DEFAULT_MODEL_WEIGHTS, FeedbackEvent, Query, RankingModelState
from hybrid_rag.retrieval.engine import HybridRetrievalEngine
from hybrid_rag.service import RetrievalService
from hybrid_rag.storage.redis_store import RedisModelStateStore


@pytest.fixture
def service(store, registry, metrics):
    return RetrievalService(
        store,
        registry=registry,
        engine=HybridRetrievalEngine(store, subsearch_timeout_ms=5000, metrics=metrics),
        metrics=metrics,
        query_timeout_ms=10_000,
    )


async def test_query_with_agent_hint(service, metrics):
    response = await service.query("parse_config KeyError", agent_hint="debugging")

    assert response.profile_id == "debugging"
    assert response.classification.explicit
    assert 0 < len(response.results) <= 6
    assert [r.rank for r in response.results] == list(range(1, len(response.results) + 1))
    assert {r.model_version for r in response.results} == {1}
    assert response.model_version == 1
    assert not response.degraded
    assert response.query_id in service.sampler
    assert len(metrics.samples("query.latency_ms")) == 1


async def test_query_infers_profile(service):
    response = await service.query("why does parse_config raise KeyError with a stack trace?")

    assert response.profile_id == "debugging"
    assert response.classification.outcome == "inferred"
    assert "code-parse" in [r.chunk_id for r in response.results]


async def test_unclassified_query_uses_default_profile(service):
    response = await service.query("configuration")
    assert response.profile_id == "general"
    assert response.classification.outcome == "default"


async def test_query_object(service):
    query = Query(text="verify_token", agent_hint="security", query_id="fixed-id")
    response = await service.query(query)
    assert response.query_id == "fixed-id"
    assert response.results[0].chunk_id == "code-auth"


async def test_blank_query_rejected(service):
    with pytest.raises(InvalidQueryError):
        await service.query("   ")


async def test_end_to_end_query_timeout(store, fake_backend_cls, metrics):
    """The end-to-end budget applies even when sub-search budgets are generous."""
    slow = fake_backend_cls(vector_delay=1.0, keyword_delay=1.0)
    service = RetrievalService(
        store,
        engine=HybridRetrievalEngine(slow, subsearch_timeout_ms=5000),
        metrics=metrics,
        query_timeout_ms=50,
    )

    with pytest.raises(RetrievalUnavailable):
        await service.query("anything", agent_hint="general")
    assert metrics.counter("retrieval.unavailable") == 1


async def test_degraded_response(store, fake_backend_cls, sample_chunks):
    backend = fake_backend_cls(
        vector_error=RuntimeError("vector index offline"),
        keyword_hits=[(sample_chunks[0], 1.0), (sample_chunks[1], 0.5)],
    )
    service = RetrievalService(store, engine=HybridRetrievalEngine(backend))

    response = await service.query("parse config", agent_hint="code_analysis")

    assert response.degraded
    assert response.degraded_modalities == ("vector",)
    assert [r.chunk_id for r in response.results] == ["code-parse", "code-auth"]


async def test_feedback_publishes_new_model(service):
    await service.start()
    try:
        response = await service.query("parse_config KeyError", agent_hint="debugging")
        assert service.record_feedback(
            FeedbackEvent(query_id=response.query_id, selected=(response.results[-1].chunk_id,))
        )
    finally:
        await service.stop()

    assert service.holder.version == 2
    follow_up = await service.query("parse_config KeyError", agent_hint="debugging")
    assert follow_up.model_version == 2
    assert {r.model_version for r in follow_up.results} == {2}


async def test_response_to_dict(service):
    response = await service.query("password", agent_hint="security")

    data = response.to_dict(include_text=False)
    assert data["profile_id"] == "security"
    assert data["classification"]["outcome"] == "explicit"
    assert data["results"][0]["chunk_id"] == "cfg-db"
    assert "text" not in data["results"][0]
    assert "text" in response.to_dict()["results"][0]


def test_from_config(sample_chunks):
    service = RetrievalService.from_config(sample_chunks)
    assert len(service.store) == len(sample_chunks)
    assert service.registry.contains("general")


def test_stats(service):
    stats = service.get_stats()
    assert stats["store"]["total_chunks"] == 7
    assert stats["profiles"]["total_profiles"] == 6
    assert stats["model_version"] == 1
    assert stats["feedback"]["running"] is False


def test_from_config_without_persistence(sample_chunks, monkeypatch):
    monkeypatch.setattr(Config, "MODEL_PERSISTENCE_ENABLED", False)
    service = RetrievalService.from_config(sample_chunks)
    assert service.state_store is None


def test_from_config_builds_redis_store(sample_chunks, monkeypatch):
    monkeypatch.setattr(Config, "MODEL_PERSISTENCE_ENABLED", True)
    monkeypatch.setattr(Config, "REDIS_URL", "redis://cache:6380")
    monkeypatch.setattr(Config, "REDIS_MODEL_KEY", "test:model")

    service = RetrievalService.from_config(sample_chunks)

    assert isinstance(service.state_store, RedisModelStateStore)
    assert service.feedback_loop.state_store is service.state_store
    assert service.state_store.redis_url == "redis://cache:6380"
    assert service.state_store.key == "test:model"


async def test_persisted_model_restored_and_store_closed(sample_chunks):
    state_store = AsyncMock()
    state_store.load.return_value = RankingModelState(weights=DEFAULT_MODEL_WEIGHTS, version=7)
    service = RetrievalService.from_config(sample_chunks, state_store=state_store)

    await service.start()
    assert service.holder.version == 7
    await service.stop()

    state_store.close.assert_awaited_once()


@pytest.mark.parametrize("timeout", [0, -1])
def test_explicit_zero_query_timeout_rejected(store, timeout):
    with pytest.raises(ValueError):
        RetrievalService(store, query_timeout_ms=timeout)
