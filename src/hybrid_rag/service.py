"""
Retrieval service: classify -> resolve profile -> retrieve -> rank.

Wires the components together and owns the request-scoped flow. Policy
lives in the components; this module only sequences them.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from loguru import logger

from .classifier import AgentClassifier, ClassificationResult
from .config import Config
from .errors import RetrievalUnavailable, SubsearchTimeout
from .feedback.loop import FeedbackLoop, ModelStateStore
from .feedback.model_state import ModelStateHolder
from .feedback.sampler import FeedbackSampler
from .metrics import MetricsSink, NullMetrics
from .models import CandidateResult, Chunk, FeedbackEvent, Query
from .profiles.registry import ProfileRegistry
from .ranking.ranker import ContextualRanker
from .retrieval.engine import HybridRetrievalEngine
from .storage.redis_store import RedisModelStateStore
from .store.chunk_store import ChunkStore


@dataclass(frozen=True)
class RetrievalResponse:
    """Ranked context for one query."""

    query_id: str
    profile_id: str
    classification: ClassificationResult
    model_version: int
    results: tuple[CandidateResult, ...]
    degraded_modalities: tuple[str, ...] = ()
    latency_ms: float = 0.0

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_modalities)

    def to_dict(self, include_text: bool = True) -> dict:
        return {
            "query_id": self.query_id,
            "profile_id": self.profile_id,
            "classification": {
                "outcome": self.classification.outcome,
                "confidence": self.classification.confidence,
                "reasoning": self.classification.reasoning,
                "alternatives": [
                    {"profile_id": a.profile_id, "score": a.score}
                    for a in self.classification.alternatives
                ],
            },
            "model_version": self.model_version,
            "degraded_modalities": list(self.degraded_modalities),
            "latency_ms": self.latency_ms,
            "results": [r.to_dict(include_text=include_text) for r in self.results],
        }


class RetrievalService:
    """
    Agent-aware hybrid retrieval entry point.

    Example:
        service = RetrievalService(ChunkStore(chunks))
        await service.start()
        response = await service.query("why does parse_config raise KeyError?")
        service.record_feedback(
            FeedbackEvent(query_id=response.query_id, selected=(response.results[0].chunk_id,))
        )
        await service.stop()
    """

    def __init__(
        self,
        store: ChunkStore,
        registry: ProfileRegistry | None = None,
        classifier: AgentClassifier | None = None,
        engine: HybridRetrievalEngine | None = None,
        ranker: ContextualRanker | None = None,
        holder: ModelStateHolder | None = None,
        sampler: FeedbackSampler | None = None,
        feedback_loop: FeedbackLoop | None = None,
        state_store: ModelStateStore | None = None,
        metrics: MetricsSink | None = None,
        query_timeout_ms: float | None = None,
    ):
        self.metrics = metrics or NullMetrics()
        self.store = store
        self.registry = registry or ProfileRegistry()
        self.classifier = classifier or AgentClassifier(self.registry, metrics=self.metrics)
        self.engine = engine or HybridRetrievalEngine(store, metrics=self.metrics)
        self.ranker = ranker or ContextualRanker()
        self.holder = holder or ModelStateHolder()
        self.sampler = sampler or FeedbackSampler()
        self.feedback_loop = feedback_loop or FeedbackLoop(
            self.holder, self.sampler, state_store=state_store, metrics=self.metrics
        )
        self.state_store = self.feedback_loop.state_store
        self.query_timeout_ms = (
            Config.QUERY_TIMEOUT_MS if query_timeout_ms is None else query_timeout_ms
        )
        if self.query_timeout_ms <= 0:
            raise ValueError(f"query_timeout_ms must be > 0, got {self.query_timeout_ms}")

    @classmethod
    def from_config(
        cls,
        chunks: Iterable[Chunk] = (),
        state_store: ModelStateStore | None = None,
        metrics: MetricsSink | None = None,
    ) -> "RetrievalService":
        """
        Build a service from Config.

        Loads profiles from PROFILES_YAML when set. With
        MODEL_PERSISTENCE_ENABLED and no explicit state_store, the ranking
        model is restored from and saved to Redis (REDIS_URL, REDIS_MODEL_KEY).

        Raises:
            ValueError: If the configuration is invalid
        """
        Config.validate()
        registry = (
            ProfileRegistry.from_yaml(Config.PROFILES_YAML)
            if Config.PROFILES_YAML
            else ProfileRegistry()
        )
        if state_store is None and Config.MODEL_PERSISTENCE_ENABLED:
            state_store = RedisModelStateStore()
        return cls(
            ChunkStore(chunks),
            registry=registry,
            state_store=state_store,
            metrics=metrics,
        )

    async def start(self) -> None:
        await self.feedback_loop.start()

    async def stop(self) -> None:
        await self.feedback_loop.stop()
        if self.state_store is not None:
            await self.state_store.close()

    async def query(
        self,
        query: Query | str,
        agent_hint: str | None = None,
        work_context: Mapping[str, Any] | None = None,
    ) -> RetrievalResponse:
        """
        Answer a query with ranked, context-sized chunks.

        Args:
            query: Query, or raw text combined with agent_hint/work_context
            agent_hint: Caller-supplied profile id
            work_context: Caller metadata for classification

        Returns:
            RetrievalResponse (results may be empty)

        Raises:
            InvalidQueryError: If the query text is blank
            RetrievalUnavailable: If no sub-search produced results in time
        """
        if not isinstance(query, Query):
            query = Query(text=query, agent_hint=agent_hint, work_context=work_context or {})

        start_time = time.perf_counter()
        classification = self.classifier.classify_query(query)
        profile = self.registry.get(classification.profile_id)

        try:
            retrieval = await asyncio.wait_for(
                self.engine.retrieve(query, profile),
                timeout=self.query_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            self.metrics.increment("retrieval.unavailable")
            logger.error(f"Query {query.query_id} exceeded {self.query_timeout_ms}ms")
            raise RetrievalUnavailable([SubsearchTimeout("hybrid", self.query_timeout_ms)]) from None

        model_state = self.holder.current
        ranked = self.ranker.rank(retrieval.candidates, profile, model_state)
        self.sampler.sample(query.query_id, ranked)

        latency_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.observe("query.latency_ms", latency_ms)
        logger.info(
            f"Query {query.query_id}: profile={profile.profile_id} "
            f"({classification.outcome}), results={len(ranked)}, "
            f"model=v{model_state.version}, latency={latency_ms:.1f}ms"
        )

        return RetrievalResponse(
            query_id=query.query_id,
            profile_id=profile.profile_id,
            classification=classification,
            model_version=model_state.version,
            results=tuple(ranked),
            degraded_modalities=retrieval.degraded_modalities,
            latency_ms=latency_ms,
        )

    def record_feedback(self, event: FeedbackEvent) -> bool:
        """Non-blocking; returns False if the event was dropped."""
        return self.feedback_loop.record(event)

    def get_stats(self) -> dict:
        return {
            "store": self.store.get_stats(),
            "profiles": self.registry.get_stats(),
            "feedback": self.feedback_loop.get_stats(),
            "model_version": self.holder.version,
        }
