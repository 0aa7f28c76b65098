"""
Hybrid vector + keyword retrieval engine.

Runs both sub-searches concurrently, each under its own timeout, and merges
their scores with the profile's retrieval weights. One failed modality
degrades the result; two failed modalities make retrieval unavailable.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Collection, Protocol

from loguru import logger

from ..config import Config
from ..errors import InvalidQueryError, RetrievalUnavailable, SubsearchFailed, SubsearchTimeout
from ..metrics import MetricsSink, NullMetrics
from ..models import CandidateResult, Chunk, ContentType, Query
from ..profiles.models import AgentProfile, RetrievalWeights

VECTOR = "vector"
KEYWORD = "keyword"
MODALITIES = (VECTOR, KEYWORD)

ScoredChunk = tuple[Chunk, float]


class SearchBackend(Protocol):
    """Read side of a chunk store (see ChunkStore)."""

    @property
    def snapshot(self) -> Any: ...

    async def vector_search(
        self,
        query: str,
        top_k: int,
        content_types: Collection[ContentType] | None = None,
        snapshot: Any = None,
    ) -> list[ScoredChunk]: ...

    async def keyword_search(
        self,
        query: str,
        top_k: int,
        content_types: Collection[ContentType] | None = None,
        snapshot: Any = None,
    ) -> list[ScoredChunk]: ...


@dataclass(frozen=True)
class RetrievalResult:
    """Merged candidates for one query."""

    candidates: tuple[CandidateResult, ...]
    degraded_modalities: tuple[str, ...] = ()  # Modalities that failed or timed out
    latency_ms: float = 0.0

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_modalities)

    def __len__(self) -> int:
        return len(self.candidates)


class HybridRetrievalEngine:
    """
    Concurrent hybrid retriever.

    Merge rules (w = profile retrieval weights):
    - chunk found by both modalities: w_vector * vector + w_keyword * keyword
    - chunk found by one modality:    w * score * (1 - single_source_penalty)
    - one modality failed (degraded): the surviving score, unpenalized

    Candidates are ordered by merged score desc, vector score desc, chunk id.
    Each sub-search returns at most max_chunks * candidate_oversample hits
    (oversample defaults to 1, the context-window ceiling).

    Example:
        engine = HybridRetrievalEngine(store)
        result = await engine.retrieve(Query("parse config"), profile)
        for candidate in result.candidates:
            print(candidate.chunk_id, candidate.merged_score)
    """

    def __init__(
        self,
        store: SearchBackend,
        subsearch_timeout_ms: float | None = None,
        candidate_oversample: int | None = None,
        single_source_penalty: float | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.store = store
        self.subsearch_timeout_ms = (
            Config.SUBSEARCH_TIMEOUT_MS if subsearch_timeout_ms is None else subsearch_timeout_ms
        )
        self.candidate_oversample = (
            Config.CANDIDATE_OVERSAMPLE if candidate_oversample is None else candidate_oversample
        )
        if self.subsearch_timeout_ms <= 0:
            raise ValueError(f"subsearch_timeout_ms must be > 0, got {self.subsearch_timeout_ms}")
        if self.candidate_oversample < 1:
            raise ValueError(f"candidate_oversample must be >= 1, got {self.candidate_oversample}")
        self.single_source_penalty = (
            Config.SINGLE_SOURCE_PENALTY
            if single_source_penalty is None
            else single_source_penalty
        )
        if not 0.0 <= self.single_source_penalty <= 1.0:
            raise ValueError(
                f"single_source_penalty must be 0-1, got {self.single_source_penalty}"
            )
        self.metrics = metrics or NullMetrics()

    async def retrieve(self, query: Query | str, profile: AgentProfile) -> RetrievalResult:
        """
        Retrieve and merge candidates for a query.

        Args:
            query: Query (or raw query text)
            profile: Resolved agent profile (weights, budget, content types)

        Returns:
            RetrievalResult (possibly empty, possibly degraded)

        Raises:
            InvalidQueryError: If the query text is blank
            RetrievalUnavailable: If both sub-searches fail
        """
        text = query.text if isinstance(query, Query) else query
        if not text or not text.strip():
            raise InvalidQueryError("Query text must not be blank")
        text = text.strip()

        start_time = time.perf_counter()
        top_k = profile.context_window.max_chunks * self.candidate_oversample
        content_types = profile.content_types or None
        snapshot = self.store.snapshot

        outcomes = await asyncio.gather(
            *(
                self._run_subsearch(modality, text, top_k, content_types, snapshot)
                for modality in MODALITIES
            ),
            return_exceptions=True,
        )

        results: dict[str, list[ScoredChunk]] = {}
        failures: list[SubsearchFailed] = []
        for modality, outcome in zip(MODALITIES, outcomes):
            if isinstance(outcome, SubsearchFailed):
                failures.append(outcome)
                self.metrics.increment(f"retrieval.subsearch_failed.{modality}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[modality] = outcome

        if not results:
            self.metrics.increment("retrieval.unavailable")
            logger.error(f"Both sub-searches failed for query '{text[:50]}'")
            raise RetrievalUnavailable(failures)

        for failure in failures:
            logger.warning(f"{failure}; serving degraded results")

        degraded = tuple(f.modality for f in failures)
        candidates = self.merge(
            results.get(VECTOR, []),
            results.get(KEYWORD, []),
            profile.weights,
            degraded=bool(degraded),
        )

        latency_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.observe("retrieval.latency_ms", latency_ms)
        logger.debug(
            f"Retrieved {len(candidates)} candidates for profile '{profile.profile_id}' "
            f"in {latency_ms:.1f}ms" + (f" (degraded: {', '.join(degraded)})" if degraded else "")
        )

        return RetrievalResult(
            candidates=tuple(candidates),
            degraded_modalities=degraded,
            latency_ms=latency_ms,
        )

    async def _run_subsearch(
        self,
        modality: str,
        text: str,
        top_k: int,
        content_types: Collection[ContentType] | None,
        snapshot: Any,
    ) -> list[ScoredChunk]:
        search = self.store.vector_search if modality == VECTOR else self.store.keyword_search
        try:
            return await asyncio.wait_for(
                search(text, top_k, content_types=content_types, snapshot=snapshot),
                timeout=self.subsearch_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            raise SubsearchTimeout(modality, self.subsearch_timeout_ms) from None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise SubsearchFailed(modality, e) from e

    def merge(
        self,
        vector_hits: list[ScoredChunk],
        keyword_hits: list[ScoredChunk],
        weights: RetrievalWeights,
        degraded: bool = False,
    ) -> list[CandidateResult]:
        """
        Merge per-modality hits by chunk id.

        Args:
            vector_hits: (chunk, cosine score) pairs
            keyword_hits: (chunk, normalized BM25 score) pairs
            weights: Profile retrieval weights
            degraded: One modality failed; surviving scores pass through as-is

        Returns:
            Candidates in deterministic merged order
        """
        vector = {chunk.chunk_id: (chunk, score) for chunk, score in vector_hits}
        keyword = {chunk.chunk_id: (chunk, score) for chunk, score in keyword_hits}
        keep = 1.0 - self.single_source_penalty

        candidates = []
        for chunk_id in vector.keys() | keyword.keys():
            v = vector.get(chunk_id)
            k = keyword.get(chunk_id)
            if v and k:
                merged = weights.vector * v[1] + weights.keyword * k[1]
            elif degraded:
                merged = (v or k)[1]
            elif v:
                merged = weights.vector * v[1] * keep
            else:
                merged = weights.keyword * k[1] * keep

            candidates.append(
                CandidateResult(
                    chunk=(v or k)[0],
                    vector_score=v[1] if v else None,
                    keyword_score=k[1] if k else None,
                    merged_score=merged,
                )
            )

        if vector and keyword:
            overlap = len(vector.keys() & keyword.keys())
            self.metrics.observe(
                "retrieval.merge_hit_ratio", overlap / len(vector.keys() | keyword.keys())
            )

        candidates.sort(key=lambda c: c.sort_key(c.merged_score))
        return candidates
