"""Bounded memory of ranked responses awaiting feedback."""

from collections import OrderedDict
from threading import Lock
from typing import Iterable, Mapping

from ..config import Config
from ..models import CandidateResult


class FeedbackSampler:
    """
    LRU map of query_id -> {chunk_id: ranker feature values}.

    Feedback events only carry chunk ids; the update policy needs the feature
    values each chunk was ranked with, so the service samples them here when
    it answers a query. The oldest queries are evicted first.
    """

    def __init__(self, max_queries: int | None = None):
        self.max_queries = Config.FEEDBACK_SAMPLE_SIZE if max_queries is None else max_queries
        if self.max_queries <= 0:
            raise ValueError(f"max_queries must be > 0, got {self.max_queries}")
        self._samples: "OrderedDict[str, dict[str, Mapping[str, float]]]" = OrderedDict()
        self._lock = Lock()
        self.evicted_count = 0

    def __len__(self) -> int:
        return len(self._samples)

    def __contains__(self, query_id: str) -> bool:
        return query_id in self._samples

    def sample(self, query_id: str, results: Iterable[CandidateResult]) -> None:
        features = {r.chunk_id: dict(r.features) for r in results}
        with self._lock:
            self._samples[query_id] = features
            self._samples.move_to_end(query_id)
            while len(self._samples) > self.max_queries:
                self._samples.popitem(last=False)
                self.evicted_count += 1

    def get(self, query_id: str) -> dict[str, Mapping[str, float]] | None:
        with self._lock:
            return self._samples.get(query_id)

    def pop(self, query_id: str) -> dict[str, Mapping[str, float]] | None:
        with self._lock:
            return self._samples.pop(query_id, None)
