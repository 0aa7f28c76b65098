"""
Okapi BM25 keyword index over chunk text.

The keyword half of hybrid retrieval: scores chunks by query-term overlap,
weighted by term rarity and normalized for chunk length.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Collection, Iterable

from loguru import logger

from ..embedding.embedder import tokenize


@dataclass
class BM25Index:
    """
    Inverted-index BM25 scorer keyed by chunk id.

    Only chunks sharing at least one query term are scored.

    Tuning:
    - k1: how quickly repeated terms stop adding score (default 1.5)
    - b: strength of the chunk-length penalty (default 0.75)

    Instances are mutated only while a new chunk-set snapshot is being built
    (see copy()); a published index is treated as read-only.

    Example:
        index = BM25Index()
        index.build_index([
            ("auth", "verify_token checks the JWT signature"),
            ("db", "database password and host settings"),
        ])
        results = index.search("token signature", top_k=10)
        # [("auth", 1.62)]
    """

    # BM25 parameters
    k1: float = 1.5
    b: float = 0.75

    # Index storage
    _term_freqs: dict[str, Counter] = field(default_factory=dict)  # chunk_id -> term counts
    _doc_lengths: dict[str, int] = field(default_factory=dict)  # chunk_id -> token count
    _postings: dict[str, set[str]] = field(default_factory=dict)  # term -> chunk_ids
    _idf_cache: dict[str, float] = field(default_factory=dict)  # term -> IDF score
    _total_length: int = 0

    @staticmethod
    def _tokenize(text: str) -> list[str]:
        """
        Index tokens for text.

        Drops single-character tokens other than "a" and "i".
        """
        if not text:
            return []
        return [t for t in tokenize(text) if len(t) > 1 or t in {"a", "i"}]

    @property
    def total_docs(self) -> int:
        return len(self._doc_lengths)

    @property
    def avg_doc_length(self) -> float:
        return self._total_length / self.total_docs if self.total_docs else 0.0

    def _idf(self, df: int) -> float:
        # IDF with smoothing to avoid division by zero
        return math.log((self.total_docs - df + 0.5) / (df + 0.5) + 1)

    def build_index(self, documents: Iterable[tuple[str, str]]) -> None:
        """
        Build BM25 index from (chunk_id, text) pairs, replacing any prior state.
        """
        self.clear()
        for chunk_id, text in documents:
            if not chunk_id:
                logger.warning("Skipping chunk without chunk_id")
                continue
            self._add(chunk_id, text)
        self._refresh_idf(self._postings.keys())
        logger.debug(
            f"BM25 index built: {self.total_docs} documents, "
            f"{len(self._postings)} unique terms, "
            f"avg length {self.avg_doc_length:.1f}"
        )

    def copy(self) -> "BM25Index":
        """Structural copy for building the next snapshot."""
        clone = BM25Index(k1=self.k1, b=self.b)
        clone._term_freqs = dict(self._term_freqs)
        clone._doc_lengths = dict(self._doc_lengths)
        clone._postings = {term: set(ids) for term, ids in self._postings.items()}
        clone._idf_cache = dict(self._idf_cache)
        clone._total_length = self._total_length
        return clone

    def _add(self, chunk_id: str, text: str) -> set[str]:
        counts = Counter(self._tokenize(text))
        self._term_freqs[chunk_id] = counts
        length = sum(counts.values())
        self._doc_lengths[chunk_id] = length
        self._total_length += length
        for term in counts:
            self._postings.setdefault(term, set()).add(chunk_id)
        return set(counts)

    def _refresh_idf(self, terms: Iterable[str]) -> None:
        for term in terms:
            ids = self._postings.get(term)
            if ids:
                self._idf_cache[term] = self._idf(len(ids))
            else:
                self._postings.pop(term, None)
                self._idf_cache.pop(term, None)

    def update_index(self, chunk_id: str, text: str) -> None:
        """
        Add or update a single chunk in the index.

        Changing N shifts every IDF value, so all cached IDFs are refreshed.
        For bulk updates use apply().
        """
        self.apply(added=[(chunk_id, text)], removed=())

    def remove_from_index(self, chunk_id: str) -> bool:
        """
        Remove a chunk from the index.

        Returns:
            True if chunk was removed, False if not found
        """
        if chunk_id not in self._doc_lengths:
            return False
        self.apply(added=(), removed=[chunk_id])
        return True

    def apply(self, added: Iterable[tuple[str, str]], removed: Iterable[str]) -> None:
        """Apply a batch of removals then additions and refresh IDF once."""
        for chunk_id in removed:
            self._remove(chunk_id)
        for chunk_id, text in added:
            self._remove(chunk_id)
            self._add(chunk_id, text)
        self._refresh_idf(list(self._postings.keys()))

    def _remove(self, chunk_id: str) -> None:
        counts = self._term_freqs.pop(chunk_id, None)
        if counts is None:
            return
        self._total_length -= self._doc_lengths.pop(chunk_id, 0)
        for term in counts:
            ids = self._postings.get(term)
            if ids is not None:
                ids.discard(chunk_id)
                if not ids:
                    del self._postings[term]
                    self._idf_cache.pop(term, None)

    def search(
        self,
        query: str,
        top_k: int = 30,
        allowed_ids: Collection[str] | None = None,
    ) -> list[tuple[str, float]]:
        """
        Score chunks against a query.

        Args:
            query: Search query
            top_k: Maximum number of results to return
            allowed_ids: Restrict scoring to these chunk ids (None = all)

        Returns:
            List of (chunk_id, score) tuples, score descending then chunk_id
        """
        if not query or top_k <= 0 or not self._doc_lengths:
            return []

        query_tokens = self._tokenize(query)
        if not query_tokens:
            return []

        candidates: set[str] = set()
        for term in set(query_tokens):
            candidates |= self._postings.get(term, set())
        if allowed_ids is not None:
            candidates &= set(allowed_ids)

        scores = []
        for chunk_id in candidates:
            score = self._score_document(query_tokens, chunk_id)
            if score > 0:
                scores.append((chunk_id, score))

        scores.sort(key=lambda x: (-x[1], x[0]))
        return scores[:top_k]

    def _score_document(self, query_tokens: list[str], chunk_id: str) -> float:
        """
        BM25 score of one chunk for the query tokens.

        Uses the Okapi BM25 formula:
        score(D, Q) = sum(IDF(qi) * (tf(qi, D) * (k1 + 1)) /
                         (tf(qi, D) + k1 * (1 - b + b * |D|/avgdl)))
        """
        doc_length = self._doc_lengths.get(chunk_id, 0)
        if doc_length == 0:
            return 0.0

        term_freqs = self._term_freqs[chunk_id]
        avg_length = self.avg_doc_length

        score = 0.0
        for term in query_tokens:
            tf = term_freqs.get(term, 0)
            if tf == 0:
                continue

            idf = self._idf_cache.get(term, 0)
            if idf <= 0:
                continue

            numerator = tf * (self.k1 + 1)
            denominator = tf + self.k1 * (1 - self.b + self.b * (doc_length / avg_length))
            score += idf * (numerator / denominator)

        return score

    def get_index_stats(self) -> dict:
        return {
            "total_documents": self.total_docs,
            "unique_terms": len(self._postings),
            "avg_doc_length": self.avg_doc_length,
            "k1": self.k1,
            "b": self.b,
        }

    def clear(self) -> None:
        """Clear the entire index."""
        self._term_freqs = {}
        self._doc_lengths = {}
        self._postings = {}
        self._idf_cache = {}
        self._total_length = 0
