"""Tests for the BM25 keyword index."""

import pytest

from hybrid_rag.store.bm25 import BM25Index


@pytest.fixture
def index():
    index = BM25Index()
    index.build_index(
        [
            ("c1", "Python programming language"),
            ("c2", "JavaScript for web development"),
            ("c3", "python python snake"),
            ("c4", "def parse_config(path): return load_yaml(path)"),
        ]
    )
    return index


def test_search_ranks_by_term_frequency(index):
    results = index.search("python", top_k=10)
    assert [cid for cid, _ in results] == ["c3", "c1"]
    assert results[0][1] > results[1][1] > 0


def test_search_single_match(index):
    results = index.search("programming", top_k=10)
    assert [cid for cid, _ in results] == ["c1"]


def test_no_match_returns_empty(index):
    assert index.search("kubernetes", top_k=10) == []
    assert index.search("", top_k=10) == []
    assert index.search("python", top_k=0) == []


def test_snake_case_identifiers_split(index):
    """Identifier parts are indexed so 'config' finds parse_config."""
    assert [cid for cid, _ in index.search("config", top_k=10)] == ["c4"]


def test_single_character_tokens_dropped():
    assert BM25Index._tokenize("a b i x yz") == ["a", "i", "yz"]


def test_allowed_ids_restrict_candidates(index):
    results = index.search("python", top_k=10, allowed_ids={"c1", "c2"})
    assert [cid for cid, _ in results] == ["c1"]


def test_top_k_limits_results(index):
    assert len(index.search("python", top_k=1)) == 1


def test_ties_broken_by_chunk_id():
    index = BM25Index()
    index.build_index([("b", "same words here"), ("a", "same words here"), ("c", "other")])
    results = index.search("same words", top_k=10)
    assert [cid for cid, _ in results] == ["a", "b"]
    assert results[0][1] == results[1][1]


def test_update_and_remove(index):
    index.update_index("c2", "python web framework")
    assert {cid for cid, _ in index.search("python", top_k=10)} == {"c1", "c2", "c3"}
    assert index.search("javascript", top_k=10) == []

    assert index.remove_from_index("c3") is True
    assert index.remove_from_index("c3") is False
    assert {cid for cid, _ in index.search("python", top_k=10)} == {"c1", "c2"}
    assert index.total_docs == 3


def test_idf_refreshed_after_apply(index):
    """Every cached IDF matches the current document frequencies."""
    index.apply(added=[("c5", "python everywhere"), ("c6", "rust systems")], removed=["c1"])

    for term, ids in index._postings.items():
        assert index._idf_cache[term] == pytest.approx(index._idf(len(ids)))
    assert "programming" not in index._postings
    assert "programming" not in index._idf_cache


def test_copy_is_independent(index):
    clone = index.copy()
    clone.update_index("c9", "brand new terms")
    clone.remove_from_index("c1")

    assert index.search("brand", top_k=10) == []
    assert [cid for cid, _ in index.search("programming", top_k=10)] == ["c1"]
    assert [cid for cid, _ in clone.search("brand", top_k=10)] == ["c9"]


def test_stats_and_clear(index):
    stats = index.get_index_stats()
    assert stats["total_documents"] == 4
    assert stats["unique_terms"] > 0
    assert stats["k1"] == 1.5 and stats["b"] == 0.75

    index.clear()
    assert index.total_docs == 0
    assert index.avg_doc_length == 0.0
    assert index.search("python", top_k=10) == []


def test_build_skips_missing_ids():
    index = BM25Index()
    index.build_index([("", "orphan text"), ("ok", "kept text")])
    assert index.total_docs == 1
