"""Hybrid retrieval engine."""

from .engine import HybridRetrievalEngine, RetrievalResult, SearchBackend

__all__ = ["HybridRetrievalEngine", "RetrievalResult", "SearchBackend"]
