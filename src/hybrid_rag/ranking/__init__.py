"""Contextual ranking."""

from .ranker import ContextualRanker, priority_match

__all__ = ["ContextualRanker", "priority_match"]
