"""
Contextual re-ranking of merged retrieval candidates.

Scores each candidate as a weighted mean of its features under the active
ranking model, orders deterministically and fits the result to the profile's
context window.
"""

from typing import Iterable, Mapping

from ..models import RANKING_FEATURES, CandidateResult, RankingModelState
from ..profiles.models import AgentProfile


def priority_match(chunk_features: Iterable[str], priority_features: tuple[str, ...]) -> float:
    """
    Position-weighted overlap between chunk features and priority features.

    The i-th of n priority features weighs n - i, so matching the first
    priority counts most. Returns a value in [0, 1] (0 with no priorities).
    """
    n = len(priority_features)
    if n == 0:
        return 0.0
    present = set(chunk_features)
    matched = sum(n - i for i, name in enumerate(priority_features) if name in present)
    return matched / (n * (n + 1) / 2)


class ContextualRanker:
    """
    Deterministic re-ranker.

    rank() reads nothing but its arguments, so the same candidates, profile
    and model state always give the same ordering.

    Example:
        ranked = ContextualRanker().rank(result.candidates, profile, holder.current)
    """

    def extract_features(
        self, candidate: CandidateResult, profile: AgentProfile
    ) -> dict[str, float]:
        """Feature vector of one candidate under a profile."""
        return {
            "retrieval_score": candidate.merged_score,
            "vector_score": candidate.vector_score or 0.0,
            "keyword_score": candidate.keyword_score or 0.0,
            "content_affinity": profile.content_weight(candidate.chunk.content_type),
            "priority_match": priority_match(candidate.chunk.features, profile.priority_features),
        }

    @staticmethod
    def score(features: Mapping[str, float], weights: Mapping[str, float]) -> float:
        """Weighted mean of feature values (features without a weight count as 0)."""
        total_weight = sum(weights.get(name, 0.0) for name in RANKING_FEATURES)
        if total_weight <= 0:
            return features["retrieval_score"]
        return (
            sum(weights.get(name, 0.0) * features[name] for name in RANKING_FEATURES)
            / total_weight
        )

    def rank(
        self,
        candidates: Iterable[CandidateResult],
        profile: AgentProfile,
        model_state: RankingModelState,
    ) -> list[CandidateResult]:
        """
        Re-rank candidates for a profile.

        Args:
            candidates: Merged candidates from the retrieval engine
            profile: Agent profile (context window, priorities, affinities)
            model_state: Active ranking model

        Returns:
            At most max_chunks results whose summed token counts fit max_tokens
            (0 = unlimited), each carrying rank and model version
        """
        scored = []
        for candidate in candidates:
            features = self.extract_features(candidate, profile)
            scored.append((candidate, features, self.score(features, model_state.weights)))

        scored.sort(key=lambda item: item[0].sort_key(item[2]))

        window = profile.context_window
        ranked: list[CandidateResult] = []
        used_tokens = 0
        for candidate, features, final_score in scored:
            if len(ranked) == window.max_chunks:
                break
            tokens = candidate.chunk.token_count
            if window.max_tokens and used_tokens + tokens > window.max_tokens:
                continue
            used_tokens += tokens
            ranked.append(
                candidate.with_ranking(
                    final_score=final_score,
                    rank=len(ranked) + 1,
                    features=features,
                    model_version=model_state.version,
                )
            )
        return ranked
