"""
Ranking-model update policies.

A policy turns a batch of feedback (events joined with the feature values
their chunks were ranked with) into a new weight vector. It never publishes;
ModelStateHolder validates and publishes the result.
"""

from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from ..config import Config
from ..models import RANKING_FEATURES, FeedbackEvent, RankingModelState


@dataclass(frozen=True)
class FeedbackExample:
    """A feedback event joined with its sampled ranking features."""

    event: FeedbackEvent
    features: Mapping[str, Mapping[str, float]]  # chunk_id -> feature values


class UpdatePolicy(Protocol):
    """Computes new model weights from a batch of feedback."""

    def update(
        self, state: RankingModelState, batch: Sequence[FeedbackExample]
    ) -> dict[str, float]: ...


def _mean(vectors: list[Mapping[str, float]], name: str) -> float:
    return sum(v.get(name, 0.0) for v in vectors) / len(vectors)


class PreferenceGradientPolicy:
    """
    Pairwise preference update.

    For every event and feature f:
        w_f += lr * signal * (mean_f(selected) - mean_f(rejected))
    then w_f is clamped to [0, max_weight]. When an event names no rejected
    chunks, the shown-but-unselected chunks stand in for them. Features that
    separate what users chose from what they passed over gain weight.
    """

    def __init__(self, learning_rate: float | None = None, max_weight: float | None = None):
        self.learning_rate = (
            Config.FEEDBACK_LEARNING_RATE if learning_rate is None else learning_rate
        )
        self.max_weight = Config.MODEL_MAX_WEIGHT if max_weight is None else max_weight
        if self.learning_rate < 0:
            raise ValueError(f"learning_rate must be >= 0, got {self.learning_rate}")

    def update(
        self, state: RankingModelState, batch: Sequence[FeedbackExample]
    ) -> dict[str, float]:
        weights = {name: state.weights.get(name, 0.0) for name in RANKING_FEATURES}

        for example in batch:
            event = example.event
            shown = example.features
            selected = [shown[c] for c in event.selected if c in shown]
            if event.rejected:
                rejected = [shown[c] for c in event.rejected if c in shown]
            else:
                chosen = set(event.selected)
                rejected = [f for c, f in shown.items() if c not in chosen]
            if not selected or not rejected:
                continue

            for name in RANKING_FEATURES:
                gradient = _mean(selected, name) - _mean(rejected, name)
                updated = weights[name] + self.learning_rate * event.signal * gradient
                weights[name] = min(self.max_weight, max(0.0, updated))

        return weights
