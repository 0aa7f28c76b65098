"""
Active ranking model with validated, atomic publishes.
"""

import math
from threading import Lock
from typing import Mapping

from loguru import logger

from ..config import Config
from ..errors import ModelPublishRejected
from ..models import RANKING_FEATURES, RankingModelState


def validate_weights(weights: Mapping[str, float], max_weight: float | None = None) -> None:
    """
    Reject degenerate ranking models.

    Raises:
        ModelPublishRejected: If a ranking feature is missing, any weight is
            NaN/inf, negative or above max_weight, or all weights are zero
    """
    max_weight = Config.MODEL_MAX_WEIGHT if max_weight is None else max_weight

    missing = [name for name in RANKING_FEATURES if name not in weights]
    if missing:
        raise ModelPublishRejected(f"missing feature weights: {', '.join(missing)}")

    for name, weight in weights.items():
        if not isinstance(weight, (int, float)) or not math.isfinite(weight):
            raise ModelPublishRejected(f"weight for '{name}' is not finite: {weight!r}")
        if weight < 0:
            raise ModelPublishRejected(f"weight for '{name}' is negative: {weight}")
        if weight > max_weight:
            raise ModelPublishRejected(f"weight for '{name}' exceeds {max_weight}: {weight}")

    if all(weights[name] == 0 for name in RANKING_FEATURES):
        raise ModelPublishRejected("all feature weights are zero")


class ModelStateHolder:
    """
    Single-writer, many-reader holder of the active RankingModelState.

    Readers take `current` without locking and always get one complete
    version. publish() validates, stamps version + 1 and swaps the reference
    under a lock; a rejected model leaves the active version untouched.
    """

    def __init__(self, initial: RankingModelState | None = None, max_weight: float | None = None):
        self.max_weight = Config.MODEL_MAX_WEIGHT if max_weight is None else max_weight
        state = initial or RankingModelState.initial()
        validate_weights(state.weights, self.max_weight)
        self._state = state
        self._lock = Lock()
        self.rejected_count = 0

    @property
    def current(self) -> RankingModelState:
        return self._state

    @property
    def version(self) -> int:
        return self._state.version

    def publish(
        self, weights: Mapping[str, float], expected_version: int | None = None
    ) -> RankingModelState:
        """
        Publish new weights as the next model version.

        Args:
            weights: Complete feature -> weight mapping
            expected_version: If given, reject when another writer published
                since the weights were computed

        Returns:
            The newly active state

        Raises:
            ModelPublishRejected: If the weights are degenerate or stale
        """
        with self._lock:
            current = self._state
            try:
                if expected_version is not None and expected_version != current.version:
                    raise ModelPublishRejected(
                        f"stale update computed against v{expected_version}, "
                        f"active is v{current.version}"
                    )
                validate_weights(weights, self.max_weight)
            except ModelPublishRejected as e:
                self.rejected_count += 1
                logger.warning(f"{e}; keeping model v{current.version}")
                raise

            state = RankingModelState(weights=dict(weights), version=current.version + 1)
            self._state = state

        logger.info(f"Published ranking model v{state.version}")
        return state

    def restore(self, state: RankingModelState) -> bool:
        """
        Adopt a persisted state if it is valid and newer than the active one.

        Returns:
            True if the state was adopted
        """
        try:
            validate_weights(state.weights, self.max_weight)
        except ModelPublishRejected as e:
            logger.warning(f"Ignoring persisted ranking model v{state.version}: {e}")
            return False

        with self._lock:
            if state.version <= self._state.version:
                return False
            self._state = state
        logger.info(f"Restored ranking model v{state.version}")
        return True
