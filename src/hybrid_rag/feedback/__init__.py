"""Feedback collection and ranking-model adaptation."""

from .loop import FeedbackLoop
from .model_state import ModelStateHolder, validate_weights
from .policy import FeedbackExample, PreferenceGradientPolicy, UpdatePolicy
from .sampler import FeedbackSampler

__all__ = [
    "FeedbackExample",
    "FeedbackLoop",
    "FeedbackSampler",
    "ModelStateHolder",
    "PreferenceGradientPolicy",
    "UpdatePolicy",
    "validate_weights",
]
