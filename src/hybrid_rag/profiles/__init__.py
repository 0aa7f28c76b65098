"""Agent profiles: models, predefined catalogue and registry."""

from .defaults import GENERAL_PROFILE, PREDEFINED_PROFILES
from .models import AgentProfile, ContextWindow, RetrievalWeights
from .registry import ProfileRegistry

__all__ = [
    "AgentProfile",
    "ContextWindow",
    "GENERAL_PROFILE",
    "PREDEFINED_PROFILES",
    "ProfileRegistry",
    "RetrievalWeights",
]
