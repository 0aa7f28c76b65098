"""
Error taxonomy for the retrieval core.

Only RetrievalUnavailable and malformed-input errors (InvalidQueryError,
InvalidProfileError) surface to callers. The remaining conditions are
absorbed at the component boundary that raises them and degrade gracefully.
"""


class HybridRAGError(Exception):
    """Base class for all retrieval core errors."""


class ClassificationUncertain(HybridRAGError):
    """No classification signature cleared the confidence threshold."""

    def __init__(self, best_profile_id: str | None, confidence: float, alternatives=()):
        self.best_profile_id = best_profile_id
        self.confidence = confidence
        self.alternatives = tuple(alternatives)
        super().__init__(
            f"Classification confidence {confidence:.2f} for '{best_profile_id}' "
            "is below threshold"
        )


class ProfileNotFound(HybridRAGError):
    """A profile id is not present in the registry."""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Profile '{profile_id}' not found")


class SubsearchFailed(HybridRAGError):
    """One retrieval modality raised while searching."""

    def __init__(
        self, modality: str, cause: BaseException | None = None, message: str | None = None
    ):
        self.modality = modality
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(message or f"{modality} sub-search failed{detail}")


class SubsearchTimeout(SubsearchFailed):
    """One retrieval modality exceeded its time budget."""

    def __init__(self, modality: str, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(
            modality, message=f"{modality} sub-search timed out after {timeout_ms:.0f}ms"
        )


class RetrievalUnavailable(HybridRAGError):
    """Both sub-searches failed; the query cannot be answered."""

    def __init__(self, failures: list[SubsearchFailed] | None = None):
        self.failures = list(failures or [])
        reasons = "; ".join(str(f) for f in self.failures) or "no sub-search succeeded"
        super().__init__(f"Retrieval unavailable: {reasons}")


class ModelPublishRejected(HybridRAGError):
    """A recomputed ranking model was refused; the last good version stays active."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Ranking model publish rejected: {reason}")


class InvalidQueryError(HybridRAGError, ValueError):
    """The query is malformed (e.g. blank text)."""


class InvalidProfileError(HybridRAGError, ValueError):
    """An agent profile failed validation."""
