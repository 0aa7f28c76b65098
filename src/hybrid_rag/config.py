"""Centralized configuration for the hybrid retrieval core."""

import os


class Config:
    """
    Retrieval core configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Values can be overridden via environment variables.
    """

    @staticmethod
    def _parse_fraction(name: str, default: str) -> float:
        """Parse and validate a 0-1 fraction from the environment."""
        raw = os.getenv(name, default)
        try:
            value = float(raw)
        except ValueError as e:
            raise ValueError(f"Invalid {name} environment variable: {e}")
        if not (0.0 <= value <= 1.0):
            raise ValueError(f"Invalid {name} environment variable: must be 0-1, got {value}")
        return value

    # ========================================================================
    # Profiles & Classification
    # ========================================================================
    DEFAULT_PROFILE: str = os.getenv("HYBRID_RAG_DEFAULT_PROFILE", "general")
    PROFILES_YAML: str = os.getenv("PROFILES_YAML", "")
    CLASSIFIER_MIN_CONFIDENCE: float = _parse_fraction.__func__(
        "CLASSIFIER_MIN_CONFIDENCE", "0.3"
    )
    CLASSIFIER_LATENCY_BUDGET_MS: float = float(
        os.getenv("CLASSIFIER_LATENCY_BUDGET_MS", "2")
    )

    # ========================================================================
    # Hybrid Retrieval
    # ========================================================================
    SUBSEARCH_TIMEOUT_MS: int = int(os.getenv("SUBSEARCH_TIMEOUT_MS", "150"))
    QUERY_TIMEOUT_MS: int = int(os.getenv("QUERY_TIMEOUT_MS", "200"))
    CANDIDATE_OVERSAMPLE: int = int(os.getenv("CANDIDATE_OVERSAMPLE", "1"))
    SINGLE_SOURCE_PENALTY: float = _parse_fraction.__func__("SINGLE_SOURCE_PENALTY", "0.1")
    EMBEDDING_DIM: int = int(os.getenv("EMBEDDING_DIM", "256"))

    # ========================================================================
    # Feedback & Adaptation
    # ========================================================================
    FEEDBACK_QUEUE_SIZE: int = int(os.getenv("FEEDBACK_QUEUE_SIZE", "1000"))
    FEEDBACK_BATCH_SIZE: int = int(os.getenv("FEEDBACK_BATCH_SIZE", "50"))
    FEEDBACK_FLUSH_INTERVAL_S: float = float(os.getenv("FEEDBACK_FLUSH_INTERVAL_S", "5"))
    FEEDBACK_LEARNING_RATE: float = float(os.getenv("FEEDBACK_LEARNING_RATE", "0.05"))
    FEEDBACK_SAMPLE_SIZE: int = int(os.getenv("FEEDBACK_SAMPLE_SIZE", "500"))
    MODEL_MAX_WEIGHT: float = float(os.getenv("MODEL_MAX_WEIGHT", "2.0"))

    # ========================================================================
    # Persisted State (Redis)
    # ========================================================================
    MODEL_PERSISTENCE_ENABLED: bool = os.getenv("MODEL_PERSISTENCE_ENABLED", "false").lower() == "true"
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    REDIS_MODEL_KEY: str = os.getenv("REDIS_MODEL_KEY", "hybrid_rag:ranking_model")
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))

    # ========================================================================
    # Logging
    # ========================================================================
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - Timeouts and sizes are > 0
        - Sub-search timeout fits inside the end-to-end query timeout

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if not cls.DEFAULT_PROFILE:
            errors.append("DEFAULT_PROFILE must not be empty")

        for name in (
            "SUBSEARCH_TIMEOUT_MS",
            "QUERY_TIMEOUT_MS",
            "CANDIDATE_OVERSAMPLE",
            "EMBEDDING_DIM",
            "FEEDBACK_QUEUE_SIZE",
            "FEEDBACK_BATCH_SIZE",
            "FEEDBACK_SAMPLE_SIZE",
        ):
            value = getattr(cls, name)
            if value <= 0:
                errors.append(f"{name} must be > 0, got {value}")

        if cls.SUBSEARCH_TIMEOUT_MS > cls.QUERY_TIMEOUT_MS:
            errors.append(
                f"SUBSEARCH_TIMEOUT_MS ({cls.SUBSEARCH_TIMEOUT_MS}) must not exceed "
                f"QUERY_TIMEOUT_MS ({cls.QUERY_TIMEOUT_MS})"
            )

        if cls.FEEDBACK_FLUSH_INTERVAL_S <= 0:
            errors.append(
                f"FEEDBACK_FLUSH_INTERVAL_S must be > 0, got {cls.FEEDBACK_FLUSH_INTERVAL_S}"
            )
        if cls.FEEDBACK_LEARNING_RATE <= 0:
            errors.append(
                f"FEEDBACK_LEARNING_RATE must be > 0, got {cls.FEEDBACK_LEARNING_RATE}"
            )
        if cls.MODEL_MAX_WEIGHT <= 0:
            errors.append(f"MODEL_MAX_WEIGHT must be > 0, got {cls.MODEL_MAX_WEIGHT}")

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
