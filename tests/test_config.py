"""Tests for centralized Config class."""
import importlib

import pytest

from hybrid_rag import config as config_module
from hybrid_rag.config import Config


@pytest.fixture
def reload_config(monkeypatch):
    """Reload the config module under a patched environment, restoring it afterwards."""

    def _reload(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return importlib.reload(config_module).Config

    yield _reload

    monkeypatch.undo()
    importlib.reload(config_module)


def test_config_defaults():
    """Verify default configuration values."""
    assert Config.DEFAULT_PROFILE == "general"
    assert Config.CLASSIFIER_MIN_CONFIDENCE == 0.3
    assert Config.SUBSEARCH_TIMEOUT_MS == 150
    assert Config.QUERY_TIMEOUT_MS == 200
    assert Config.CANDIDATE_OVERSAMPLE == 1
    assert Config.SINGLE_SOURCE_PENALTY == 0.1
    assert Config.FEEDBACK_QUEUE_SIZE == 1000


def test_config_defaults_validate():
    assert Config.validate() is True


def test_env_override(reload_config):
    """Environment variables override defaults."""
    reloaded = reload_config(SUBSEARCH_TIMEOUT_MS="80", HYBRID_RAG_DEFAULT_PROFILE="debugging")
    assert reloaded.SUBSEARCH_TIMEOUT_MS == 80
    assert reloaded.DEFAULT_PROFILE == "debugging"


def test_model_persistence_flag(reload_config):
    """Redis persistence of the ranking model is opt-in."""
    assert Config.MODEL_PERSISTENCE_ENABLED is False
    assert reload_config(MODEL_PERSISTENCE_ENABLED="TRUE").MODEL_PERSISTENCE_ENABLED is True


def test_fraction_out_of_range_rejected(reload_config):
    """Fractions outside 0-1 fail at import time with the variable name."""
    with pytest.raises(ValueError, match="SINGLE_SOURCE_PENALTY"):
        reload_config(SINGLE_SOURCE_PENALTY="1.5")


def test_fraction_not_a_number_rejected(reload_config):
    with pytest.raises(ValueError, match="CLASSIFIER_MIN_CONFIDENCE"):
        reload_config(CLASSIFIER_MIN_CONFIDENCE="high")


def test_validation_fails_on_zero_batch_size():
    """Config.validate() should fail if a size is <= 0."""
    original = Config.FEEDBACK_BATCH_SIZE
    try:
        Config.FEEDBACK_BATCH_SIZE = 0
        with pytest.raises(ValueError, match="FEEDBACK_BATCH_SIZE must be > 0"):
            Config.validate()
    finally:
        Config.FEEDBACK_BATCH_SIZE = original


def test_validation_fails_when_subsearch_exceeds_query_timeout():
    original = Config.SUBSEARCH_TIMEOUT_MS
    try:
        Config.SUBSEARCH_TIMEOUT_MS = Config.QUERY_TIMEOUT_MS + 1
        with pytest.raises(ValueError, match="must not exceed QUERY_TIMEOUT_MS"):
            Config.validate()
    finally:
        Config.SUBSEARCH_TIMEOUT_MS = original


def test_validation_collects_all_errors():
    """All problems are reported in one ValueError."""
    original_rate = Config.FEEDBACK_LEARNING_RATE
    original_weight = Config.MODEL_MAX_WEIGHT
    try:
        Config.FEEDBACK_LEARNING_RATE = 0
        Config.MODEL_MAX_WEIGHT = -1
        with pytest.raises(ValueError) as exc_info:
            Config.validate()
        message = str(exc_info.value)
        assert "FEEDBACK_LEARNING_RATE" in message
        assert "MODEL_MAX_WEIGHT" in message
    finally:
        Config.FEEDBACK_LEARNING_RATE = original_rate
        Config.MODEL_MAX_WEIGHT = original_weight
