"""Persisted state adapters."""

from .redis_store import RedisModelStateStore

__all__ = ["RedisModelStateStore"]
