"""
Embedding adapters for chunks and queries.

HashingEmbedder is a dependency-light, deterministic embedder: hashed
bag-of-words vectors normalized to unit length. It needs no model download or
API key and is the default for ingestion, the CLI and tests. A model-backed
embedder only has to satisfy the Embedder protocol.
"""

import hashlib
import math
import re
from threading import Lock
from typing import Protocol, Sequence

import numpy as np
from loguru import logger

from ..config import Config

_WORD_RE = re.compile(r"[a-z0-9_]+")


def tokenize(text: str) -> list[str]:
    """
    Tokenize text into lowercase words.

    Splits on anything that is not alphanumeric or underscore, and also splits
    snake_case identifiers so "parse_config" matches "config".
    """
    tokens = []
    for word in _WORD_RE.findall(text.lower()):
        tokens.append(word)
        if "_" in word:
            tokens.extend(part for part in word.split("_") if part)
    return tokens


class Embedder(Protocol):
    """Anything that maps text to fixed-dimension vectors."""

    dimension: int

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray: ...

    def embed_query(self, query: str) -> np.ndarray: ...


class HashingEmbedder:
    """
    Feature-hashing embedder.

    Each token is hashed (blake2b, stable across processes) into one of
    `dimension` buckets with a hashed sign; term frequencies are damped with
    1 + log(tf) and the vector is L2-normalized so dot product == cosine.
    """

    def __init__(self, dimension: int | None = None, cache_size: int = 4096):
        self.dimension = Config.EMBEDDING_DIM if dimension is None else dimension
        if self.dimension <= 0:
            raise ValueError(f"dimension must be > 0, got {self.dimension}")
        self.cache_size = cache_size
        self._bucket_cache: dict[str, tuple[int, float]] = {}
        self._lock = Lock()

        # Usage tracking
        self.call_count = 0
        self.text_count = 0

    def _bucket(self, token: str) -> tuple[int, float]:
        cached = self._bucket_cache.get(token)
        if cached is not None:
            return cached
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        value = int.from_bytes(digest, "little")
        bucket = (value % self.dimension, 1.0 if (value >> 63) & 1 else -1.0)
        with self._lock:
            if len(self._bucket_cache) >= self.cache_size:
                self._bucket_cache.clear()
            self._bucket_cache[token] = bucket
        return bucket

    def _embed_one(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float32)
        counts: dict[str, int] = {}
        for token in tokenize(text):
            counts[token] = counts.get(token, 0) + 1
        for token, tf in counts.items():
            index, sign = self._bucket(token)
            vector[index] += sign * (1.0 + math.log(tf))
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector

    def embed_batch(self, texts: Sequence[str]) -> np.ndarray:
        """
        Embed texts.

        Returns:
            Array of shape (len(texts), dimension); empty texts map to zero rows
        """
        self.call_count += 1
        self.text_count += len(texts)
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        matrix = np.vstack([self._embed_one(text) for text in texts])
        logger.debug(f"Embedded batch of {len(texts)} texts")
        return matrix

    def embed_query(self, query: str) -> np.ndarray:
        self.call_count += 1
        self.text_count += 1
        return self._embed_one(query)

    def get_usage(self) -> dict:
        return {
            "call_count": self.call_count,
            "text_count": self.text_count,
            "dimension": self.dimension,
        }
