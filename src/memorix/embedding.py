"""Embedding providers for memorix.

Three providers share the :class:`EmbeddingProvider` protocol:

- ``HashEmbeddingProvider``: deterministic, dependency-light vectors built by
  averaging per-word Gaussian vectors seeded from a hash of each word.
  Identical text always yields identical vectors and shared words pull
  vectors together, which is enough for tests and offline use.
- ``SentenceTransformerEmbeddingProvider``: local sentence-transformers model,
  lazy-loaded on first use.
- ``OpenAIEmbeddingProvider``: OpenAI-compatible ``/embeddings`` endpoint over
  httpx with bounded exponential backoff.
"""

from __future__ import annotations

import hashlib
import random
import re
import struct
import time
from typing import Protocol, runtime_checkable

import httpx
import numpy as np
from loguru import logger

from .config import EmbeddingConfig
from .exceptions import EmbeddingError

_WORD_SPLIT = re.compile(r"\W+")


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns text into a fixed-dimension vector."""

    @property
    def name(self) -> str: ...

    @property
    def dimension(self) -> int: ...

    def embed(self, text: str) -> list[float]: ...


class HashEmbeddingProvider:
    """Deterministic bag-of-words embedding."""

    def __init__(self, dimension: int = 384):
        self._dimension = dimension
        self._word_cache: dict[str, np.ndarray] = {}

    @property
    def name(self) -> str:
        return "hash"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _word_vector(self, word: str) -> np.ndarray:
        vector = self._word_cache.get(word)
        if vector is None:
            seed = int.from_bytes(
                hashlib.sha256(word.encode("utf-8")).digest()[:8], "little"
            )
            vector = np.random.default_rng(seed).standard_normal(self._dimension)
            self._word_cache[word] = vector
        return vector

    def embed(self, text: str) -> list[float]:
        words = [w for w in _WORD_SPLIT.split(text.lower()) if w]
        if not words:
            return [0.0] * self._dimension

        embedding = np.mean([self._word_vector(w) for w in words], axis=0)
        norm = np.linalg.norm(embedding)
        if norm > 0:
            embedding = embedding / norm
        return embedding.tolist()


class SentenceTransformerEmbeddingProvider:
    """Embedding provider using sentence-transformers.

    The model is loaded lazily on the first ``embed`` call to avoid startup
    overhead.
    """

    def __init__(self, config: EmbeddingConfig | None = None):
        self._config = config or EmbeddingConfig(provider="local")
        self._model = None
        self._dimension = self._config.dimension

    @property
    def name(self) -> str:
        return "local"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _ensure_model(self) -> None:
        """Lazy-load the sentence-transformers model."""
        if self._model is not None:
            return

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError:
            raise ImportError(
                "sentence-transformers is required for the local provider. "
                "Install with: pip install 'memorix[local]'"
            )

        logger.info(f"Loading embedding model: {self._config.model}")
        self._model = SentenceTransformer(
            self._config.model,
            trust_remote_code=self._config.trust_remote_code,
        )
        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"Embedding model loaded: dim={self._dimension}")

    def embed(self, text: str) -> list[float]:
        self._ensure_model()
        try:
            vector: np.ndarray = self._model.encode(
                [text], show_progress_bar=False, normalize_embeddings=True,
            )[0]
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}", provider=self.name) from e
        return vector.tolist()


class OpenAIEmbeddingProvider:
    """OpenAI-compatible HTTP embedding provider.

    Transport errors, 429 and 5xx responses are retried up to
    ``max_retries`` times with exponential backoff plus jitter; anything else
    (or exhausting the retries) raises :class:`EmbeddingError`.
    """

    BACKOFF_BASE_SECONDS = 0.5
    BACKOFF_JITTER_SECONDS = 0.25
    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        client: httpx.Client | None = None,
    ):
        self._config = config or EmbeddingConfig(provider="openai")
        if not self._config.api_key:
            raise EmbeddingError("api_key is required for the openai provider", provider="openai")
        self._client = client or httpx.Client(timeout=self._config.timeout_seconds)

    @property
    def name(self) -> str:
        return "openai"

    @property
    def dimension(self) -> int:
        return self._config.dimension

    def embed(self, text: str) -> list[float]:
        url = f"{self._config.api_base.rstrip('/')}/embeddings"
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        payload = {"model": self._config.model, "input": text}

        last_error: Exception | None = None
        for attempt in range(self._config.max_retries + 1):
            if attempt:
                delay = self.BACKOFF_BASE_SECONDS * (2 ** (attempt - 1))
                delay += random.uniform(0, self.BACKOFF_JITTER_SECONDS)
                logger.warning(
                    f"Retrying embedding request in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self._config.max_retries + 1}): {last_error}"
                )
                time.sleep(delay)

            try:
                response = self._client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()["data"][0]["embedding"]
            except httpx.HTTPStatusError as e:
                if e.response.status_code not in self.RETRYABLE_STATUS:
                    raise EmbeddingError(
                        f"Embedding request rejected: HTTP {e.response.status_code}",
                        provider=self.name,
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                last_error = e
            except (KeyError, IndexError, ValueError) as e:
                raise EmbeddingError(
                    f"Malformed embedding response: {e}", provider=self.name,
                ) from e

        raise EmbeddingError(
            f"Embedding request failed after {self._config.max_retries + 1} attempts: "
            f"{last_error}",
            provider=self.name,
        )

    def close(self) -> None:
        self._client.close()


def create_embedding_provider(config: EmbeddingConfig | None = None) -> EmbeddingProvider:
    """Build the provider named by ``config.provider``."""
    config = config or EmbeddingConfig()
    if config.provider == "hash":
        return HashEmbeddingProvider(dimension=config.dimension)
    if config.provider == "local":
        return SentenceTransformerEmbeddingProvider(config)
    if config.provider == "openai":
        return OpenAIEmbeddingProvider(config)
    raise ValueError(f"Unknown embedding provider: {config.provider!r}")


def serialize_embedding(embedding: list[float]) -> bytes:
    """Pack an embedding as little-endian float32 for SQLite BLOB storage."""
    return struct.pack(f"<{len(embedding)}f", *embedding)


def deserialize_embedding(blob: bytes) -> list[float]:
    """Unpack a float32 BLOB produced by :func:`serialize_embedding`."""
    count = len(blob) // 4
    return list(struct.unpack(f"<{count}f", blob))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity, rounded to 6 places so identical vectors score 1.0.

    Mismatched dimensions and zero vectors score 0.0.
    """
    if len(a) != len(b) or not a:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    similarity = float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))
    return round(similarity, 6)
