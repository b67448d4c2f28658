"""
Embedding providers. The memory engine only depends on the IEmbeddingProvider
contract; Ollama is the remote provider and the hashed bag-of-words embedding is
the always-available local fallback.
"""

from abc import ABC, abstractmethod
import hashlib
import random
import time
from collections import Counter
from typing import Optional

import numpy as np
import ollama

from ..core import config
from ..core.options import EmbeddingOptions, coerce_options
from ..util.logging import logger


class EmbeddingError(Exception):
    """Raised when an embedding cannot be produced."""
    pass


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    def is_available(self) -> bool:
        """Cheap liveness check. Local providers are always available."""
        return True

    def probe(self) -> bool:
        return self.is_available()

    def configure(self, options=None, **kwargs) -> EmbeddingOptions:
        """Apply endpoint/model settings. Local providers accept and ignore them."""
        if kwargs:
            options = dict(options or {}, **kwargs)
        return coerce_options(options, EmbeddingOptions)

    @property
    def name(self) -> str:
        return self.__class__.__name__


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Identical text always maps to the identical vector; different texts are
    effectively unrelated, so only exact repeats score as similar.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector by chaining md5 digests."""
        vector = []
        counter = 0
        while len(vector) < self.dimension:
            digest = hashlib.md5(f"{counter}:{text}".encode()).hexdigest()
            for i in range(0, len(digest), 8):
                value = int(digest[i:i + 8], 16)
                # Map to [-1, 1] for cosine similarity
                vector.append((value / (2**32)) * 2 - 1)
            counter += 1

        return vector[:self.dimension]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class HashedWordEmbedding(IEmbeddingProvider):
    """Local bag-of-words embedding: each word is hashed into two dimensions.

    Not semantic, but texts sharing words land close together, which is enough
    for basic matching when no model is reachable.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        words = text.lower().split()
        vector = np.zeros(self.dimension, dtype=np.float64)

        for word, freq in Counter(words).items():
            digest = hashlib.sha256(word.encode("utf-8")).hexdigest()
            vector[int(digest[0:4], 16) % self.dimension] += freq
            # Second slot spreads each word for better matching
            vector[int(digest[4:8], 16) % self.dimension] += freq * 0.5

        magnitude = np.linalg.norm(vector)
        if magnitude > 0:
            vector /= magnitude

        return vector.tolist()

    def get_dimension(self) -> int:
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Requires the optional sentence-transformers dependency; the model is loaded
    on first use.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        try:
            embedding = self.model.encode(text, convert_to_tensor=False)
        except Exception as e:
            raise EmbeddingError(f"sentence-transformers failed: {e}") from e
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            # Get dimension by encoding a dummy string
            dummy_embedding = self.model.encode("test", convert_to_tensor=False)
            self._dimension = len(dummy_embedding)
        return self._dimension

    def is_available(self) -> bool:
        try:
            self.model
        except Exception as e:
            logger.log_embedding_event("probe", self.name, {"error": str(e)}, status="failed")
            return False
        return True

    def configure(self, options=None, **kwargs) -> EmbeddingOptions:
        settings = super().configure(options, **kwargs)
        if settings.model and settings.model != self.model_name:
            self.model_name = settings.model
            self._model = None
            self._dimension = None
        return settings


class OllamaEmbedding(IEmbeddingProvider):
    """Embeddings from a local Ollama server.

    Probes the server for an installed embedding model (preferring the models in
    OLLAMA_EMBEDDING_MODELS), retries transient failures with exponential backoff
    and jitter, and never retries a refused connection.
    """

    def __init__(self, host: str = None, model: str = None, timeout: float = None,
                 max_retries: int = None, retry_delay_ms: int = None, max_retry_delay_ms: int = None,
                 probe_interval: int = None):
        self.host = host or config.OLLAMA_URL
        self.model = model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.EMBED_TIMEOUT_SEC
        self.max_retries = max_retries or config.EMBED_MAX_RETRIES
        self.retry_delay_ms = config.EMBED_RETRY_DELAY_MS if retry_delay_ms is None else retry_delay_ms
        self.max_retry_delay_ms = config.EMBED_MAX_RETRY_DELAY_MS if max_retry_delay_ms is None else max_retry_delay_ms
        self.probe_interval = config.PROBE_INTERVAL_SEC if probe_interval is None else probe_interval
        self.max_text_length = config.EMBED_MAX_TEXT_LENGTH

        self._client = None
        self._available: Optional[bool] = None
        self._last_check = 0.0
        self._active_model: Optional[str] = None
        self._dimension: Optional[int] = None

    @property
    def client(self) -> ollama.Client:
        if self._client is None:
            self._client = ollama.Client(host=self.host, timeout=self.timeout)
        return self._client

    @property
    def active_model(self) -> str:
        return self._active_model or self.model

    def configure(self, options=None, **kwargs) -> EmbeddingOptions:
        settings = super().configure(options, **kwargs)
        for field_name, value in settings.settings().items():
            setattr(self, field_name, value)

        # New endpoint or model: drop the client and forget the last probe
        self._client = None
        self._available = None
        self._active_model = None
        self._dimension = None
        logger.log_embedding_event("configured", self.name, {"host": self.host, "model": self.model})
        return settings

    def is_available(self) -> bool:
        """Check the server is up, caching the answer for probe_interval seconds."""
        now = time.monotonic()
        if self._available is not None and now - self._last_check < self.probe_interval:
            return self._available

        self._last_check = now
        try:
            response = self.client.list()
        except Exception as e:
            self._available = False
            logger.log_embedding_event("probe", self.name, {"host": self.host, "error": str(e)}, status="failed")
            return False

        installed = _installed_model_names(response)
        preferred = [self.model] + [m for m in config.OLLAMA_EMBEDDING_MODELS if m != self.model]
        self._active_model = next(
            (m for m in preferred if any(name.startswith(m) for name in installed)),
            self.model,
        )
        self._available = True
        logger.log_embedding_event("probe", self.name, {"host": self.host, "model": self._active_model})
        return True

    def embed_text(self, text: str) -> list[float]:
        if not text or not isinstance(text, str):
            raise EmbeddingError("Text must be a non-empty string")

        truncated = text[:self.max_text_length]
        embedding = self._retry(lambda: self._embed_once(truncated))
        self._dimension = len(embedding)
        return embedding

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed_text("test"))
        return self._dimension

    def _embed_once(self, text: str) -> list[float]:
        response = self.client.embed(model=self.active_model, input=text)
        embeddings = response["embeddings"] if response is not None else None
        if not embeddings or not isinstance(embeddings[0], (list, tuple)) or not embeddings[0]:
            raise EmbeddingError("Invalid embedding response from Ollama")
        return [float(x) for x in embeddings[0]]

    def _retry(self, fn):
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return fn()
            except ConnectionError as e:
                # Server is down, retrying will not help
                self._available = False
                raise EmbeddingError(f"Ollama unreachable at {self.host}: {e}") from e
            except Exception as e:
                last_error = e
                if attempt >= self.max_retries:
                    break

                base_delay = self.retry_delay_ms * (2 ** (attempt - 1))
                jitter = random.random() * 0.2
                delay_ms = min(base_delay * (1 + jitter), self.max_retry_delay_ms)
                logger.log_embedding_event("retry", self.name, {
                    "attempt": attempt, "delay_ms": round(delay_ms), "error": str(last_error)
                }, status="degraded")
                time.sleep(delay_ms / 1000)

        raise EmbeddingError(f"Ollama embedding failed after {self.max_retries} attempts: {last_error}") from last_error


def _installed_model_names(response) -> list[str]:
    models = response["models"] if response is not None else []
    names = []
    for entry in models or []:
        if isinstance(entry, dict):
            name = entry.get("model") or entry.get("name")
        else:
            name = getattr(entry, "model", None) or getattr(entry, "name", None)
        if name:
            names.append(name)
    return names


class FallbackEmbedding(IEmbeddingProvider):
    """Use the primary provider when it is reachable, the fallback otherwise."""

    def __init__(self, primary: IEmbeddingProvider, fallback: IEmbeddingProvider = None):
        self.primary = primary
        self.fallback = fallback or HashedWordEmbedding(config.EMBED_DIM)
        self.used_fallback = False

    def embed_text(self, text: str) -> list[float]:
        if self.primary.is_available():
            try:
                embedding = self.primary.embed_text(text)
                self.used_fallback = False
                return embedding
            except EmbeddingError as e:
                logger.log_embedding_event("fallback", self.primary.name, {"error": str(e)}, status="degraded")

        self.used_fallback = True
        return self.fallback.embed_text(text)

    def get_dimension(self) -> int:
        if self.primary.is_available():
            try:
                return self.primary.get_dimension()
            except EmbeddingError:
                pass
        return self.fallback.get_dimension()

    def configure(self, options=None, **kwargs) -> EmbeddingOptions:
        return self.primary.configure(options, **kwargs)

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"


def get_embedding_provider(provider_name: str = None) -> IEmbeddingProvider:
    """Get configured embedding provider implementation."""
    provider_name = (provider_name or config.get_embed_provider_name()).lower()

    if provider_name == "ollama":
        provider = OllamaEmbedding()
        if config.is_embed_fallback_enabled():
            return FallbackEmbedding(provider, HashedWordEmbedding(config.EMBED_DIM))
        return provider
    elif provider_name == "sentence-transformers":
        return SentenceTransformerEmbedding(config.SENTENCE_TRANSFORMER_MODEL)
    elif provider_name == "hash":
        return HashedWordEmbedding(config.EMBED_DIM)
    else:
        raise ValueError(f"Unknown embedding provider: {provider_name}")
