"""
Embedding providers for semantic recall.
Every provider turns text into a fixed-length float vector; failures surface as EmbeddingUnavailable.
"""

from abc import ABC, abstractmethod
import hashlib
import re

import numpy as np
import ollama
from sentence_transformers import SentenceTransformer

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class EmbeddingUnavailable(RuntimeError):
    """No vector can be produced: empty input, model not loaded, or backend failure."""


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

    @property
    def model_id(self) -> str:
        """Identifies the model behind the vectors; stored with every vector as its version."""
        return type(self).__name__


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic feature-hashing embedding provider.

    Each lowercase word and each of its character trigrams is hashed into a
    signed bucket, then the vector is L2-normalised. Texts sharing words or
    word fragments end up close together, which is enough for offline
    development and tests without a model download.
    """

    TRIGRAM_WEIGHT = 0.5

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    @property
    def model_id(self) -> str:
        return f"hash:{self.dimension}"

    def _features(self, text: str):
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens and text.strip():
            # Punctuation-only input still gets a stable, non-zero vector
            tokens = [text.strip()]

        for token in tokens:
            yield token, 1.0
            padded = f"#{token}#"
            for i in range(len(padded) - 2):
                yield padded[i:i + 3], self.TRIGRAM_WEIGHT

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector using hashed word and trigram features."""
        vector = np.zeros(self.dimension, dtype=np.float64)

        for feature, weight in self._features(text):
            digest = hashlib.sha256(feature.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "big") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign * weight

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Uses the all-mpnet-base-v2 model by default. The model is loaded on first use.
    """

    def __init__(self, model_name: str = "all-mpnet-base-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model_id(self) -> str:
        return f"sentence_transformers:{self.model_name}"

    @property
    def model(self):
        if self._model is None:
            try:
                self._model = SentenceTransformer(self.model_name)
            except Exception as e:
                raise EmbeddingUnavailable(f"Could not load model '{self.model_name}': {e}") from e
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False)
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


class OllamaEmbedding(IEmbeddingProvider):
    """Embeddings from a local Ollama server. The HTTP client carries a timeout so calls fail fast."""

    def __init__(self, model_name: str = "nomic-embed-text", host: str = None, timeout: float = 10.0):
        self.model_name = model_name
        self.client = ollama.Client(host=host, timeout=timeout)
        self._dimension = None

    @property
    def model_id(self) -> str:
        return f"ollama:{self.model_name}"

    def embed_text(self, text: str) -> list[float]:
        try:
            response = self.client.embed(model=self.model_name, input=text)
        except Exception as e:
            raise EmbeddingUnavailable(f"Ollama embedding failed: {e}") from e

        embeddings = response.get("embeddings") or []
        if not embeddings:
            raise EmbeddingUnavailable("Ollama returned no embedding")
        return list(embeddings[0])

    def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = len(self.embed_text("dimension check"))
        return self._dimension
