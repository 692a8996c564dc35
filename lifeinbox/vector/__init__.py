"""
Vector layer - embeddings and the semantic index over canonical records.
"""

# Package initialization for vector module
from .embeddings import (
    EmbeddingUnavailable,
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    SentenceTransformerEmbedding,
    OllamaEmbedding,
)
from .index import EmbeddingIndex, ReindexReport

__all__ = [
    'EmbeddingUnavailable',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'OllamaEmbedding',
    'EmbeddingIndex',
    'ReindexReport',
]
