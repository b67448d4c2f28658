# Package initialization for vector module
from .cache import EmbeddingCache
from .embeddings import (
    IEmbeddingProvider,
    DeterministicHashEmbedding,
    HashedWordEmbedding,
    OllamaEmbedding,
    SentenceTransformerEmbedding,
    FallbackEmbedding,
    EmbeddingError,
    get_embedding_provider,
)
from .similarity import cosine_similarity, fuse

__all__ = [
    'EmbeddingCache',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'HashedWordEmbedding',
    'OllamaEmbedding',
    'SentenceTransformerEmbedding',
    'FallbackEmbedding',
    'EmbeddingError',
    'get_embedding_provider',
    'cosine_similarity',
    'fuse',
]
