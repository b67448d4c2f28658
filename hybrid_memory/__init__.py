"""
Hybrid memory search: durable memory records ranked by vector similarity,
keyword overlap, or a weighted fusion of both.
"""

from .core.config import VERSION
from .core.memory import MemoryStore, open_store
from .core.options import EmbeddingOptions, HybridSearchOptions, SearchOptions
from .core.schema import MemoryRecord, MemoryStats, ScoredRecord, SearchResults
from .core.store import StoreClosedError, StoreError
from .vector.embeddings import EmbeddingError

__version__ = VERSION

__all__ = [
    'MemoryStore',
    'open_store',
    'SearchOptions',
    'HybridSearchOptions',
    'EmbeddingOptions',
    'MemoryRecord',
    'MemoryStats',
    'ScoredRecord',
    'SearchResults',
    'StoreError',
    'StoreClosedError',
    'EmbeddingError',
]
