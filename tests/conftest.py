"""
Shared fixtures: a throwaway log path and deterministic embedding providers.
"""

import pytest

from hybrid_memory.core.memory import MemoryStore
from hybrid_memory.core.store import RecordStore
from hybrid_memory.vector.embeddings import HashedWordEmbedding


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "memories" / "memories.jsonl"


@pytest.fixture
def record_store(log_path):
    return RecordStore(log_path)


@pytest.fixture
def embedder():
    return HashedWordEmbedding(dimension=64)


@pytest.fixture
def memory_store(log_path, embedder):
    store = MemoryStore(log_path, embedding_provider=embedder, embed_timeout=5)
    yield store
    store.close()
