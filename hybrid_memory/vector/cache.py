"""
Bounded in-memory cache of record embeddings, keyed by record id.
An optimization only: the backing log stays the source of truth.
"""

from collections import OrderedDict
from typing import Optional

import numpy as np

EVICTION_BATCH = 100


class EmbeddingCache:
    """LRU cache of record id -> embedding array."""

    def __init__(self, max_size: int = 500):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._entries: "OrderedDict[str, np.ndarray]" = OrderedDict()

    def get(self, record_id: str) -> Optional[np.ndarray]:
        vector = self._entries.get(record_id)
        if vector is not None:
            self._entries.move_to_end(record_id)
        return vector

    def put(self, record_id: str, embedding) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float64)
        self._entries[record_id] = vector
        self._entries.move_to_end(record_id)

        if len(self._entries) > self.max_size:
            # Evict in batches so a full cache is not trimmed on every put
            overflow = len(self._entries) - self.max_size
            for _ in range(min(len(self._entries) - 1, max(overflow, EVICTION_BATCH))):
                self._entries.popitem(last=False)
        return vector

    def get_or_load(self, record_id: str, embedding) -> np.ndarray:
        """Return the cached array for a record, converting and caching it on a miss.

        A cached array whose length no longer matches the record's stored embedding
        is replaced.
        """
        vector = self.get(record_id)
        if vector is None or len(vector) != len(embedding):
            vector = self.put(record_id, embedding)
        return vector

    def discard(self, record_id: str) -> None:
        self._entries.pop(record_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._entries
