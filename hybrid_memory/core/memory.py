"""
MemoryStore: the caller-facing handle over one memory log.

Open one per backing file and pass it to whatever needs memory access:

    with open_store("~/.hybrid-memory/memories.jsonl") as store:
        store.add("I like coffee in the morning", {"type": "preference"})
        results = store.hybrid_search("coffee morning")
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from . import config
from . import maintenance
from .keyword_index import KeywordIndex
from .maintenance import MaintenanceReport
from .options import EmbeddingOptions
from .schema import MemoryRecord, MemoryStats, SearchResults, parse_timestamp
from .search_service import SearchService
from .store import RecordStore, StoreClosedError
from ..util.logging import logger
from ..vector.cache import EmbeddingCache
from ..vector.embeddings import EmbeddingError, IEmbeddingProvider, get_embedding_provider

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class MemoryStore:
    """Add, search, delete and administer memories in one append-only log.

    `keyword_index` is maintenance state: it is built on open and kept current by
    add, delete, import, clear and compact so callers can inspect it or rebuild it
    after another process changes the log. Searches never read it; each query
    builds its own index from the same scan it ranks.
    """

    def __init__(self, path: Union[str, Path] = None, embedding_provider: IEmbeddingProvider = None,
                 cache_size: int = None, embed_timeout: float = None, use_file_lock: bool = None):
        self.path = Path(path).expanduser() if path else config.get_memory_path()
        self.embedding_provider = embedding_provider or get_embedding_provider()
        self.records = RecordStore(self.path, use_file_lock=use_file_lock)
        self.cache = EmbeddingCache(cache_size or config.EMBED_CACHE_SIZE)
        self.keyword_index = KeywordIndex()
        self.search_service = SearchService(self.records, self.embedding_provider, self.cache, embed_timeout)
        self._closed = False

        self.keyword_index.build(self.records.scan())
        logger.log_store_event("open", self.path, {
            "provider": self.embedding_provider.name,
            "indexed": len(self.keyword_index),
        })

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.keyword_index.clear()
        self.cache.clear()
        logger.log_store_event("close", self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _check_open(self):
        if self._closed:
            raise StoreClosedError(f"Memory store {self.path} is closed")

    def add(self, content: str, metadata: Dict[str, Any] = None) -> Dict[str, Any]:
        """Embed and persist a new memory.

        Args:
            content: Memory text, must not be blank
            metadata: Optional fields; `type` defaults to "general", `timestamp` is set here

        Returns:
            {"id": ..., "success": True}

        Raises:
            ValueError: if content is blank
            EmbeddingError: if the content cannot be embedded (nothing is written)
            StoreError: if the log cannot be written
        """
        self._check_open()
        if not isinstance(content, str) or not content.strip():
            raise ValueError("content cannot be empty")

        try:
            embedding = self.embedding_provider.embed_text(content)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to embed memory content: {e}") from e

        record = MemoryRecord.create(content, embedding, metadata)
        self.records.append(record)

        self.keyword_index.add(record)
        self.cache.put(record.id, record.embedding)
        logger.log_memory_operation("added", record.id, content, {
            "type": record.type,
            "dimension": len(record.embedding),
        })
        return {"id": record.id, "success": True}

    def search_memories(self, query: str, options=None) -> SearchResults:
        """Vector-similarity search (defaults: limit 5, min_score 0.3)."""
        self._check_open()
        return self.search_service.search_memories(query, options)

    def hybrid_search(self, query: str, options=None) -> SearchResults:
        """Fused vector + keyword search (defaults: limit 5, min_score 0.2, weights 0.6/0.4)."""
        self._check_open()
        return self.search_service.hybrid_search(query, options)

    def keyword_search(self, query: str, limit: int = 10, type_filter: str = None) -> SearchResults:
        self._check_open()
        return self.search_service.keyword_search(query, limit, type_filter)

    def get(self, record_id: str) -> Optional[MemoryRecord]:
        self._check_open()
        return next((record for record in self.records.scan() if record.id == record_id), None)

    def get_memories_by_type(self, memory_type: str) -> List[MemoryRecord]:
        self._check_open()
        return list(self.records.scan(memory_type))

    def get_all_memories(self, limit: int = 100, type_filter: str = None) -> List[MemoryRecord]:
        """Most recent memories first."""
        self._check_open()
        records = list(self.records.scan(type_filter))
        records.sort(key=lambda record: parse_timestamp(record.timestamp) or _OLDEST, reverse=True)
        return records[:limit]

    def delete(self, record_id: str) -> bool:
        """Remove a memory from the log, the keyword index and the cache."""
        self._check_open()
        found = self.records.delete(record_id)
        if found:
            self.keyword_index.remove(record_id)
            self.cache.discard(record_id)
            logger.log_memory_operation("deleted", record_id)
        return found

    def clear(self) -> Dict[str, Any]:
        self._check_open()
        self.records.clear()
        self.keyword_index.clear()
        self.cache.clear()
        return {"success": True}

    def export(self) -> List[Dict[str, Any]]:
        self._check_open()
        return [record.to_dict() for record in self.records.export()]

    def import_memories(self, memories: Iterable[Union[Dict[str, Any], MemoryRecord]],
                        dedupe: bool = False) -> Dict[str, int]:
        """Append already-embedded memories, e.g. from export().

        Without dedupe every entry is appended even if its id already exists, so
        importing a store's own export doubles it.

        Raises:
            ValueError: if any entry is not a valid record (nothing is written)
        """
        self._check_open()
        records = [
            memory if isinstance(memory, MemoryRecord) else MemoryRecord.from_dict(memory)
            for memory in memories
        ]
        imported = self.records.import_records(records, dedupe=dedupe)
        self.keyword_index.build(self.records.scan())
        logger.log_memory_operation("imported", "-", details={"imported": imported, "dedupe": dedupe})
        return {"imported": imported}

    def get_stats(self) -> MemoryStats:
        self._check_open()
        return maintenance.get_stats(self.records)

    def rebuild_keyword_index_from_disk(self) -> Dict[str, Any]:
        self._check_open()
        return maintenance.rebuild_keyword_index_from_disk(self.records, self.keyword_index)

    def configure_embeddings(self, options) -> EmbeddingOptions:
        self._check_open()
        return maintenance.configure_embeddings(self.embedding_provider, options)

    def check_integrity(self) -> MaintenanceReport:
        self._check_open()
        return maintenance.check_log_integrity(self.records)

    def compact(self) -> MaintenanceReport:
        self._check_open()
        report = maintenance.compact_log(self.records)
        self.keyword_index.build(self.records.scan())
        return report

    def remember_preference(self, key: str, value: Any, context: str = "") -> Dict[str, Any]:
        content = f"User preference: {key} = {value}. Context: {context}"
        return self.add(content, {"type": "preference", "key": key, "context": context})

    def recall_preferences(self, query: str) -> SearchResults:
        return self.search_memories(query, {"limit": 5, "type_filter": "preference"})

    def remember_project(self, project_name: str, details: Any) -> Dict[str, Any]:
        content = f'Project "{project_name}": {json.dumps(details, ensure_ascii=False, default=str)}'
        return self.add(content, {"type": "project", "projectName": project_name})

    def recall_projects(self, query: str) -> SearchResults:
        return self.search_memories(query, {"limit": 5, "type_filter": "project"})


def open_store(path: Union[str, Path] = None, embedding_provider: IEmbeddingProvider = None,
               **settings) -> MemoryStore:
    """Open a memory store on the given log file (MEMORY_PATH by default)."""
    return MemoryStore(path, embedding_provider=embedding_provider, **settings)
