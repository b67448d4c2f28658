"""
Record types shared by the store, the keyword index and the search service.
"""

import hashlib
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import DEFAULT_MEMORY_TYPE

EXACT = "Exact"
PARTIAL = "Partial"


_id_sequence = itertools.count()


def generate_memory_id(content: str, created_at: datetime) -> str:
    """Derive a record id from content and creation instant (sha256, 16 hex chars).

    A process-wide sequence number is mixed in so the same content added twice
    within one clock tick still gets two ids.
    """
    seed = f"{content}{created_at.isoformat()}{next(_id_sequence)}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:16]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; returns None when it cannot be read."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class MemoryRecord:
    id: str
    content: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.metadata.get("type") or DEFAULT_MEMORY_TYPE

    @property
    def timestamp(self) -> Optional[str]:
        return self.metadata.get("timestamp")

    @classmethod
    def create(cls, content: str, embedding: List[float], metadata: Dict[str, Any] = None,
               created_at: datetime = None) -> "MemoryRecord":
        """Build a new record, stamping id, type and timestamp."""
        created_at = created_at or utc_now()
        meta = dict(metadata or {})
        meta["timestamp"] = created_at.isoformat()
        meta["type"] = meta.get("type") or DEFAULT_MEMORY_TYPE
        return cls(
            id=generate_memory_id(content, created_at),
            content=content,
            embedding=[float(x) for x in embedding],
            metadata=meta,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "embedding": list(self.embedding),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRecord":
        """Build a record from its persisted form.

        Raises:
            ValueError: if the mapping is missing id, content or a list embedding
        """
        if not isinstance(data, dict):
            raise ValueError("memory record must be a JSON object")

        record_id = data.get("id")
        content = data.get("content")
        embedding = data.get("embedding")
        metadata = data.get("metadata") or {}

        if not isinstance(record_id, str) or not record_id:
            raise ValueError("memory record is missing an id")
        if not isinstance(content, str):
            raise ValueError(f"memory record {record_id} is missing content")
        if not isinstance(embedding, list):
            raise ValueError(f"memory record {record_id} has no embedding list")
        if any(isinstance(x, bool) or not isinstance(x, (int, float)) for x in embedding):
            raise ValueError(f"memory record {record_id} has non-numeric embedding values")
        if not isinstance(metadata, dict):
            raise ValueError(f"memory record {record_id} has non-object metadata")

        return cls(id=record_id, content=content, embedding=embedding, metadata=dict(metadata))


@dataclass
class ScoredRecord:
    """A record annotated with the scores that ranked it."""
    record: MemoryRecord
    score: float
    vector_score: float = 0.0
    keyword_score: float = 0.0
    match_kind: Optional[str] = None

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def content(self) -> str:
        return self.record.content

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.record.metadata

    def to_dict(self) -> Dict[str, Any]:
        data = self.record.to_dict()
        data.update({
            "score": self.score,
            "vector_score": self.vector_score,
            "keyword_score": self.keyword_score,
            "match_kind": self.match_kind,
        })
        return data


class SearchResults(list):
    """Ranked list of ScoredRecord carrying a degraded-mode flag.

    `degraded` is True when the query embedding could not be produced and
    ranking fell back to keyword scores only.
    """

    def __init__(self, items=(), degraded: bool = False, degraded_reason: Optional[str] = None):
        super().__init__(items)
        self.degraded = degraded
        self.degraded_reason = degraded_reason


@dataclass
class MemoryStats:
    total: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    oldest_ts: Optional[str] = None
    newest_ts: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_type": dict(self.by_type),
            "oldest_ts": self.oldest_ts,
            "newest_ts": self.newest_ts,
        }
