"""
In-memory inverted keyword index over memory content.
Derived entirely from the backing log and rebuildable at any time; a stale or
empty index only weakens keyword scores, never the stored data.
"""

import re
from typing import Dict, Iterable, List, NamedTuple, Optional, Set

from .config import DEFAULT_MEMORY_TYPE, KEYWORD_MIN_TOKEN_LENGTH
from .schema import EXACT, PARTIAL, MemoryRecord

_NON_ALNUM = re.compile(r"[^\w\s]|_")


def tokenize(text: str) -> List[str]:
    """Lowercase, remove non-alphanumerics, split on whitespace, drop tokens of 2 chars or less."""
    cleaned = _NON_ALNUM.sub("", (text or "").lower())
    return [token for token in cleaned.split() if len(token) >= KEYWORD_MIN_TOKEN_LENGTH]


class KeywordHit(NamedTuple):
    id: str
    score: float
    match_kind: str
    matches: int


class KeywordIndex:
    """Token -> set of record ids, plus the reverse maps needed to remove an id."""

    def __init__(self):
        self._postings: Dict[str, Set[str]] = {}
        self._tokens_by_id: Dict[str, Set[str]] = {}
        self._type_by_id: Dict[str, str] = {}
        # Insertion order of ids, used to break ties deterministically
        self._order: Dict[str, int] = {}
        self._next_position = 0

    @classmethod
    def from_records(cls, records: Iterable[MemoryRecord]) -> "KeywordIndex":
        index = cls()
        index.build(records)
        return index

    def build(self, records: Iterable[MemoryRecord]) -> int:
        """Replace the index contents with the given records. Returns how many records were read."""
        self.clear()
        count = 0
        for record in records:
            self.add(record)
            count += 1
        return count

    def add(self, record: MemoryRecord) -> None:
        if record.id in self._tokens_by_id:
            # Same id seen again (duplicate import); keep a single entry
            self.remove(record.id)

        tokens = set(tokenize(record.content))
        for token in tokens:
            self._postings.setdefault(token, set()).add(record.id)

        self._tokens_by_id[record.id] = tokens
        self._type_by_id[record.id] = record.metadata.get("type") or DEFAULT_MEMORY_TYPE
        self._order[record.id] = self._next_position
        self._next_position += 1

    def remove(self, record_id: str) -> bool:
        """Excise every posting for one id. Returns False if the id was not indexed."""
        tokens = self._tokens_by_id.pop(record_id, None)
        if tokens is None:
            return False

        for token in tokens:
            ids = self._postings.get(token)
            if ids is None:
                continue
            ids.discard(record_id)
            if not ids:
                del self._postings[token]

        self._type_by_id.pop(record_id, None)
        self._order.pop(record_id, None)
        return True

    def search(self, query: str, limit: int = 10, type_filter: Optional[str] = None) -> List[KeywordHit]:
        """Score ids by the fraction of query tokens found in their content.

        Results are ordered by match count (ties by insertion order) and cut to `limit`.
        """
        query_tokens = list(dict.fromkeys(tokenize(query)))
        if not query_tokens or limit < 1:
            return []

        counts: Dict[str, int] = {}
        for token in query_tokens:
            for record_id in self._postings.get(token, ()):
                if type_filter and self._type_by_id.get(record_id) != type_filter:
                    continue
                counts[record_id] = counts.get(record_id, 0) + 1

        total = len(query_tokens)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], self._order[item[0]]))
        return [
            KeywordHit(
                id=record_id,
                score=matches / total,
                match_kind=EXACT if matches == total else PARTIAL,
                matches=matches,
            )
            for record_id, matches in ranked[:limit]
        ]

    def tokens_for(self, record_id: str) -> Set[str]:
        return set(self._tokens_by_id.get(record_id, ()))

    def clear(self) -> None:
        self._postings.clear()
        self._tokens_by_id.clear()
        self._type_by_id.clear()
        self._order.clear()
        self._next_position = 0

    @property
    def token_count(self) -> int:
        return len(self._postings)

    def __len__(self) -> int:
        return len(self._tokens_by_id)

    def __contains__(self, record_id: str) -> bool:
        return record_id in self._tokens_by_id
