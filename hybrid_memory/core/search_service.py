"""
Query coordination: semantic, keyword and hybrid retrieval over the record log.

Every query scans the log, so results always reflect what is on disk. The keyword
index used for a query is built from that same scan and thrown away afterwards.
If the query cannot be embedded (provider down, error or timeout), ranking falls
back to keyword scores and the results are flagged as degraded.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Dict, List, Optional, Tuple

from . import config
from .keyword_index import KeywordHit, KeywordIndex
from .options import HybridSearchOptions, SearchOptions, coerce_options
from .schema import MemoryRecord, ScoredRecord, SearchResults
from .store import RecordStore
from ..util.logging import logger
from ..vector.cache import EmbeddingCache
from ..vector.embeddings import EmbeddingError, IEmbeddingProvider
from ..vector.similarity import cosine_similarity, fuse


class SearchService:
    """Single entry point for retrieval over one RecordStore."""

    def __init__(self, store: RecordStore, embedding_provider: IEmbeddingProvider,
                 cache: EmbeddingCache = None, embed_timeout: float = None):
        self.store = store
        self.embedding_provider = embedding_provider
        self.cache = cache if cache is not None else EmbeddingCache(config.EMBED_CACHE_SIZE)
        self.embed_timeout = embed_timeout if embed_timeout is not None else config.get_embed_timeout()

    def embed_query(self, query: str) -> Tuple[Optional[List[float]], Optional[str]]:
        """Embed the query within embed_timeout.

        Returns:
            (embedding, None) on success, (None, reason) when the provider is
            unavailable, fails or times out
        """
        # One worker per query: a call that hangs past the timeout only holds its own thread
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="query-embed")
        future = executor.submit(self._embed, query)
        try:
            return future.result(timeout=self.embed_timeout), None
        except FutureTimeout:
            reason = f"embedding timed out after {self.embed_timeout}s"
        except EmbeddingError as e:
            reason = str(e)
        except Exception as e:
            reason = f"embedding failed: {e}"
        finally:
            executor.shutdown(wait=False)

        logger.log_embedding_event("query", self.embedding_provider.name, {"reason": reason}, status="degraded")
        return None, reason

    def _embed(self, query: str) -> List[float]:
        if not self.embedding_provider.is_available():
            raise EmbeddingError("embedding provider unavailable")
        return self.embedding_provider.embed_text(query)

    def _vector_score(self, query_embedding, record: MemoryRecord) -> float:
        if query_embedding is None or len(query_embedding) != len(record.embedding):
            return 0.0
        return cosine_similarity(query_embedding, self.cache.get_or_load(record.id, record.embedding))

    def search_memories(self, query: str, options=None) -> SearchResults:
        """Rank records by vector similarity alone.

        Without a query embedding, records are ranked by keyword overlap instead
        and the results are marked degraded.
        """
        opts = coerce_options(options, SearchOptions)
        records = list(self.store.scan(opts.type_filter))
        query_embedding, reason = self.embed_query(query)

        keyword_hits: Dict[str, KeywordHit] = {}
        if query_embedding is None:
            index = KeywordIndex.from_records(records)
            keyword_hits = {hit.id: hit for hit in index.search(query, len(records), opts.type_filter)}

        scored = []
        for record in records:
            if query_embedding is not None:
                vector_score = self._vector_score(query_embedding, record)
                scored.append(ScoredRecord(record, score=vector_score, vector_score=vector_score))
                continue

            hit = keyword_hits.get(record.id)
            if hit is not None:
                scored.append(ScoredRecord(record, score=hit.score, keyword_score=hit.score,
                                           match_kind=hit.match_kind))

        results = self._rank(scored, opts.min_score, opts.limit, reason)
        logger.log_search("semantic", query, len(records), len(results), results.degraded)
        return results

    def hybrid_search(self, query: str, options=None) -> SearchResults:
        """Rank records by a weighted fusion of vector similarity and keyword overlap."""
        opts = coerce_options(options, HybridSearchOptions)

        records = list(self.store.scan(opts.type_filter))
        index = KeywordIndex.from_records(records)
        keyword_hits = {hit.id: hit for hit in index.search(query, opts.limit * 2, opts.type_filter)}
        query_embedding, reason = self.embed_query(query)

        scored = []
        for record in records:
            vector_score = self._vector_score(query_embedding, record)
            hit = keyword_hits.get(record.id)
            keyword_score = hit.score if hit is not None else 0.0
            scored.append(ScoredRecord(
                record,
                score=fuse(vector_score, keyword_score, opts.vector_weight, opts.keyword_weight),
                vector_score=vector_score,
                keyword_score=keyword_score,
                match_kind=hit.match_kind if hit is not None else None,
            ))

        results = self._rank(scored, opts.min_score, opts.limit, reason)
        logger.log_search("hybrid", query, len(records), len(results), results.degraded,
                          {"keyword_hits": len(keyword_hits)})
        return results

    def keyword_search(self, query: str, limit: int = 10, type_filter: str = None) -> SearchResults:
        """Rank records by keyword overlap only."""
        records = {}
        for record in self.store.scan(type_filter):
            records.setdefault(record.id, record)

        index = KeywordIndex.from_records(records.values())
        results = SearchResults(
            ScoredRecord(records[hit.id], score=hit.score, keyword_score=hit.score, match_kind=hit.match_kind)
            for hit in index.search(query, limit, type_filter)
        )
        logger.log_search("keyword", query, len(records), len(results))
        return results

    @staticmethod
    def _rank(scored: List[ScoredRecord], min_score: float, limit: int,
              degraded_reason: Optional[str]) -> SearchResults:
        kept = [item for item in scored if item.score >= min_score]
        # list.sort is stable: equal scores keep log order
        kept.sort(key=lambda item: item.score, reverse=True)
        return SearchResults(kept[:limit], degraded=degraded_reason is not None,
                             degraded_reason=degraded_reason)
