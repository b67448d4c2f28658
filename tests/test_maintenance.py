"""
Tests for statistics, keyword index rebuild, integrity checks and compaction.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from hybrid_memory.core import maintenance
from hybrid_memory.core.keyword_index import KeywordIndex
from hybrid_memory.core.options import EmbeddingOptions
from hybrid_memory.core.schema import MemoryRecord
from hybrid_memory.core.store import serialize


BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_record(content, memory_type=None, minutes=0, embedding=None):
    metadata = {"type": memory_type} if memory_type else {}
    return MemoryRecord.create(content, embedding or [0.5, 0.5], metadata,
                               created_at=BASE_TIME + timedelta(minutes=minutes))


class TestGetStats:
    def test_empty_log(self, record_store):
        stats = maintenance.get_stats(record_store)
        assert stats.total == 0
        assert stats.by_type == {}
        assert stats.oldest_ts is None
        assert stats.newest_ts is None

    def test_counts_and_time_range(self, record_store):
        record_store.append(make_record("second", "preference", minutes=5))
        record_store.append(make_record("first", "preference", minutes=0))
        record_store.append(make_record("third", "project", minutes=10))

        stats = maintenance.get_stats(record_store)

        assert stats.total == 3
        assert stats.by_type == {"preference": 2, "project": 1}
        assert stats.oldest_ts == BASE_TIME.isoformat()
        assert stats.newest_ts == (BASE_TIME + timedelta(minutes=10)).isoformat()
        assert sum(stats.by_type.values()) == stats.total

    def test_missing_type_counts_as_general(self, record_store):
        record = MemoryRecord(id="legacy", content="old record", embedding=[1.0], metadata={})
        record_store.append(record)

        stats = maintenance.get_stats(record_store)
        assert stats.by_type == {"general": 1}
        assert stats.oldest_ts is None

    def test_to_dict(self, record_store):
        record_store.append(make_record("only", "general"))
        data = maintenance.get_stats(record_store).to_dict()
        assert set(data) == {"total", "by_type", "oldest_ts", "newest_ts"}


class TestRebuildKeywordIndex:
    def test_missing_file(self, record_store):
        index = KeywordIndex.from_records([make_record("stale entry")])
        result = maintenance.rebuild_keyword_index_from_disk(record_store, index)

        assert result == {"rebuilt": False, "indexed_count": 0}
        assert len(index) == 0

    def test_rebuild_is_idempotent(self, record_store):
        for i in range(3):
            record_store.append(make_record(f"memory about topic{i}"))
        index = KeywordIndex()

        first = maintenance.rebuild_keyword_index_from_disk(record_store, index)
        hits_first = index.search("memory topic1")
        second = maintenance.rebuild_keyword_index_from_disk(record_store, index)

        assert first == second == {"rebuilt": True, "indexed_count": 3}
        assert index.search("memory topic1") == hits_first

    def test_rebuild_sees_external_changes(self, record_store):
        index = KeywordIndex()
        maintenance.rebuild_keyword_index_from_disk(record_store, index)

        record_store.append(make_record("written by another process"))
        result = maintenance.rebuild_keyword_index_from_disk(record_store, index)

        assert result["indexed_count"] == 1
        assert index.search("another process")


class TestConfigureEmbeddings:
    def test_passes_validated_settings(self):
        provider = MagicMock()
        settings = maintenance.configure_embeddings(provider, {"host": "http://gpu-box:11434/", "model": "all-minilm"})

        assert isinstance(settings, EmbeddingOptions)
        provider.configure.assert_called_once_with(settings)
        assert settings.host == "http://gpu-box:11434"

    def test_rejects_malformed_settings(self):
        provider = MagicMock()
        with pytest.raises(ValidationError):
            maintenance.configure_embeddings(provider, {"max_retries": 0})
        provider.configure.assert_not_called()


class TestIntegrityCheck:
    def test_missing_file(self, record_store):
        report = maintenance.check_log_integrity(record_store)
        assert report.metadata["exists"] is False
        assert report.issues_found == 0

    def test_clean_log(self, record_store):
        record_store.append(make_record("clean one"))
        record_store.append(make_record("clean two"))

        report = maintenance.check_log_integrity(record_store)

        assert report.issues_found == 0
        assert report.metadata["records"] == 2
        assert report.metadata["embedding_dimensions"] == {2: 2}
        assert report.recommendations == []

    def test_reports_problems(self, record_store, log_path):
        duplicate = make_record("imported twice")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_bytes(
            serialize(duplicate)
            + b"not json\n"
            + serialize(duplicate)
            + serialize(make_record("wider embedding", embedding=[1.0, 0.0, 0.0]))
        )

        report = maintenance.check_log_integrity(record_store)

        assert report.metadata["total_lines"] == 4
        assert report.metadata["corrupt_lines"] == [2]
        assert report.metadata["duplicate_ids"] == [duplicate.id]
        assert report.metadata["embedding_dimensions"] == {2: 2, 3: 1}
        assert report.issues_found == 3
        assert len(report.recommendations) == 3
        assert report.to_dict()["operation"] == "log_integrity_check"


class TestCompaction:
    def test_compact_log(self, record_store, log_path):
        good = make_record("survivor")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_bytes(b"junk\n" + serialize(good))

        report = maintenance.compact_log(record_store)

        assert report.issues_resolved == 1
        assert report.actions_taken == ["Dropped 1 unreadable line(s)"]
        assert list(record_store.scan()) == [good]
        assert maintenance.check_log_integrity(record_store).issues_found == 0
