"""
Tests for the append-only JSONL record log.
"""

import json
import threading

import pytest

from hybrid_memory.core.schema import MemoryRecord
from hybrid_memory.core.store import RecordStore, StoreError, parse_line, serialize


def make_record(content, memory_type="general", embedding=None):
    return MemoryRecord.create(content, embedding or [1.0, 0.0, 0.5], {"type": memory_type})


def write_raw(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode("utf-8"))


class TestParsing:
    def test_serialize_is_one_line(self):
        line = serialize(make_record("multi\nline content"))
        assert line.endswith(b"\n")
        assert line.count(b"\n") == 1

    def test_parse_round_trip(self):
        record = make_record("café ☕", "preference")
        parsed = parse_line(serialize(record).strip())
        assert parsed == record

    def test_non_ascii_is_stored_as_utf8(self):
        assert "café".encode("utf-8") in serialize(make_record("café"))

    @pytest.mark.parametrize("line", [
        b"not json",
        b'{"id": "partial"',
        b'[1, 2, 3]',
        b'{"id": "x", "content": "no embedding"}',
        b'{"id": "x", "content": "bad", "embedding": ["a"]}',
        b'{"content": "no id", "embedding": []}',
        b'\xff\xfe',
    ])
    def test_corrupt_lines_parse_to_none(self, line):
        assert parse_line(line) is None


class TestRecordStore:
    def test_missing_file_is_empty(self, record_store):
        assert record_store.exists() is False
        assert list(record_store.scan()) == []
        assert record_store.count() == 0
        assert record_store.size_bytes() == 0

    def test_append_creates_directory_and_file(self, record_store, log_path):
        record = make_record("first memory")
        record_store.append(record)

        assert log_path.exists()
        assert list(record_store.scan()) == [record]

    def test_scan_keeps_log_order(self, record_store):
        records = [make_record(f"memory number {i}") for i in range(5)]
        for record in records:
            record_store.append(record)
        assert [r.id for r in record_store.scan()] == [r.id for r in records]

    def test_each_line_is_a_json_object(self, record_store, log_path):
        record_store.append(make_record("one"))
        record_store.append(make_record("two"))
        lines = log_path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert all(isinstance(json.loads(line), dict) for line in lines)

    def test_scan_is_fresh_each_call(self, record_store):
        record_store.append(make_record("one"))
        first = list(record_store.scan())
        record_store.append(make_record("two"))
        assert len(list(record_store.scan())) == len(first) + 1

    def test_type_filter(self, record_store):
        record_store.append(make_record("likes tea", "preference"))
        record_store.append(make_record("standup at nine", "schedule"))
        record_store.append(make_record("likes coffee", "preference"))

        assert [r.content for r in record_store.scan("preference")] == ["likes tea", "likes coffee"]
        assert list(record_store.scan("missing")) == []

    def test_corrupt_lines_are_skipped(self, record_store, log_path):
        good = make_record("good record")
        write_raw(log_path, serialize(good).decode("utf-8") + "not json at all\n\n" + '{"id": 1}\n')

        assert list(record_store.scan()) == [good]
        assert record_store.last_scan_skipped == 2

    def test_append_after_partial_trailing_line(self, record_store, log_path):
        """A crash mid-write leaves a line without newline; the next append starts a fresh line."""
        good = make_record("good record")
        write_raw(log_path, serialize(good).decode("utf-8") + '{"id": "torn", "content": "hal')

        fresh = make_record("fresh record")
        record_store.append(fresh)

        assert [r.id for r in record_store.scan()] == [good.id, fresh.id]
        assert record_store.last_scan_skipped == 1

    def test_append_many(self, record_store):
        assert record_store.append_many([make_record("a one"), make_record("b two")]) == 2
        assert record_store.append_many([]) == 0
        assert record_store.count() == 2

    def test_append_failure_raises_store_error(self, tmp_path):
        blocker = tmp_path / "not_a_directory"
        blocker.write_text("file in the way")
        store = RecordStore(blocker / "memories.jsonl")

        with pytest.raises(StoreError):
            store.append(make_record("cannot be written"))

    def test_delete(self, record_store):
        keep = make_record("keep me")
        drop = make_record("drop me")
        record_store.append(keep)
        record_store.append(drop)

        assert record_store.delete(drop.id) is True
        assert [r.id for r in record_store.scan()] == [keep.id]

    def test_delete_missing_id_leaves_file_untouched(self, record_store, log_path):
        record_store.append(make_record("only one"))
        before = log_path.read_bytes()

        assert record_store.delete("does-not-exist") is False
        assert log_path.read_bytes() == before

    def test_delete_on_missing_file(self, record_store):
        assert record_store.delete("anything") is False

    def test_delete_removes_every_line_with_the_id(self, record_store):
        record = make_record("imported twice")
        record_store.append(record)
        record_store.append(record)

        assert record_store.delete(record.id) is True
        assert record_store.count() == 0

    def test_delete_preserves_unreadable_lines(self, record_store, log_path):
        keep = make_record("keep me")
        drop = make_record("drop me")
        write_raw(log_path, serialize(keep).decode("utf-8") + "garbage line\n" + serialize(drop).decode("utf-8"))

        record_store.delete(drop.id)

        assert "garbage line" in log_path.read_text(encoding="utf-8")
        assert list(record_store.scan()) == [keep]

    def test_delete_leaves_no_temp_files(self, record_store, log_path):
        record = make_record("short lived")
        record_store.append(record)
        record_store.delete(record.id)

        leftovers = [p.name for p in log_path.parent.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_clear_is_idempotent(self, record_store, log_path):
        record_store.append(make_record("to be cleared"))
        record_store.clear()
        assert not log_path.exists()

        record_store.clear()
        assert record_store.count() == 0

    def test_compact_drops_unreadable_lines(self, record_store, log_path):
        good = make_record("good record")
        write_raw(log_path, "junk\n" + serialize(good).decode("utf-8") + "{broken\n")

        assert record_store.compact() == 2
        assert log_path.read_bytes() == serialize(good)
        assert record_store.compact() == 0

    def test_export_and_import(self, record_store, tmp_path):
        records = [make_record("alpha memory"), make_record("beta memory")]
        record_store.append_many(records)

        other = RecordStore(tmp_path / "other.jsonl")
        assert other.import_records(record_store.export()) == 2
        assert list(other.scan()) == records

    def test_import_without_dedupe_appends_duplicates(self, record_store):
        record_store.append_many([make_record("alpha memory"), make_record("beta memory")])
        record_store.import_records(record_store.export())
        assert record_store.count() == 4

    def test_import_with_dedupe_skips_known_ids(self, record_store):
        existing = make_record("already here")
        record_store.append(existing)
        new = make_record("brand new")

        imported = record_store.import_records([existing, new, new], dedupe=True)

        assert imported == 1
        assert [r.id for r in record_store.scan()] == [existing.id, new.id]

    def test_concurrent_appends_are_not_lost(self, record_store):
        def writer(worker):
            for i in range(25):
                record_store.append(make_record(f"worker {worker} memory {i}"))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert record_store.count() == 200
        assert record_store.last_scan_skipped == 0

    def test_delete_does_not_lose_concurrent_appends(self, record_store):
        victims = [make_record(f"victim {i}") for i in range(20)]
        record_store.append_many(victims)

        def appender():
            for i in range(50):
                record_store.append(make_record(f"survivor {i}"))

        def deleter():
            for victim in victims:
                record_store.delete(victim.id)

        threads = [threading.Thread(target=appender), threading.Thread(target=deleter)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        contents = [r.content for r in record_store.scan()]
        assert len(contents) == 50
        assert all(content.startswith("survivor") for content in contents)

    def test_file_lock_can_be_disabled(self, log_path):
        store = RecordStore(log_path, use_file_lock=False)
        store.append(make_record("no lock file"))
        assert not store.lock_path.exists()
        assert store.count() == 1

    def test_file_lock_uses_sidecar(self, log_path):
        store = RecordStore(log_path, use_file_lock=True)
        store.append(make_record("with lock file"))
        assert store.lock_path.name == "memories.jsonl.lock"
