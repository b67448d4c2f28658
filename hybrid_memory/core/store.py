"""
Durable append-only record log. One JSON object per line, UTF-8.

Writers (append, delete, clear) are serialized by an in-process lock and an advisory
lock file so a delete's read-filter-rewrite cannot lose a concurrent append.
Readers scan without locking; a delete swaps the whole file in with os.replace,
so a scan sees either the old log or the new one.
"""

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

try:
    import fcntl
except ImportError:  # not available on Windows; in-process locking still applies
    fcntl = None

from . import config
from .schema import MemoryRecord
from ..util.logging import logger


class StoreError(Exception):
    """Raised when the backing log cannot be read or written."""
    pass


class StoreClosedError(StoreError):
    """Raised when a closed store is used."""
    pass


def parse_line(line: bytes) -> Optional[MemoryRecord]:
    """Parse one persisted line; returns None for corrupt or partial lines."""
    try:
        return MemoryRecord.from_dict(json.loads(line))
    except ValueError:
        return None


def serialize(record: MemoryRecord) -> bytes:
    return (json.dumps(record.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


class RecordStore:
    """Append-only JSONL log of MemoryRecords."""

    def __init__(self, path, use_file_lock: bool = None):
        self.path = Path(path).expanduser()
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.use_file_lock = config.is_file_locking_enabled() if use_file_lock is None else use_file_lock
        self.last_scan_skipped = 0
        self._lock = threading.RLock()
        self._lock_depth = 0

    @contextmanager
    def _writer(self):
        """Hold the single-writer lock for the duration of a mutation."""
        with self._lock:
            self._lock_depth += 1
            try:
                if self._lock_depth > 1 or not self.use_file_lock or fcntl is None:
                    yield
                    return

                self._ensure_directory()
                with open(self.lock_path, "a") as lock_file:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                    try:
                        yield
                    finally:
                        fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            finally:
                self._lock_depth -= 1

    def _ensure_directory(self):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create directory for {self.path}: {e}") from e

    def _open_for_read(self):
        """Open the log for reading; None when it does not exist yet."""
        try:
            return open(self.path, "rb")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Cannot read {self.path}: {e}") from e

    def exists(self) -> bool:
        return self.path.exists()

    def size_bytes(self) -> int:
        return self.path.stat().st_size if self.path.exists() else 0

    def append(self, record: MemoryRecord) -> None:
        """Append one record and fsync before returning.

        Raises:
            StoreError: on any I/O failure; the record is then not in the log
        """
        self._write_lines([serialize(record)])

    def append_many(self, records: Iterable[MemoryRecord]) -> int:
        lines = [serialize(record) for record in records]
        if lines:
            self._write_lines(lines)
        return len(lines)

    def _write_lines(self, lines: List[bytes]) -> None:
        data = b"".join(lines)

        with self._writer():
            self._ensure_directory()
            try:
                with open(self.path, "a+b") as fh:
                    fh.seek(0, os.SEEK_END)
                    start = fh.tell()
                    if start > 0:
                        # A crash can leave a trailing line without its newline;
                        # never glue a new record onto it
                        fh.seek(start - 1)
                        if fh.read(1) != b"\n":
                            data = b"\n" + data
                    try:
                        fh.write(data)
                        fh.flush()
                        os.fsync(fh.fileno())
                    except OSError:
                        fh.truncate(start)
                        raise
            except OSError as e:
                logger.log_store_event("append", self.path, {"error": str(e)}, status="failed")
                raise StoreError(f"Failed to append to {self.path}: {e}") from e

    def iter_lines(self) -> Iterator[Tuple[int, bytes, Optional[MemoryRecord]]]:
        """Yield (line number, raw line, parsed record or None) for every non-blank line."""
        fh = self._open_for_read()
        if fh is None:
            return

        with fh:
            for line_number, raw in enumerate(fh, 1):
                line = raw.strip()
                if not line:
                    continue
                yield line_number, line, parse_line(line)

    def scan(self, type_filter: str = None) -> Iterator[MemoryRecord]:
        """Lazily yield every readable record in log order, optionally of one type.

        Corrupt lines are skipped, not fatal. Each call starts a fresh read.
        """
        skipped = 0
        for line_number, _, record in self.iter_lines():
            if record is None:
                skipped += 1
                logger.debug(f"Skipping unreadable line {line_number} in {self.path}")
                continue
            if type_filter and record.type != type_filter:
                continue
            yield record
        self.last_scan_skipped = skipped

    def count(self) -> int:
        return sum(1 for _ in self.scan())

    def delete(self, record_id: str) -> bool:
        """Rewrite the log without the given id. Returns False if no record had it."""
        with self._writer():
            kept = []
            found = False
            for _, line, record in self.iter_lines():
                if record is not None and record.id == record_id:
                    found = True
                    continue
                # Unreadable lines are carried over untouched
                kept.append(line + b"\n")

            if not found:
                return False

            self._rewrite(kept)

        logger.log_store_event("delete", self.path, {"record_id": record_id, "remaining_lines": len(kept)})
        return True

    def compact(self) -> int:
        """Rewrite the log dropping unreadable lines. Returns how many were dropped."""
        with self._writer():
            kept = []
            dropped = 0
            for _, line, record in self.iter_lines():
                if record is None:
                    dropped += 1
                    continue
                kept.append(line + b"\n")

            if dropped:
                self._rewrite(kept)

        logger.log_store_event("compact", self.path, {"dropped_lines": dropped})
        return dropped

    def _rewrite(self, lines: List[bytes]) -> None:
        """Atomically replace the log with the given lines (temp file + os.replace)."""
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(b"".join(lines))
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            logger.log_store_event("rewrite", self.path, {"error": str(e)}, status="failed")
            raise StoreError(f"Failed to rewrite {self.path}: {e}") from e

    def clear(self) -> None:
        """Remove the whole log. Safe to call when it does not exist."""
        with self._writer():
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                raise StoreError(f"Failed to clear {self.path}: {e}") from e
        logger.log_store_event("clear", self.path)

    def export(self) -> List[MemoryRecord]:
        return list(self.scan())

    def import_records(self, records: Iterable[MemoryRecord], dedupe: bool = False) -> int:
        """Append already-embedded records.

        By default every record gets a new line even when its id is already in the
        log, so importing an export of the same store doubles it. With dedupe=True,
        records whose id is already present (or repeated in the batch) are skipped.
        """
        with self._writer():
            records = list(records)
            if dedupe:
                seen = {record.id for record in self.scan()}
                unique = []
                for record in records:
                    if record.id in seen:
                        continue
                    seen.add(record.id)
                    unique.append(record)
                records = unique

            return self.append_many(records)
