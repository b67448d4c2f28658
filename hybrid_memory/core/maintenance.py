"""
Administrative operations over the record log: statistics, keyword index rebuild,
embedding configuration, integrity checks and compaction.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import DEFAULT_MEMORY_TYPE
from .keyword_index import KeywordIndex
from .options import EmbeddingOptions, coerce_options
from .schema import MemoryStats, parse_timestamp
from .store import RecordStore
from ..util.logging import logger


@dataclass
class MaintenanceReport:
    """Maintenance operation report."""
    operation: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    issues_found: int = 0
    issues_resolved: int = 0
    actions_taken: List[str] = None
    recommendations: List[str] = None
    errors: List[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.actions_taken is None:
            self.actions_taken = []
        if self.recommendations is None:
            self.recommendations = []
        if self.errors is None:
            self.errors = []
        if self.metadata is None:
            self.metadata = {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "issues_found": self.issues_found,
            "issues_resolved": self.issues_resolved,
            "actions_taken": self.actions_taken,
            "recommendations": self.recommendations,
            "errors": self.errors,
            "metadata": self.metadata
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


def get_stats(store: RecordStore) -> MemoryStats:
    """Count records by type and find the oldest and newest timestamps in one pass."""
    stats = MemoryStats()
    oldest = newest = None

    for record in store.scan():
        stats.total += 1
        memory_type = record.metadata.get("type") or DEFAULT_MEMORY_TYPE
        stats.by_type[memory_type] = stats.by_type.get(memory_type, 0) + 1

        ts = parse_timestamp(record.timestamp)
        if ts is None:
            continue
        if oldest is None or ts < oldest:
            oldest = ts
            stats.oldest_ts = record.timestamp
        if newest is None or ts > newest:
            newest = ts
            stats.newest_ts = record.timestamp

    return stats


def rebuild_keyword_index_from_disk(store: RecordStore, index: KeywordIndex) -> Dict[str, Any]:
    """Re-derive the keyword index from the log, e.g. after another process changed it."""
    if not store.exists():
        index.clear()
        return {"rebuilt": False, "indexed_count": 0}

    indexed_count = index.build(store.scan())
    logger.log_operation("keyword_index.rebuild", "success", {
        "indexed_count": indexed_count,
        "tokens": index.token_count,
        "skipped_lines": store.last_scan_skipped,
    })
    return {"rebuilt": True, "indexed_count": indexed_count}


def configure_embeddings(provider, options) -> EmbeddingOptions:
    """Validate embedding settings for shape and hand them to the provider.

    Raises:
        pydantic.ValidationError: if the options are malformed
    """
    settings = coerce_options(options, EmbeddingOptions)
    provider.configure(settings)
    return settings


def check_log_integrity(store: RecordStore) -> MaintenanceReport:
    """Scan every line of the log and report corrupt lines, duplicate ids and dimensions."""
    report = MaintenanceReport(
        operation="log_integrity_check",
        started_at=datetime.now()
    )

    if not store.exists():
        report.metadata["exists"] = False
        report.completed_at = datetime.now()
        return report

    total_lines = 0
    corrupt_lines = []
    seen_ids = set()
    duplicate_ids = set()
    dimensions: Dict[int, int] = {}

    for line_number, _, record in store.iter_lines():
        total_lines += 1
        if record is None:
            corrupt_lines.append(line_number)
            continue
        if record.id in seen_ids:
            duplicate_ids.add(record.id)
        seen_ids.add(record.id)
        dim = len(record.embedding)
        dimensions[dim] = dimensions.get(dim, 0) + 1

    report.metadata.update({
        "exists": True,
        "file_size": store.size_bytes(),
        "total_lines": total_lines,
        "records": total_lines - len(corrupt_lines),
        "corrupt_lines": corrupt_lines,
        "duplicate_ids": sorted(duplicate_ids),
        "embedding_dimensions": dimensions,
    })

    if corrupt_lines:
        report.issues_found += len(corrupt_lines)
        report.recommendations.append(
            f"{len(corrupt_lines)} unreadable line(s) are skipped on every scan; run compact_log to drop them"
        )
    if duplicate_ids:
        report.issues_found += len(duplicate_ids)
        report.recommendations.append(
            f"{len(duplicate_ids)} id(s) appear more than once, usually from repeated imports; "
            "delete and re-import with dedupe=True"
        )
    if len(dimensions) > 1:
        report.issues_found += 1
        report.recommendations.append(
            "Records carry embeddings of different lengths; mismatched records score 0 on vector similarity"
        )

    report.completed_at = datetime.now()
    logger.log_operation("maintenance.integrity_check", "success", {
        "total_lines": total_lines, "issues_found": report.issues_found
    })
    return report


def compact_log(store: RecordStore) -> MaintenanceReport:
    """Atomically rewrite the log without its unreadable lines."""
    report = MaintenanceReport(
        operation="log_compaction",
        started_at=datetime.now()
    )

    dropped = store.compact()
    report.issues_found = dropped
    report.issues_resolved = dropped
    if dropped:
        report.actions_taken.append(f"Dropped {dropped} unreadable line(s)")
    report.metadata["file_size"] = store.size_bytes()
    report.completed_at = datetime.now()
    return report
