"""
Structured operation logging for the memory engine.
Thin layer over stdlib logging so every store, search and embedding event
reads the same way in the log stream.
"""

import logging
from typing import Any, Dict, Optional


def _truncate(value: str, limit: int = 50) -> str:
    return value[:limit] + "..." if len(value) > limit else value


class StructuredLogger:
    """Structured logger for memory store, search and embedding operations."""

    def __init__(self, name: str = "hybrid_memory"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("degraded", "skipped"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_memory_operation(self, operation: str, record_id: str, content: str = None,
                             details: Dict[str, Any] = None, status: str = "success"):
        """Log a memory record operation (add, delete, import)."""
        log_details = {"record_id": record_id}
        if content is not None:
            log_details["content"] = _truncate(content)
        if details:
            log_details.update(details)

        self.log_operation(f"memory.{operation}", status, log_details)

    def log_search(self, kind: str, query: str, candidates: int, results: int,
                   degraded: bool = False, details: Dict[str, Any] = None):
        """Log one completed search."""
        log_details = {
            "query": _truncate(query),
            "candidates": candidates,
            "results": results,
        }
        if degraded:
            log_details["degraded"] = True
        if details:
            log_details.update(details)

        self.log_operation(f"search.{kind}", "degraded" if degraded else "success", log_details)

    def log_store_event(self, event: str, path: str, details: Dict[str, Any] = None, status: str = "success"):
        """Log a backing-log event (rewrite, clear, skipped lines)."""
        log_details = {"path": str(path)}
        if details:
            log_details.update(details)

        self.log_operation(f"store.{event}", status, log_details)

    def log_embedding_event(self, event: str, provider: str, details: Optional[Dict[str, Any]] = None,
                            status: str = "success"):
        """Log an embedding provider event (probe, fallback, failure)."""
        log_details = {"provider": provider}
        if details:
            log_details.update(details)

        self.log_operation(f"embedding.{event}", status, log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()
