"""
Configuration for the hybrid memory engine.
Values come from the environment (optionally a .env file); every setting has a default
so the store works out of the box with the local hash embedding provider.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Backing log configuration
MEMORY_PATH = os.getenv("MEMORY_PATH", str(Path.home() / ".hybrid-memory" / "memories.jsonl"))
FILE_LOCKING_ENABLED = os.getenv("FILE_LOCKING_ENABLED", "true").lower() == "true"

# Embedding provider configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|ollama|sentence-transformers
EMBED_FALLBACK = os.getenv("EMBED_FALLBACK", "true").lower() == "true"
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
SENTENCE_TRANSFORMER_MODEL = os.getenv("SENTENCE_TRANSFORMER_MODEL", "all-mpnet-base-v2")
EMBED_TIMEOUT_SEC = float(os.getenv("EMBED_TIMEOUT_SEC", "30"))
EMBED_MAX_RETRIES = int(os.getenv("EMBED_MAX_RETRIES", "3"))
EMBED_RETRY_DELAY_MS = int(os.getenv("EMBED_RETRY_DELAY_MS", "300"))
EMBED_MAX_RETRY_DELAY_MS = int(os.getenv("EMBED_MAX_RETRY_DELAY_MS", "5000"))
EMBED_MAX_TEXT_LENGTH = int(os.getenv("EMBED_MAX_TEXT_LENGTH", "8000"))
EMBED_CACHE_SIZE = int(os.getenv("EMBED_CACHE_SIZE", "500"))
PROBE_INTERVAL_SEC = int(os.getenv("PROBE_INTERVAL_SEC", "60"))

# Search defaults
SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "5"))
SEARCH_MIN_SCORE = float(os.getenv("SEARCH_MIN_SCORE", "0.3"))
HYBRID_MIN_SCORE = float(os.getenv("HYBRID_MIN_SCORE", "0.2"))
VECTOR_WEIGHT = float(os.getenv("VECTOR_WEIGHT", "0.6"))
KEYWORD_WEIGHT = float(os.getenv("KEYWORD_WEIGHT", "0.4"))
KEYWORD_MIN_TOKEN_LENGTH = 3

# Preferred Ollama embedding models, best first
OLLAMA_EMBEDDING_MODELS = ["nomic-embed-text", "mxbai-embed-large", "all-minilm"]

DEFAULT_MEMORY_TYPE = "general"

VERSION = "1.0.0"


def get_memory_path() -> Path:
    """Get the backing log path, honouring runtime changes to MEMORY_PATH."""
    return Path(os.getenv("MEMORY_PATH", MEMORY_PATH)).expanduser()


def get_embed_provider_name() -> str:
    """Get the configured embedding provider name (hash|ollama|sentence-transformers)."""
    return os.getenv("EMBED_PROVIDER", EMBED_PROVIDER).lower()


def is_embed_fallback_enabled() -> bool:
    """Check if remote providers should fall back to the local hash embedding."""
    return os.getenv("EMBED_FALLBACK", "true").lower() == "true"


def is_file_locking_enabled() -> bool:
    """Check if cross-process advisory locking is enabled."""
    return os.getenv("FILE_LOCKING_ENABLED", "true").lower() == "true"


def get_embed_timeout() -> float:
    """Get the query embedding timeout in seconds."""
    return float(os.getenv("EMBED_TIMEOUT_SEC", str(EMBED_TIMEOUT_SEC)))


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_memory_directory(path: Path = None):
    """Ensure the backing log directory exists."""
    (path or get_memory_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if get_embed_provider_name() not in ["hash", "ollama", "sentence-transformers"]:
        issues.append(f"Invalid EMBED_PROVIDER: {get_embed_provider_name()}")

    if EMBED_DIM < 1:
        issues.append("EMBED_DIM must be >= 1")

    if EMBED_TIMEOUT_SEC <= 0:
        issues.append("EMBED_TIMEOUT_SEC must be > 0")

    if EMBED_MAX_RETRIES < 1:
        issues.append("EMBED_MAX_RETRIES must be >= 1")

    if EMBED_CACHE_SIZE < 1:
        issues.append("EMBED_CACHE_SIZE must be >= 1")

    if SEARCH_LIMIT < 1:
        issues.append("SEARCH_LIMIT must be >= 1")

    for name, value in (("SEARCH_MIN_SCORE", SEARCH_MIN_SCORE), ("HYBRID_MIN_SCORE", HYBRID_MIN_SCORE)):
        if not 0.0 <= value <= 1.0:
            issues.append(f"{name} must be between 0 and 1")

    if VECTOR_WEIGHT < 0 or KEYWORD_WEIGHT < 0:
        issues.append("VECTOR_WEIGHT and KEYWORD_WEIGHT must be >= 0")

    return issues
