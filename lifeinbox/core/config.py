"""
Retrieval core configuration.
Every setting comes from the environment (optionally a .env file) with a safe default.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("DB_PATH", "./data/lifeinbox.db")

# Embedding configuration
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence_transformers|ollama
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-mpnet-base-v2")
EMBEDDING_MODEL_VERSION = os.getenv("EMBEDDING_MODEL_VERSION")  # unset: derived from the provider
EMBED_DIMENSION = int(os.getenv("EMBED_DIMENSION", "384"))
EMBED_TIMEOUT_SEC = float(os.getenv("EMBED_TIMEOUT_SEC", "10"))

# Natural-language understanding (query enhancement)
NLU_ENABLED = os.getenv("NLU_ENABLED", "false").lower() == "true"
OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:latest")
OLLAMA_EMBED_MODEL = os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text")
NLU_TIMEOUT_SEC = float(os.getenv("NLU_TIMEOUT_SEC", "8"))

# Matching and ranking
LEXICAL_MIN_SCORE = float(os.getenv("LEXICAL_MIN_SCORE", "0.3"))
SEMANTIC_MIN_SIMILARITY = float(os.getenv("SEMANTIC_MIN_SIMILARITY", "0.3"))
SEMANTIC_TOP_K = int(os.getenv("SEMANTIC_TOP_K", "50"))
CANDIDATE_POOL_LIMIT = int(os.getenv("CANDIDATE_POOL_LIMIT", "1000"))

# Pagination sessions
SEARCH_PAGE_SIZE = int(os.getenv("SEARCH_PAGE_SIZE", "5"))
SESSION_TIMEOUT_SEC = int(os.getenv("SESSION_TIMEOUT_SEC", "600"))  # 10 minutes
SESSION_SWEEP_INTERVAL_SEC = int(os.getenv("SESSION_SWEEP_INTERVAL_SEC", "300"))
DEFAULT_CHANNEL = os.getenv("DEFAULT_CHANNEL", "telegram")

# Background work
HEARTBEAT_ENABLED = os.getenv("HEARTBEAT_ENABLED", "false").lower() == "true"
REINDEX_BATCH_SIZE = int(os.getenv("REINDEX_BATCH_SIZE", "50"))
REINDEX_INTERVAL_SEC = int(os.getenv("REINDEX_INTERVAL_SEC", "300"))

EMBED_PROVIDERS = ("hash", "sentence_transformers", "ollama")


def get_embedding_provider():
    """Get configured embedding provider implementation. Returns None for an unknown provider name."""
    provider = os.getenv("EMBED_PROVIDER", EMBED_PROVIDER)

    if provider == "hash":
        from ..vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(dimension=EMBED_DIMENSION)
    elif provider == "sentence_transformers":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)
    elif provider == "ollama":
        from ..vector.embeddings import OllamaEmbedding
        return OllamaEmbedding(OLLAMA_EMBED_MODEL, host=OLLAMA_HOST, timeout=EMBED_TIMEOUT_SEC)
    return None


def get_nl_understanding():
    """Get the NL-understanding collaborator, or None when query enhancement is disabled."""
    if not nlu_enabled():
        return None

    from ..agents.nlu import OllamaUnderstanding
    return OllamaUnderstanding(OLLAMA_MODEL, host=OLLAMA_HOST, timeout=NLU_TIMEOUT_SEC)


def nlu_enabled():
    """Check if NL query enhancement is enabled."""
    return os.getenv("NLU_ENABLED", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def is_heartbeat_enabled():
    """Check if the background heartbeat is enabled."""
    return os.getenv("HEARTBEAT_ENABLED", "false").lower() == "true"


def validate_search_config():
    """Validate search configuration and return any issues."""
    issues = []

    if EMBED_PROVIDER not in EMBED_PROVIDERS:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_DIMENSION < 1:
        issues.append("EMBED_DIMENSION must be >= 1")

    if SEARCH_PAGE_SIZE < 1:
        issues.append("SEARCH_PAGE_SIZE must be >= 1")

    if SESSION_TIMEOUT_SEC < 1:
        issues.append("SESSION_TIMEOUT_SEC must be >= 1")

    if SESSION_SWEEP_INTERVAL_SEC < 1:
        issues.append("SESSION_SWEEP_INTERVAL_SEC must be >= 1")

    if not 0.0 <= LEXICAL_MIN_SCORE <= 1.0:
        issues.append("LEXICAL_MIN_SCORE must be within [0, 1]")

    if not -1.0 <= SEMANTIC_MIN_SIMILARITY <= 1.0:
        issues.append("SEMANTIC_MIN_SIMILARITY must be within [-1, 1]")

    if NLU_TIMEOUT_SEC <= 0:
        issues.append("NLU_TIMEOUT_SEC must be > 0")

    if REINDEX_BATCH_SIZE < 1:
        issues.append("REINDEX_BATCH_SIZE must be >= 1")

    return issues
