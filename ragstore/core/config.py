"""
Vector store configuration.
All knobs are read from the environment (a local .env file is honoured).
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Backend selection
VECTOR_BACKEND = os.getenv("VECTOR_BACKEND", "local")  # local|faiss|pinecone
VECTOR_SNAPSHOT_PATH = os.getenv("VECTOR_SNAPSHOT_PATH", "./data/local_vectors.json")
SNAPSHOT_DEBOUNCE_SEC = float(os.getenv("SNAPSHOT_DEBOUNCE_SEC", "1.0"))
FAISS_CAPACITY = int(os.getenv("FAISS_CAPACITY", "100000"))
PINECONE_API_KEY = os.getenv("PINECONE_API_KEY")
PINECONE_INDEX_NAME = os.getenv("PINECONE_INDEX_NAME", "advanced-rag-index")

# Embedding providers, tried in order; local is always the last resort
EMBED_PROVIDERS = os.getenv("EMBED_PROVIDERS", "local")  # openai,ollama,sentence_transformers,local
LOCAL_EMBED_DIM = int(os.getenv("LOCAL_EMBED_DIM", "300"))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-large")
OLLAMA_EMBED_MODEL = os.getenv("OLLAMA_EMBED_MODEL", "nomic-embed-text")
SENTENCE_TRANSFORMER_MODEL = os.getenv("SENTENCE_TRANSFORMER_MODEL", "all-MiniLM-L6-v2")
PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "10"))

# Caches and ranking
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "1000"))
CACHE_EVICT_FRACTION = float(os.getenv("CACHE_EVICT_FRACTION", "0.5"))
RERANK_VECTOR_WEIGHT = float(os.getenv("RERANK_VECTOR_WEIGHT", "0.7"))
RERANK_LEXICAL_WEIGHT = float(os.getenv("RERANK_LEXICAL_WEIGHT", "0.3"))

# Batch queue
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "10"))
BATCH_INTERVAL_SEC = float(os.getenv("BATCH_INTERVAL_SEC", "5"))

# Clustering
CLUSTER_MAX_VECTORS = int(os.getenv("CLUSTER_MAX_VECTORS", "500"))

SEARCH_API_ENABLED = os.getenv("SEARCH_API_ENABLED", "true").lower() == "true"

VERSION = "1.0.0"

VALID_BACKENDS = ["local", "faiss", "pinecone"]
VALID_PROVIDERS = ["openai", "ollama", "sentence_transformers", "local"]


def get_provider_names():
    """Ordered embedding provider names, with local guaranteed last."""
    names = [n.strip().lower() for n in EMBED_PROVIDERS.split(",") if n.strip()]
    names = [n for n in names if n in VALID_PROVIDERS and n != "local"]
    names.append("local")
    return names


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if VECTOR_BACKEND not in VALID_BACKENDS:
        issues.append(f"Invalid VECTOR_BACKEND: {VECTOR_BACKEND}")

    for name in EMBED_PROVIDERS.split(","):
        name = name.strip().lower()
        if name and name not in VALID_PROVIDERS:
            issues.append(f"Unknown embedding provider: {name}")

    if VECTOR_BACKEND == "pinecone" and not PINECONE_API_KEY:
        issues.append("VECTOR_BACKEND=pinecone requires PINECONE_API_KEY")

    if LOCAL_EMBED_DIM < 1:
        issues.append("LOCAL_EMBED_DIM must be >= 1")
    if CACHE_MAX_ENTRIES < 1:
        issues.append("CACHE_MAX_ENTRIES must be >= 1")
    if not 0 < CACHE_EVICT_FRACTION <= 1:
        issues.append("CACHE_EVICT_FRACTION must be in (0, 1]")
    for label, weight in (("RERANK_VECTOR_WEIGHT", RERANK_VECTOR_WEIGHT),
                          ("RERANK_LEXICAL_WEIGHT", RERANK_LEXICAL_WEIGHT)):
        if not 0 <= weight <= 1:
            issues.append(f"{label} must be in [0, 1]")
    if BATCH_SIZE < 1:
        issues.append("BATCH_SIZE must be >= 1")
    if BATCH_INTERVAL_SEC <= 0:
        issues.append("BATCH_INTERVAL_SEC must be > 0")
    if PROVIDER_TIMEOUT_SEC <= 0:
        issues.append("PROVIDER_TIMEOUT_SEC must be > 0")
    if CLUSTER_MAX_VECTORS < 1:
        issues.append("CLUSTER_MAX_VECTORS must be >= 1")

    return issues


def ensure_snapshot_directory():
    """Ensure the snapshot directory exists."""
    Path(VECTOR_SNAPSHOT_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_embedding_providers():
    """Build the configured embedding provider chain members, in order."""
    from ragstore.vector.embeddings import (
        LocalTfidfEmbedding,
        OllamaEmbedding,
        OpenAIEmbedding,
        SentenceTransformerEmbedding,
    )

    providers = []
    for name in get_provider_names():
        if name == "openai":
            if not OPENAI_API_KEY:
                # No key, nothing to try
                continue
            providers.append(OpenAIEmbedding(model_name=EMBEDDING_MODEL, api_key=OPENAI_API_KEY))
        elif name == "ollama":
            providers.append(OllamaEmbedding(model_name=OLLAMA_EMBED_MODEL))
        elif name == "sentence_transformers":
            providers.append(SentenceTransformerEmbedding(model_name=SENTENCE_TRANSFORMER_MODEL))
        else:
            providers.append(LocalTfidfEmbedding(dimension=LOCAL_EMBED_DIM))
    return providers


def get_vector_store():
    """Get configured vector store implementation."""
    from ragstore.vector.index import LocalVectorStore

    if VECTOR_BACKEND == "faiss":
        try:
            from ragstore.vector.faiss_store import FaissVectorStore
            return FaissVectorStore(capacity=FAISS_CAPACITY)
        except ImportError:
            # Gracefully degrade to the local store if FAISS not available
            return LocalVectorStore(snapshot_path=VECTOR_SNAPSHOT_PATH,
                                    debounce_sec=SNAPSHOT_DEBOUNCE_SEC)
    elif VECTOR_BACKEND == "pinecone" and PINECONE_API_KEY:
        from ragstore.vector.pinecone_store import PineconeVectorStore
        return PineconeVectorStore.from_api_key(PINECONE_API_KEY, PINECONE_INDEX_NAME,
                                                timeout_sec=PROVIDER_TIMEOUT_SEC)

    ensure_snapshot_directory()
    return LocalVectorStore(snapshot_path=VECTOR_SNAPSHOT_PATH, debounce_sec=SNAPSHOT_DEBOUNCE_SEC)


def get_vector_service():
    """Construct a fresh, uninitialised vector database service from configuration."""
    from ragstore.vector.embeddings import EmbeddingChain
    from ragstore.vector.service import VectorDatabaseService

    return VectorDatabaseService(
        store=get_vector_store(),
        embedder=EmbeddingChain(get_embedding_providers(), timeout_sec=PROVIDER_TIMEOUT_SEC),
        cache_max_entries=CACHE_MAX_ENTRIES,
        cache_evict_fraction=CACHE_EVICT_FRACTION,
        rerank_weights=(RERANK_VECTOR_WEIGHT, RERANK_LEXICAL_WEIGHT),
        batch_size=BATCH_SIZE,
        batch_interval_sec=BATCH_INTERVAL_SEC,
        cluster_max_vectors=CLUSTER_MAX_VECTORS,
    )
