"""
Vector storage, embedding and similarity search.
Records are canonical; caches, clusters and analytics are derived from them.
"""

# Package initialization for vector module
from .index import IVectorStore, LocalVectorStore
from .faiss_store import FaissVectorStore
from .pinecone_store import PineconeVectorStore
from .types import VectorRecord, QueryResult, Cluster
from .embeddings import (
    IEmbeddingProvider,
    LocalTfidfEmbedding,
    SentenceTransformerEmbedding,
    OpenAIEmbedding,
    OllamaEmbedding,
    EmbeddingChain,
)
from .cache import BoundedCache
from .batch import BatchQueue
from .similarity import SimilaritySearchEngine, cosine_similarity
from .clustering import kmeans, hierarchical
from .service import VectorDatabaseService

__all__ = [
    'IVectorStore',
    'LocalVectorStore',
    'FaissVectorStore',
    'PineconeVectorStore',
    'VectorRecord',
    'QueryResult',
    'Cluster',
    'IEmbeddingProvider',
    'LocalTfidfEmbedding',
    'SentenceTransformerEmbedding',
    'OpenAIEmbedding',
    'OllamaEmbedding',
    'EmbeddingChain',
    'BoundedCache',
    'BatchQueue',
    'SimilaritySearchEngine',
    'cosine_similarity',
    'kmeans',
    'hierarchical',
    'VectorDatabaseService'
]
