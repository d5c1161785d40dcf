"""
Request and response models for the vector store HTTP adapter.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any, Literal, Union


class EmbedRequest(BaseModel):
    """Request to embed and store one text."""
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('text')
    @classmethod
    def text_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('text cannot be empty')
        return v


class EmbedResponse(BaseModel):
    id: str
    vector: List[float]
    metadata: Dict[str, Any]


class BatchEnqueueRequest(BaseModel):
    """Documents to queue for the next batch flush."""
    documents: List[EmbedRequest]

    @field_validator('documents')
    @classmethod
    def documents_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('documents cannot be empty')
        return v


class BatchEnqueueResponse(BaseModel):
    queued: int
    pending: int


class SearchOptions(BaseModel):
    rerank: bool = True
    skipCache: bool = False
    diversity: Optional[float] = None
    multilingual: bool = False


class SearchRequest(BaseModel):
    """Request to search stored vectors."""
    query: str
    top_k: int = 5
    filters: Optional[Dict[str, Any]] = None
    options: SearchOptions = Field(default_factory=SearchOptions)

    @field_validator('query')
    @classmethod
    def query_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('query cannot be empty')
        return v


class SearchHit(BaseModel):
    id: str
    score: float
    text: str
    metadata: Dict[str, Any]
    semanticRelevance: float = 0.0
    vectorScore: Optional[float] = None
    languageMatch: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    results: List[SearchHit]
    total: int


class HealthResponse(BaseModel):
    status: str
    version: str
    backend: str
    vector_count: int


class VectorItem(BaseModel):
    id: str
    vector: List[float]
    metadata: Dict[str, Any]


class VectorListResponse(BaseModel):
    vectors: List[VectorItem]
    total: int


class DeleteResponse(BaseModel):
    success: bool
    id: str


class StatsResponse(BaseModel):
    totalVectors: int
    dimension: int
    indexFullness: float


class VocabularyRequest(BaseModel):
    texts: List[str]


class ClusterRequest(BaseModel):
    """Clustering parameters; k/max_iterations for kmeans, threshold for hierarchical."""
    algorithm: Literal["kmeans", "hierarchical"] = "kmeans"
    k: int = 5
    max_iterations: int = 100
    threshold: float = 0.7
    filters: Optional[Dict[str, Any]] = None
    seed: Optional[int] = None

    @field_validator('k', 'max_iterations')
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError('must be >= 1')
        return v


class ClusterItem(BaseModel):
    label: Union[int, str]
    centroid: List[float]
    members: List[str]
    size: int


class ClusterResponse(BaseModel):
    algorithm: str
    clusters: List[ClusterItem]
