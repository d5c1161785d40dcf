"""
HTTP adapter over the vector database service.
Translates requests to service calls; holds no logic of its own.
"""

from contextlib import asynccontextmanager
import logging
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse

from .schemas import (
    HealthResponse,
    EmbedRequest,
    EmbedResponse,
    BatchEnqueueRequest,
    BatchEnqueueResponse,
    SearchRequest,
    SearchResponse,
    SearchHit,
    VectorItem,
    VectorListResponse,
    DeleteResponse,
    StatsResponse,
    VocabularyRequest,
    ClusterRequest,
    ClusterResponse,
    ClusterItem,
)
from ..core import config
from ..core.exceptions import (
    DimensionMismatchError,
    InvalidFilterError,
    NotFoundError,
    ProviderUnavailableError,
    VectorStoreError,
)
from ..vector.service import VectorDatabaseService


@asynccontextmanager
async def lifespan(app: FastAPI):
    issues = config.validate_config()
    if issues:
        logging.warning(f"Configuration issues: {issues}")
    service = config.get_vector_service().init()
    app.state.service = service
    try:
        yield
    finally:
        service.close()


app = FastAPI(
    title="RAG Vector Store API",
    version=config.VERSION,
    description="Embedding, similarity search and clustering over a local or remote vector store",
    lifespan=lifespan,
)


def get_service(request: Request) -> VectorDatabaseService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Vector service not initialized")
    return service


def require_api_enabled():
    if not config.SEARCH_API_ENABLED:
        raise HTTPException(status_code=404, detail="Vector API disabled")


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(service: VectorDatabaseService = Depends(get_service)):
    """Check system health."""
    stats = service.stats()
    return HealthResponse(
        status="healthy",
        version=config.VERSION,
        backend=type(service.store).__name__,
        vector_count=stats["totalVectors"],
    )


@app.post("/vectors", response_model=EmbedResponse, dependencies=[Depends(require_api_enabled)])
def embed_endpoint(request: EmbedRequest, service: VectorDatabaseService = Depends(get_service)):
    """Embed a text and store it."""
    return EmbedResponse(**service.embed(request.text, request.metadata))


@app.post("/vectors/batch", response_model=BatchEnqueueResponse, dependencies=[Depends(require_api_enabled)])
def batch_endpoint(request: BatchEnqueueRequest, service: VectorDatabaseService = Depends(get_service)):
    """Queue documents for the next batch flush."""
    for doc in request.documents:
        service.enqueue(doc.text, doc.metadata)
    return BatchEnqueueResponse(queued=len(request.documents), pending=len(service.batch_queue))


@app.post("/vectors/search", response_model=SearchResponse, dependencies=[Depends(require_api_enabled)])
def search_endpoint(request: SearchRequest, service: VectorDatabaseService = Depends(get_service)):
    """Search stored vectors by query text."""
    options = request.options.model_dump(exclude={"multilingual"})
    if request.options.multilingual:
        hits = service.multilingual_search(request.query, request.top_k, request.filters, options)
    else:
        hits = service.search(request.query, request.top_k, request.filters, options)
    return SearchResponse(query=request.query, results=[SearchHit(**h) for h in hits], total=len(hits))


@app.get("/vectors", response_model=VectorListResponse, dependencies=[Depends(require_api_enabled)])
def list_vectors_endpoint(request: Request, service: VectorDatabaseService = Depends(get_service)):
    """List stored vectors; every query parameter is an exact metadata filter."""
    filters: Dict[str, Any] = dict(request.query_params)
    records = service.get_all_vectors(filters or None)
    items = [VectorItem(id=r.id, vector=[float(v) for v in r.vector], metadata=r.metadata) for r in records]
    return VectorListResponse(vectors=items, total=len(items))


@app.get("/vectors/stats", response_model=StatsResponse)
def stats_endpoint(service: VectorDatabaseService = Depends(get_service)):
    return StatsResponse(**service.stats())


@app.get("/vectors/stats/advanced")
def advanced_stats_endpoint(service: VectorDatabaseService = Depends(get_service)):
    return service.advanced_stats()


@app.get("/vectors/analysis")
def analysis_endpoint(sample_size: int = Query(100, ge=2),
                      service: VectorDatabaseService = Depends(get_service)):
    return service.analyze_similarity_patterns(sample_size)


@app.post("/vectors/optimize", dependencies=[Depends(require_api_enabled)])
def optimize_endpoint(service: VectorDatabaseService = Depends(get_service)):
    return service.optimize()


@app.delete("/vectors/{record_id}", response_model=DeleteResponse, dependencies=[Depends(require_api_enabled)])
def delete_endpoint(record_id: str, service: VectorDatabaseService = Depends(get_service)):
    if not service.delete_vector(record_id):
        raise NotFoundError(f"Vector not found: {record_id}")
    return DeleteResponse(success=True, id=record_id)


@app.post("/vectors/cluster", response_model=ClusterResponse, dependencies=[Depends(require_api_enabled)])
def cluster_endpoint(request: ClusterRequest, service: VectorDatabaseService = Depends(get_service)):
    if request.algorithm == "kmeans":
        clusters = service.cluster_kmeans(request.k, request.max_iterations, request.filters, request.seed)
    else:
        clusters = service.cluster_hierarchical(request.threshold, request.filters)
    return ClusterResponse(
        algorithm=request.algorithm,
        clusters=[ClusterItem(**c.to_dict()) for c in clusters],
    )


@app.post("/vocabulary", dependencies=[Depends(require_api_enabled)])
def vocabulary_endpoint(request: VocabularyRequest, service: VectorDatabaseService = Depends(get_service)):
    service.update_vocabulary(request.texts)
    return {"success": True, "documents": len(request.texts)}


_ERROR_STATUS = {
    NotFoundError: 404,
    DimensionMismatchError: 400,
    InvalidFilterError: 400,
    ProviderUnavailableError: 503,
}


@app.exception_handler(VectorStoreError)
async def vector_store_exception_handler(request, exc: VectorStoreError):
    status_code = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, **exc.details})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logging.error(f"Unhandled exception: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
