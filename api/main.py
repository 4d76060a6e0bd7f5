"""
FastAPI implementation for the pathway query orchestrator.
"""
import logging
from typing import Dict, Any, List, Literal, Optional
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, model_validator
import uvicorn
import time
import uuid

from config import APP_CONFIG
from services.cache_service import CacheService, build_cache_store
from services.pathway_service import PathwayOrchestrator
from services.warmup_service import POPULAR_QUERIES, WARMUP_KINDS, WarmupService
from data.repository import PathwayRepository

# Configure logging
logging.basicConfig(
    level=getattr(logging, APP_CONFIG["log_level"].upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(
    title="Pathway Query API",
    description="API for education and career pathway questions",
    version="1.0.0",
    debug=APP_CONFIG["debug"]
)

# Initialize services
cache_service = CacheService(store=build_cache_store())
repository = PathwayRepository()
orchestrator = PathwayOrchestrator(cache=cache_service, repository=repository)
warmup_service = WarmupService(cache=cache_service, repository=repository)

# API Models
class ConversationTurn(BaseModel):
    """One message of the conversation so far."""
    role: Literal["user", "assistant"]
    content: str

class PathwayRequest(BaseModel):
    """Pathway request model."""
    message: str = Field(min_length=1)
    conversation_history: List[ConversationTurn] = Field(default_factory=list)
    user_profile: Optional[Dict[str, Any]] = None
    profile_summary: Optional[str] = None

class PathwayResponse(BaseModel):
    """Pathway response model."""
    response: str
    aggregated_data: Optional[Dict[str, Any]] = None
    tools_used: List[str] = Field(default_factory=list)
    quality_score: float = 0
    attempts: int = 0
    query_kind: str = ""
    errors: List[str] = Field(default_factory=list)
    cached: bool = False
    request_id: str

class WarmupRequest(BaseModel):
    """Cache warmup request."""
    type: Literal["popular", "programs", "all"] = "popular"

class InvalidateRequest(BaseModel):
    """Cache invalidation request. Exactly one selector must be given."""
    tags: Optional[List[str]] = None
    pattern: Optional[str] = None
    all: bool = False

    @model_validator(mode="after")
    def require_one_selector(self):
        selected = sum([bool(self.tags), bool(self.pattern), self.all])
        if selected != 1:
            raise ValueError("Provide exactly one of tags, pattern or all")
        return self

# API Routes
@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Pathway Query API"}

@app.post("/api/pathway", response_model=PathwayResponse)
async def pathway(request: PathwayRequest):
    """
    Answer a pathway question.

    Args:
        request: Pathway request object

    Returns:
        Pathway response
    """
    try:
        request_id = str(uuid.uuid4())
        logger.info(f"Pathway request: ID={request_id}, Message='{request.message}'")

        start_time = time.time()
        result = await orchestrator.orchestrate(
            query=request.message,
            profile=request.user_profile,
            history=[turn.model_dump() for turn in request.conversation_history],
            profile_summary=request.profile_summary
        )

        execution_time = time.time() - start_time
        logger.info(f"Pathway completed: ID={request_id}, Time={execution_time:.2f}s, "
                    f"Cached={result.get('cached', False)}")

        return PathwayResponse(
            response=result["response_text"],
            aggregated_data=result.get("aggregated_data"),
            tools_used=result.get("tools_used", []),
            quality_score=result.get("quality_score", 0),
            attempts=result.get("attempts", 0),
            query_kind=result.get("query_kind", ""),
            errors=result.get("errors", []),
            cached=result.get("cached", False),
            request_id=request_id
        )

    except Exception as e:
        logger.error(f"Pathway error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/pathway")
async def pathway_health():
    """
    Health check endpoint.

    Returns:
        Health status with monitor metrics
    """
    try:
        health_metrics = orchestrator.monitor.get_system_health()
        health_metrics["status"] = "healthy"
        health_metrics["timestamp"] = time.time()
        return health_metrics

    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return {
            "status": "unhealthy",
            "error": str(e),
            "timestamp": time.time()
        }

@app.post("/api/cache-warmup")
async def cache_warmup(request: WarmupRequest):
    """
    Warm the cache with popular queries and program listings.

    Args:
        request: Warmup request naming the kind of warmup

    Returns:
        Warmed count and per-item results
    """
    try:
        result = await warmup_service.warm(request.type)
        return {"success": True, "type": request.type, **result}

    except Exception as e:
        logger.error(f"Cache warmup error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/cache-warmup")
async def cache_warmup_status():
    """Warmup status, current cache stats and the available warmup kinds."""
    try:
        stats = await cache_service.get_stats()
        return {
            "status": "ready",
            "cache_stats": stats,
            "available_types": list(WARMUP_KINDS),
            "popular_queries": POPULAR_QUERIES
        }

    except Exception as e:
        logger.error(f"Error getting warmup status: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/cache-stats")
async def cache_stats():
    """
    Get cache statistics.

    Returns:
        Entry totals with the most popular endpoints and queries
    """
    try:
        return await cache_service.get_stats()

    except Exception as e:
        logger.error(f"Error getting cache stats: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@app.post("/api/cache-invalidate")
async def cache_invalidate(request: InvalidateRequest):
    """
    Invalidate cache entries by tags, by key pattern or entirely.

    Args:
        request: Invalidation request with exactly one selector

    Returns:
        Number of removed entries
    """
    try:
        if request.all:
            removed = await cache_service.invalidate_all()
            method = "all"
        elif request.tags:
            removed = await cache_service.invalidate_by_tags(request.tags)
            method = "tags"
        else:
            removed = await cache_service.invalidate_by_pattern(request.pattern)
            method = "pattern"

        logger.info(f"Cache invalidated by {method}: {removed} entries")
        return {"success": True, "method": method, "invalidated": removed}

    except Exception as e:
        logger.error(f"Cache invalidation error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

if __name__ == "__main__":
    # Run the API using Uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
