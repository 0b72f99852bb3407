"""
FastAPI Server
REST API exposing the venue assistant's question answering.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field, validator

from venue_assistant.calendar_store import CalendarStore, DEFAULT_CALENDAR_URL, DEFAULT_PROXY_URL
from venue_assistant.document_indexer import DocumentIndexer
from venue_assistant.query_router import KnowledgeRouter
from venue_assistant.specification_registry import (
    LocalSpecificationSource,
    RemoteSpecificationSource,
    SpecificationRegistry,
)
from venue_assistant.storage import JsonFileStore

# Load environment variables
load_dotenv()

# Global router instance
router: Optional[KnowledgeRouter] = None


def build_router() -> KnowledgeRouter:
    """Wire the knowledge sources from environment settings."""
    cache = JsonFileStore(os.getenv("CACHE_PATH", "data/cache.json"))
    venue_name = os.getenv("VENUE_NAME", "Studio 338")

    api_url = os.getenv("SPECIFICATIONS_API_URL")
    if api_url:
        source = RemoteSpecificationSource(api_base_url=api_url)
    else:
        source = LocalSpecificationSource(os.getenv("SPECIFICATIONS_PATH", "data/specifications.json"))

    calendar = CalendarStore(
        cache=cache,
        calendar_url=os.getenv("CALENDAR_URL", DEFAULT_CALENDAR_URL),
        proxy_url=os.getenv("CALENDAR_PROXY_URL", DEFAULT_PROXY_URL),
        use_proxy=os.getenv("CALENDAR_USE_PROXY", "true").lower() in ("1", "true", "yes"),
        ttl_seconds=int(os.getenv("CALENDAR_CACHE_TTL", "3600")),
        window_days=int(os.getenv("EVENT_WINDOW_DAYS", "3")),
    )

    return KnowledgeRouter(
        indexer=DocumentIndexer(venue_name=venue_name, show_progress=False),
        calendar=calendar,
        registry=SpecificationRegistry(source=source, cache=cache),
        venue_name=venue_name,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    global router

    logger.info("Initializing knowledge router...")

    try:
        router = build_router()
        router.initialize(document_path=os.getenv("TECHNICAL_BIBLE_PATH", "data/technical_bible.json"))

    except Exception as e:
        logger.warning(f"Failed to initialize knowledge router on startup: {e}")
        logger.warning("Server starting in degraded mode.")

    yield

    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Venue Assistant API",
    description="Answers questions about venue events, equipment and technical specifications",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class AskRequest(BaseModel):
    """Request model for /ask endpoint."""
    question: str = Field(
        ...,
        min_length=3,
        max_length=500,
        description="Free-text question about the venue",
        example="How many Pioneer CDJ 3000 does Studio 338 have?"
    )

    @validator('question')
    def validate_question(cls, v):
        """Validate question is not empty or whitespace."""
        if not v.strip():
            raise ValueError("Question cannot be empty or whitespace")
        return v.strip()


class AskResponse(BaseModel):
    """Response model for /ask endpoint."""
    question: str
    answer: str
    response_time_ms: float


class BudgetRequest(BaseModel):
    """Request model for /budget endpoint."""
    item_ids: List[str] = Field(
        ...,
        min_length=1,
        description="Specification item ids, repeated for multiple units",
        example=["cdj-3000", "cdj-3000", "robe-pointe"]
    )
    vat_rate: float = Field(0.2, ge=0, le=1, description="VAT applied to the subtotal")


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""
    status: str
    initialized: bool
    specification_version: Optional[str] = None
    message: Optional[str] = None


def _require_router() -> KnowledgeRouter:
    if router is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Knowledge router not initialized"
        )
    return router


# API Endpoints
@app.get("/", tags=["Root"])
async def root() -> Dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "Venue Assistant API",
        "version": "1.0.0",
        "description": "Venue events, equipment and specification assistant",
        "docs_url": "/docs",
        "health_url": "/health"
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Report whether the knowledge sources are built."""
    if router is None:
        return HealthResponse(
            status="unhealthy",
            initialized=False,
            message="Knowledge router not created"
        )

    if not router.initialized:
        return HealthResponse(
            status="degraded",
            initialized=False,
            message="Knowledge sources still initializing"
        )

    return HealthResponse(
        status="healthy",
        initialized=True,
        specification_version=router.registry.version,
        message="All knowledge sources loaded"
    )


@app.post("/ask", response_model=AskResponse, tags=["Assistant"])
async def ask_question(request: AskRequest) -> AskResponse:
    """
    Ask a question about the venue.

    Example questions:
    - "What's on 2024-06-15?"
    - "How many Pioneer CDJ 3000 does Studio 338 have?"
    - "What are the restrictions regarding decibel?"
    """
    knowledge = _require_router()
    start_time = time.time()

    try:
        answer = await run_in_threadpool(knowledge.answer, request.question)
    except Exception as e:
        logger.error(f"Error processing question: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error processing question"
        )

    return AskResponse(
        question=request.question,
        answer=answer,
        response_time_ms=round((time.time() - start_time) * 1000, 2)
    )


@app.get("/stats", tags=["Stats"])
async def get_stats() -> Dict:
    """Sizes of the built knowledge sources."""
    knowledge = _require_router()
    index = knowledge.index

    return {
        "initialized": knowledge.initialized,
        "specification_version": knowledge.registry.version,
        "document_generation": index.generation if index else 0,
        "equipment": len(index.equipment) if index else 0,
        "prices": len(index.pricing) if index else 0,
        "faqs": len(index.faqs) if index else 0,
        "pages": len(index.raw) if index else 0,
    }


@app.post("/events/refresh", tags=["Admin"])
async def refresh_events() -> Dict:
    """Drop the calendar cache and fetch again."""
    knowledge = _require_router()
    events = await run_in_threadpool(knowledge.calendar.refresh_event_cache)
    return {
        "events": len(events),
        "fallback": any(e.get("is_fallback") for e in events)
    }


@app.post("/specifications/sync", tags=["Admin"])
async def sync_specifications() -> Dict:
    """Pull a newer specification catalog if one is available."""
    knowledge = _require_router()
    updated = await run_in_threadpool(knowledge.registry.sync_specifications)
    return {"updated": updated, "version": knowledge.registry.version}


@app.get("/specifications/{item_id}/history", tags=["Specifications"])
async def specification_history(item_id: str) -> List[Dict]:
    """Versions of one catalog item, newest first."""
    knowledge = _require_router()
    history = knowledge.registry.get_change_history(item_id)
    if not history:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown specification item: {item_id}"
        )
    return history


@app.post("/budget", tags=["Specifications"])
async def estimate_budget(request: BudgetRequest) -> Dict:
    """Hire cost of a selection of catalog items."""
    knowledge = _require_router()
    return knowledge.registry.estimate_budget(request.item_ids, vat_rate=request.vat_rate)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "venue_assistant.api_server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
