"""HTTP surface for the archive assistant.

``POST /chat`` answers from the archive, ``POST /search`` returns the fused
ranking, ``/health`` and ``/metrics`` are for operators. Run with
``uvicorn server.api:app``.
"""

import datetime
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from config import ArchiveConfig
from indexer.embeddings import EmbeddingError, OpenAIEmbeddingProvider
from indexer.postgres_adapter import ArchiveStore, StoreUnavailableError
from indexer.retrieval import RetrievalEngine
from observability.logging import setup_logging
from observability.prometheus_metrics import get_metrics_text
from .answering import AnswerComposer, CompletionError, OpenAICompletionProvider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the long-lived clients once per process and close them on shutdown.

    A missing API key or an unreachable database does not stop startup:
    /health and /metrics keep working and store-backed endpoints answer 503.
    """
    config = ArchiveConfig.from_env()
    setup_logging(level=config.log_level, use_json=config.log_json)

    embedder = completions = store = None
    try:
        embedder = OpenAIEmbeddingProvider.from_config(config.embedding)
        completions = OpenAICompletionProvider(config.embedding.api_key, model=config.completion.model)
    except (EmbeddingError, CompletionError) as e:
        logger.warning(f"Starting without model providers: {e}")

    if embedder is not None and completions is not None:
        store = ArchiveStore(config.postgres, dimensions=config.embedding.dimensions)
        try:
            await store.initialize()
        except StoreUnavailableError:
            logger.warning("Starting without a database connection")
            store = None

    app.state.store = store
    if store is not None:
        engine = RetrievalEngine(store, embedder, config.retrieval)
        app.state.engine = engine
        app.state.composer = AnswerComposer(engine, completions, config.completion)
    logger.info("Archive API started")

    try:
        yield
    finally:
        if store is not None:
            await store.close()
        if embedder is not None:
            await embedder.close()
        if completions is not None:
            await completions.close()
        app.state.engine = app.state.composer = None
        logger.info("Archive API stopped")


app = FastAPI(title="Archive Chat API", version="0.1.0", lifespan=lifespan)


class ChatRequest(BaseModel):
    message: str
    k: Optional[int] = Field(default=None, gt=0)


class CitationModel(BaseModel):
    title: str
    url: str


class ChatResponse(BaseModel):
    answer: str
    citations: List[CitationModel]
    grounded: bool


class SearchRequest(BaseModel):
    q: str
    k: int = Field(default=8, gt=0)


class SearchHit(BaseModel):
    title: str
    url: str
    content: str
    chunk_index: Optional[int] = None
    score: float


class SearchResponse(BaseModel):
    results: List[SearchHit]
    no_candidates: bool


def get_engine(request: Request) -> RetrievalEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return engine


def get_composer(request: Request) -> AnswerComposer:
    composer = getattr(request.app.state, "composer", None)
    if composer is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return composer


@app.get("/health")
def health():
    return {"ok": True, "time": datetime.datetime.now(datetime.timezone.utc).isoformat()}


@app.get("/metrics")
def metrics():
    """Prometheus exposition of the pipeline and retrieval metrics."""
    return PlainTextResponse(get_metrics_text())


@app.post("/search", response_model=SearchResponse)
async def search(req: SearchRequest, engine: RetrievalEngine = Depends(get_engine)):
    if not req.q.strip():
        raise HTTPException(status_code=400, detail="Query is required")
    try:
        result = await engine.retrieve(req.q, req.k)
    except StoreUnavailableError as e:
        logger.error(f"Search failed, store unavailable: {e}")
        raise HTTPException(status_code=503, detail=e.hint)
    except EmbeddingError as e:
        logger.error(f"Search failed, embedding error: {e}")
        raise HTTPException(status_code=502, detail="Embedding provider failed")

    hits = [
        SearchHit(
            title=c.chunk.title,
            url=c.chunk.url,
            content=c.chunk.content,
            chunk_index=c.chunk.chunk_index,
            score=c.score
        )
        for c in result.chunks
    ]
    return SearchResponse(results=hits, no_candidates=result.no_candidates)


@app.post("/chat", response_model=ChatResponse)
async def chat(req: ChatRequest, composer: AnswerComposer = Depends(get_composer)):
    """Answer ``message`` from the archive, citing each post used once."""
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")
    try:
        answer = await composer.answer(req.message, req.k)
    except StoreUnavailableError as e:
        logger.error(f"Chat failed, store unavailable: {e}")
        raise HTTPException(status_code=503, detail=e.hint)
    except (EmbeddingError, CompletionError) as e:
        logger.error(f"Chat failed, provider error: {e}")
        raise HTTPException(status_code=502, detail="Model provider failed")

    return ChatResponse(
        answer=answer.text,
        citations=[CitationModel(title=c.title, url=c.url) for c in answer.citations],
        grounded=answer.grounded
    )
