"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from answer_engine.api.auth import router as auth_router
from answer_engine.api.middleware import RequestTimingMiddleware
from answer_engine.api.rate_limiter import SlidingWindowRateLimiter
from answer_engine.api.routes_health import router as health_router
from answer_engine.api.routes_quality import router as quality_router
from answer_engine.api.routes_query import router as query_router
from answer_engine.config.settings import Settings
from answer_engine.embeddings.hash_embedder import HashEmbedder
from answer_engine.embeddings.openai_embedder import OpenAIEmbedder
from answer_engine.generation.answer_generator import AnswerGenerator
from answer_engine.generation.gemini_provider import GeminiProvider
from answer_engine.generation.mock_provider import MockProvider
from answer_engine.observability.logger import get_logger, setup_logging
from answer_engine.pipeline.answer_pipeline import AnswerQueryPipeline
from answer_engine.protocols.embedder import Embedder
from answer_engine.protocols.llm import LanguageModelProvider
from answer_engine.quality.contract import AnswerQualityPolicy
from answer_engine.scoring.confidence import ConfidenceScorer
from answer_engine.storage.sqlite_answer_store import SQLiteAnswerStore
from answer_engine.storage.sqlite_chunk_store import SQLiteChunkStore
from answer_engine.storage.sqlite_job_store import SQLiteJobStore

logger = get_logger("app")


def build_embedder(settings: Settings) -> Embedder:
    if settings.openai_api_key:
        return OpenAIEmbedder(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            batch_size=settings.embedding_batch_size,
            dimensions=settings.embedding_dimensions,
        )
    logger.warning("embedder_fallback", reason="no OpenAI API key configured")
    return HashEmbedder()


def build_llm(settings: Settings) -> LanguageModelProvider:
    if settings.google_api_key:
        return GeminiProvider(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            temperature=settings.gemini_temperature,
            max_tokens=settings.gemini_max_tokens,
        )
    logger.warning("llm_fallback", reason="no Google API key configured")
    return MockProvider()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = getattr(app.state, "settings", None) or Settings()
    setup_logging()

    for path in [
        settings.sqlite_corpus_db_path,
        settings.sqlite_answer_db_path,
        settings.sqlite_jobs_db_path,
    ]:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    # Storage
    chunk_store = SQLiteChunkStore(settings.sqlite_corpus_db_path, settings=settings)
    await chunk_store.initialize()
    answer_store = SQLiteAnswerStore(settings.sqlite_answer_db_path, chunk_index=chunk_store)
    await answer_store.initialize()
    job_store = SQLiteJobStore(settings.sqlite_jobs_db_path)
    await job_store.initialize()

    # Generation
    policy = AnswerQualityPolicy.from_settings(settings)
    answer_generator = AnswerGenerator(
        llm=build_llm(settings),
        min_citation_coverage=policy.min_citation_coverage,
    )

    answer_pipeline = AnswerQueryPipeline(
        chunk_store=chunk_store,
        embedder=build_embedder(settings),
        answer_generator=answer_generator,
        answer_store=answer_store,
        job_scheduler=job_store,
        usage_meter=job_store,
        confidence_scorer=ConfidenceScorer(settings),
        settings=settings,
        policy=policy,
    )

    app.state.settings = settings
    app.state.chunk_store = chunk_store
    app.state.answer_store = answer_store
    app.state.job_store = job_store
    app.state.answer_pipeline = answer_pipeline
    app.state.rate_limiter = SlidingWindowRateLimiter()

    logger.info(
        "startup_complete",
        model=answer_generator.model_name,
        chunks=await chunk_store.count_chunks(),
        knowledge_chunks=await chunk_store.count_knowledge_chunks(),
    )

    yield

    await answer_pipeline.wait_for_side_effects()
    logger.info("shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    app = FastAPI(
        title="Grounded Answer Engine",
        version="1.0.0",
        description="Permission-aware retrieval with a fail-closed answer quality contract",
        lifespan=lifespan,
    )
    if settings is not None:
        app.state.settings = settings
    app.add_middleware(RequestTimingMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router)
    app.include_router(query_router, tags=["answer"])
    app.include_router(quality_router, tags=["quality"])
    return app
