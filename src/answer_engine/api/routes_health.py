"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from answer_engine.api.dependencies import get_answer_store, get_chunk_store
from answer_engine.models.schemas import HealthResponse
from answer_engine.storage.sqlite_answer_store import SQLiteAnswerStore
from answer_engine.storage.sqlite_chunk_store import SQLiteChunkStore

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(
    chunk_store: SQLiteChunkStore = Depends(get_chunk_store),
    answer_store: SQLiteAnswerStore = Depends(get_answer_store),
) -> HealthResponse:
    return HealthResponse(
        status="ok",
        chunk_count=await chunk_store.count_chunks(),
        knowledge_chunk_count=await chunk_store.count_knowledge_chunks(),
        answer_count=await answer_store.count_answers(),
    )
