"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from answer_engine.pipeline.answer_pipeline import AnswerQueryPipeline
from answer_engine.storage.sqlite_answer_store import SQLiteAnswerStore
from answer_engine.storage.sqlite_chunk_store import SQLiteChunkStore


def get_answer_pipeline(request: Request) -> AnswerQueryPipeline:
    return request.app.state.answer_pipeline


def get_chunk_store(request: Request) -> SQLiteChunkStore:
    return request.app.state.chunk_store


def get_answer_store(request: Request) -> SQLiteAnswerStore:
    return request.app.state.answer_store
