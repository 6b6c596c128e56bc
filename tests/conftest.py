"""Shared test fixtures."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from answer_engine.config.settings import Settings
from answer_engine.generation.answer_generator import AnswerGenerator
from answer_engine.models.domain import Chunk, GroundedAnswer, RankedCandidate, SavedAnswer
from answer_engine.models.schemas import Citation
from answer_engine.pipeline.answer_pipeline import AnswerQueryPipeline
from answer_engine.scoring.confidence import ConfidenceScorer

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)
FRESH = (NOW - timedelta(days=2)).isoformat()
STALE = (NOW - timedelta(days=120)).isoformat()

POLICY_TEXT = (
    "The incident response policy is owned by the security operations team. "
    "Severity one incidents require paging the on-call security engineer within fifteen minutes."
)
ESCALATION_TEXT = (
    "Escalation matrix: security incidents escalate to the chief information security officer "
    "after thirty minutes without mitigation."
)


def make_chunk(chunk_id: str, text: str, updated_at: str | None = FRESH, **overrides) -> Chunk:
    fields = dict(
        chunk_id=chunk_id,
        doc_version_id=f"{chunk_id}-v1",
        text=text,
        source_url=f"https://docs.google.com/document/d/{chunk_id}",
        source_score=80.0,
        updated_at=updated_at,
        author="security@company.com",
        connector_type="google_docs",
        document_id=f"doc-{chunk_id}",
        document_title=f"Document {chunk_id}",
    )
    fields.update(overrides)
    return Chunk(**fields)


def citation_for(chunk: Chunk, end: int = 80) -> Citation:
    return Citation(
        chunk_id=chunk.chunk_id,
        doc_version_id=chunk.doc_version_id,
        source_url=chunk.source_url,
        start_offset=0,
        end_offset=min(end, len(chunk.text)),
    )


class FakeChunkStore:
    """Returns the configured chunks for every search and records the queries it saw."""

    def __init__(self, chunks: list[Chunk] | None = None, by_query: dict | None = None) -> None:
        self.chunks = chunks or []
        self.by_query = by_query or {}
        self.queries: list[str] = []
        self.filters = []

    async def hybrid_search(self, org_id, query_text, query_embedding, filters, limit=8):
        self.queries.append(query_text)
        self.filters.append(filters)
        chunks = self.by_query.get(query_text, self.chunks)
        return [
            RankedCandidate(chunk=c, combined_score=1.0 - i * 0.01)
            for i, c in enumerate(chunks[:limit])
        ]


class FakeEmbedder:
    dimensions = 3

    async def embed_texts(self, texts):
        return [[0.1, 0.2, 0.3] for _ in texts]

    async def embed_query(self, query):
        return [0.1, 0.2, 0.3]


class ScriptedProvider:
    """Returns queued answers in order; repeats the last one when the queue runs out."""

    name = "scripted"

    def __init__(self, answers: list[GroundedAnswer]) -> None:
        self.answers = list(answers)
        self.questions: list[str] = []

    async def answer_question(self, question, context_chunks):
        self.questions.append(question)
        index = min(len(self.questions) - 1, len(self.answers) - 1)
        return self.answers[index]


class InMemoryAnswerStore:
    def __init__(self) -> None:
        self.saved: list[dict] = []

    async def save_answer(self, org_id, question, response, thread_id=None, actor_id=None):
        self.saved.append(
            {"org_id": org_id, "question": question, "response": response, "actor_id": actor_id}
        )
        n = len(self.saved)
        return SavedAnswer(
            thread_id=thread_id or f"thread-{n}",
            message_id=f"msg-{n}",
            user_message_id=f"user-msg-{n}",
        )


class RecordingJobs:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.jobs: list[tuple[str, dict]] = []
        self.usage: list[dict] = []

    async def enqueue(self, job_name, payload):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.jobs.append((job_name, payload))
        return f"job-{len(self.jobs)}"

    async def record_usage(self, org_id, event_type, credits, actor_id=None, metadata=None):
        if self.fail:
            raise RuntimeError("meter unavailable")
        self.usage.append(
            {"org_id": org_id, "type": event_type, "credits": credits, "actor_id": actor_id}
        )


@pytest.fixture
def settings():
    """Test settings with temp paths and no API keys."""
    tmp = tempfile.mkdtemp()
    return Settings(
        openai_api_key="",
        google_api_key="",
        sqlite_corpus_db_path=str(Path(tmp) / "corpus.db"),
        sqlite_answer_db_path=str(Path(tmp) / "answers.db"),
        sqlite_jobs_db_path=str(Path(tmp) / "jobs.db"),
        jwt_secret="test-secret",
        api_keys="test-api-key",
    )


@pytest.fixture
def policy_chunks():
    return [
        make_chunk("chunk-policy", POLICY_TEXT),
        make_chunk("chunk-escalation", ESCALATION_TEXT),
    ]


@pytest.fixture
def grounded_answer(policy_chunks):
    return GroundedAnswer(
        answer=(
            "The security operations team owns the incident response policy. "
            "Severity one incidents require paging the on-call security engineer."
        ),
        citations=[citation_for(policy_chunks[0])],
        confidence=0.8,
        source_score=80.0,
    )


@pytest.fixture
def jobs():
    return RecordingJobs()


@pytest.fixture
def answer_store():
    return InMemoryAnswerStore()


@pytest.fixture
def make_pipeline(settings, jobs, answer_store):
    """Build a pipeline around fakes; pass a store and provider per test."""

    def build(chunk_store, provider, **overrides) -> AnswerQueryPipeline:
        parts = dict(
            chunk_store=chunk_store,
            embedder=FakeEmbedder(),
            answer_generator=AnswerGenerator(llm=provider),
            answer_store=answer_store,
            job_scheduler=jobs,
            usage_meter=jobs,
            confidence_scorer=ConfidenceScorer(settings),
            settings=settings,
            clock=lambda: NOW,
        )
        parts.update(overrides)
        return AnswerQueryPipeline(**parts)

    return build
