"""Deterministic provider used when no model API key is configured."""

from __future__ import annotations

from answer_engine.models.domain import ContextChunk, GroundedAnswer
from answer_engine.models.schemas import Citation


class MockProvider:
    name = "mock"

    async def answer_question(
        self, question: str, context_chunks: list[ContextChunk]
    ) -> GroundedAnswer:
        if not context_chunks:
            return GroundedAnswer(answer="No relevant context found.", confidence=0.2)

        top = context_chunks[0]
        return GroundedAnswer(
            answer=f"Grounded answer from {top.source_url}: {top.text[:200]}",
            citations=[
                Citation(
                    chunk_id=top.chunk_id,
                    doc_version_id=top.doc_version_id,
                    source_url=top.source_url,
                    start_offset=0,
                    end_offset=min(180, len(top.text)),
                )
            ],
            confidence=0.78,
            source_score=top.source_score,
        )
